"""
bka - Book Assembly, a personal book library with SQLAlchemy + SQLite backend.

Main API:
    from bka import Library
    from bka.filters import BookFilters

    # Open or create a library
    lib = Library.open("/path/to/library")

    # Add a book
    book_id = lib.books.add(lib.user_id, title="Dune", author="Frank Herbert")

    # Filter and sort
    books = lib.list_books(BookFilters(min_rating=4), sort_key="title", direction="asc")

    # Back up everything
    result = lib.export_library()

    # Always close when done
    lib.close()
"""

from .library import Library

__version__ = "0.1.0"
__all__ = ["Library"]
