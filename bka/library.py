"""
Library facade for bka.

Ties the document store, repositories and services together behind one
object opened on a library directory for one user.
"""

from pathlib import Path
from typing import List, Optional, Union
import logging

from sqlalchemy.orm import Session

from .config import DEFAULT_USER_ID
from .db.session import init_db, get_session, close_db
from .duplicates import DuplicateCheckResult, check_for_duplicate
from .filters import BookFilters, FacetCounts, compute_facet_counts, filter_books
from .models import Book
from .repositories import BookRepository, GenreRepository, SeriesRepository, WishlistRepository
from .search import RecentSearches, search_books
from .services.backup_service import BackupService, ExportResult, ImportResult
from .services.health_service import HealthReport, HealthService
from .services.merge_service import MergeService
from .settings import JsonFileSettings, SettingsStore
from .sorting import sort_books
from .store import DocumentStore

logger = logging.getLogger(__name__)

SETTINGS_FILE = 'settings.json'


class Library:
    """
    A personal book library stored in a directory.

    Usage:
        lib = Library.open("/path/to/library")
        book_id = lib.books.add(lib.user_id, title="Dune", author="Frank Herbert")
        books = lib.list_books(BookFilters(min_rating=4), sort_key='title')
        lib.close()
    """

    def __init__(self, library_path: Path, session: Session,
                 user_id: str = DEFAULT_USER_ID,
                 settings: Optional[SettingsStore] = None):
        self.library_path = Path(library_path)
        self.session = session
        self.user_id = user_id
        self.store = DocumentStore(session)
        self.settings = settings or JsonFileSettings(self.library_path / SETTINGS_FILE)

        self.books = BookRepository(self.store)
        self.genres = GenreRepository(self.store)
        self.series = SeriesRepository(self.store)
        self.wishlist = WishlistRepository(self.store)

        self.merge_service = MergeService(self.store)
        self.backup_service = BackupService(self.store)
        self.health_service = HealthService(self.store)
        self.recent_searches = RecentSearches(self.settings)

    @classmethod
    def open(cls, library_path: Union[str, Path], user_id: str = DEFAULT_USER_ID,
             settings: Optional[SettingsStore] = None, echo: bool = False) -> 'Library':
        """
        Open or create a library.

        Args:
            library_path: Path to library directory
            user_id: User whose collections are read and written
            settings: Settings store for UI state; defaults to a JSON file
                inside the library directory
            echo: If True, log all SQL statements

        Returns:
            Library instance
        """
        library_path = Path(library_path)
        init_db(library_path, echo=echo)
        session = get_session(library_path)

        logger.info(f"Opened library at {library_path}")
        return cls(library_path, session, user_id=user_id, settings=settings)

    def close(self):
        """Close library and cleanup database connection."""
        if self.session:
            self.session.close()
        close_db(self.library_path)
        logger.info("Closed library")

    def __enter__(self) -> 'Library':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def get_book(self, book_id: str) -> Optional[Book]:
        """Get book by id, or None."""
        return self.books.get(self.user_id, book_id)

    def get_book_or_raise(self, book_id: str) -> Book:
        """
        Get book by id.

        Raises:
            NotFoundError: If there is no such book
        """
        return self.books.get_or_raise(self.user_id, book_id)

    def list_books(self, filters: Optional[BookFilters] = None,
                   sort_key: str = 'createdAt', direction: str = 'desc',
                   in_bin: bool = False) -> List[Book]:
        """
        List books matching the filters, sorted.

        Args:
            filters: Filter criteria; None lists everything
            sort_key: title, author, rating, seriesPosition or createdAt
            direction: 'asc' or 'desc'
            in_bin: List the bin instead of the active books
        """
        books = self.books.list_bin(self.user_id) if in_bin else self.books.list(self.user_id)
        books = filter_books(books, filters, include_bin=in_bin)
        return sort_books(books, sort_key, direction)

    def facets(self, filters: Optional[BookFilters] = None) -> FacetCounts:
        """Facet counts over the active books."""
        return compute_facet_counts(self.books.list(self.user_id), filters)

    def search(self, query: str, record: bool = True) -> List[Book]:
        """
        Search active books and remember the query.

        Queries shorter than two characters return nothing and are not
        remembered.
        """
        results = search_books(self.books.list(self.user_id),
                               self.series.list(self.user_id), query)
        if record:
            self.recent_searches.record(query)
        return results

    def check_duplicate(self, isbn: Optional[str], title: str, author: str) -> DuplicateCheckResult:
        return check_for_duplicate(self.store, self.user_id, isbn, title, author)

    def merge_genre(self, source_id: str, target_id: str) -> int:
        return self.merge_service.merge_genre(self.user_id, source_id, target_id)

    def merge_series(self, source_id: str, target_id: str) -> int:
        return self.merge_service.merge_series(self.user_id, source_id, target_id)

    def export_library(self) -> ExportResult:
        return self.backup_service.export_library(self.user_id)

    def import_library(self, source) -> ImportResult:
        return self.backup_service.import_library(self.user_id, source)

    def health(self) -> HealthReport:
        return self.health_service.analyze(self.user_id)

    def stats(self) -> dict:
        """Collection sizes."""
        return {
            'books': self.books.count(self.user_id),
            'bin': len(self.books.list_bin(self.user_id)),
            'genres': len(self.genres.list(self.user_id)),
            'series': len(self.series.list(self.user_id)),
            'wishlist': self.wishlist.count(self.user_id),
        }
