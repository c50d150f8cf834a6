"""Data access for the per-user collections."""

from .books import BookRepository, book_from_document
from .genres import GenreRepository, genre_from_document, genre_lookup
from .series import SeriesRepository, series_from_document, series_lookup
from .wishlist import WishlistRepository, wishlist_item_from_document

__all__ = [
    'BookRepository',
    'GenreRepository',
    'SeriesRepository',
    'WishlistRepository',
    'book_from_document',
    'genre_from_document',
    'series_from_document',
    'wishlist_item_from_document',
    'genre_lookup',
    'series_lookup',
]
