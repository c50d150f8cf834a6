"""
Typed records for books, genres, series and wishlist items.

Repositories build these from stored documents; every timestamp field is
already an aware UTC ``datetime`` (or None) by the time it lands here.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

READING_STATUSES = ('want-to-read', 'reading', 'finished')
WISHLIST_PRIORITIES = ('high', 'medium', 'low')

PHYSICAL_FORMATS = (
    'Paperback',
    'Hardcover',
    'Mass Market Paperback',
    'Trade Paperback',
    'Library Binding',
    'Spiral-bound',
    'Audio CD',
    'Ebook',
)


def canonical_format(text: Optional[str]) -> Optional[str]:
    """Spelling from PHYSICAL_FORMATS matching text case-insensitively, or None."""
    wanted = ' '.join((text or '').split()).lower()
    for known in PHYSICAL_FORMATS:
        if known.lower() == wanted:
            return known
    return None


@dataclass
class ReadAttempt:
    """One start/finish record in a book's reading history."""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class Book:
    """A book in the user's library."""
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    physical_format: Optional[str] = None
    rating: Optional[int] = None  # 1-5
    reads: List[ReadAttempt] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    series_id: Optional[str] = None
    series_position: Optional[int] = None
    cover_image_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def in_bin(self) -> bool:
        """True when the book has been soft-deleted."""
        return self.deleted_at is not None

    def __repr__(self):
        return f"<Book(id={self.id!r}, title={self.title[:50]!r})>"


@dataclass
class Genre:
    """A user-defined genre label."""
    id: str
    name: str
    color: str = '#6b7280'
    book_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Series:
    """A named series of books."""
    id: str
    name: str
    total_books: Optional[int] = None
    book_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class WishlistItem:
    """A book the user wants but does not own."""
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    cover_image_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    priority: Optional[str] = None  # high, medium, low
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
