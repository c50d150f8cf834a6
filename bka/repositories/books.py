"""
Books repository.

Soft-deleted books (``deletedAt`` set) stay in the collection as the bin
and are left out of every listing except the bin listing.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import Book, ReadAttempt
from ..normalize import now_millis, to_datetime, to_millis
from ..store import BOOKS
from .base import (
    Repository, positive_int_or_none, rating_or_none, stamp_new, stamp_update,
    to_document,
)

logger = logging.getLogger(__name__)

BOOK_FIELDS = {
    'title': 'title',
    'author': 'author',
    'isbn': 'isbn',
    'publisher': 'publisher',
    'published_date': 'publishedDate',
    'page_count': 'pageCount',
    'physical_format': 'physicalFormat',
    'rating': 'rating',
    'reads': 'reads',
    'genres': 'genres',
    'series_id': 'seriesId',
    'series_position': 'seriesPosition',
    'cover_image_url': 'coverImageUrl',
    'notes': 'notes',
}


def reads_from_document(reads: Any) -> List[ReadAttempt]:
    if not isinstance(reads, list):
        return []
    return [
        ReadAttempt(
            started_at=to_datetime(r.get('startedAt')),
            finished_at=to_datetime(r.get('finishedAt')),
        )
        for r in reads if isinstance(r, dict)
    ]


def reads_to_document(reads: Iterable[Any]) -> List[Dict[str, Any]]:
    """Store read attempts as epoch milliseconds, in the given order."""
    stored = []
    for attempt in reads or []:
        if isinstance(attempt, ReadAttempt):
            started, finished = attempt.started_at, attempt.finished_at
        else:
            started = attempt.get('startedAt', attempt.get('started_at'))
            finished = attempt.get('finishedAt', attempt.get('finished_at'))
        stored.append({'startedAt': to_millis(started), 'finishedAt': to_millis(finished)})
    return stored


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop empty and repeated ids, keeping first-seen order."""
    seen = []
    for item in ids or []:
        if item and item not in seen:
            seen.append(item)
    return seen


def book_from_document(record: Dict[str, Any]) -> Book:
    """Build a Book from a stored record."""
    return Book(
        id=record['id'],
        title=record.get('title') or '',
        author=record.get('author') or '',
        isbn=record.get('isbn') or None,
        publisher=record.get('publisher') or None,
        published_date=record.get('publishedDate') or None,
        page_count=positive_int_or_none(record.get('pageCount')),
        physical_format=record.get('physicalFormat') or None,
        rating=rating_or_none(record.get('rating')),
        reads=reads_from_document(record.get('reads')),
        genres=unique_ids(record.get('genres') or []),
        series_id=record.get('seriesId') or None,
        series_position=positive_int_or_none(record.get('seriesPosition')),
        cover_image_url=record.get('coverImageUrl') or None,
        notes=record.get('notes') or None,
        created_at=to_datetime(record.get('createdAt')),
        updated_at=to_datetime(record.get('updatedAt')),
        deleted_at=to_datetime(record.get('deletedAt')),
    )


def prepare_book_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and convert book fields into a stored document.

    Raises:
        ValidationError: Empty title/author, rating outside 1-5 or a
            non-positive series position
    """
    for required in ('title', 'author'):
        if required in fields and not (fields[required] or '').strip():
            raise ValidationError(f"Book {required} is required")

    rating = fields.get('rating')
    if rating is not None and not (isinstance(rating, int) and 1 <= rating <= 5):
        raise ValidationError("Rating must be a whole number from 1 to 5")

    if fields.get('series_position') is not None:
        position = positive_int_or_none(fields['series_position'])
        if position is None:
            raise ValidationError("Series position must be a positive whole number")
        fields = {**fields, 'series_position': position}

    document = to_document(fields, BOOK_FIELDS)
    if 'reads' in document:
        document['reads'] = reads_to_document(document['reads'])
    if 'genres' in document:
        document['genres'] = unique_ids(document['genres'])
    for text_field in ('title', 'author'):
        if text_field in document:
            document[text_field] = document[text_field].strip()
    return document


class BookRepository(Repository):
    """Data access for the books collection."""

    collection = BOOKS

    def list(self, user_id: str) -> List[Book]:
        """All books not in the bin, newest first."""
        records = self.store.list(
            user_id, BOOKS,
            filters=[('deletedAt', '==', None)],
            order_by=('createdAt', 'desc'),
        )
        return [book_from_document(r) for r in records]

    def list_bin(self, user_id: str) -> List[Book]:
        """Soft-deleted books, most recently deleted first."""
        records = self.store.list(
            user_id, BOOKS,
            filters=[('deletedAt', '!=', None)],
            order_by=('deletedAt', 'desc'),
        )
        return [book_from_document(r) for r in records]

    def list_recent(self, user_id: str, count: int = 10) -> List[Book]:
        records = self.store.list(
            user_id, BOOKS,
            filters=[('deletedAt', '==', None)],
            order_by=('createdAt', 'desc'),
            limit=count,
        )
        return [book_from_document(r) for r in records]

    def list_by_series(self, user_id: str, series_id: str) -> List[Book]:
        """Books in a series, ordered by position."""
        records = self.store.list(
            user_id, BOOKS,
            filters=[('seriesId', '==', series_id), ('deletedAt', '==', None)],
            order_by=('seriesPosition', 'asc'),
        )
        return [book_from_document(r) for r in records]

    def count(self, user_id: str) -> int:
        return len(self.store.list(user_id, BOOKS, filters=[('deletedAt', '==', None)]))

    def get(self, user_id: str, book_id: str) -> Optional[Book]:
        record = self.store.get(user_id, BOOKS, book_id)
        return book_from_document(record) if record else None

    def get_or_raise(self, user_id: str, book_id: str) -> Book:
        book = self.get(user_id, book_id)
        if book is None:
            raise NotFoundError(BOOKS, book_id)
        return book

    def add(self, user_id: str, **fields) -> str:
        """
        Add a new book.

        Args:
            user_id: Owning user
            **fields: Book fields (title and author required)

        Returns:
            New book id
        """
        if not fields.get('title') or not fields.get('author'):
            raise ValidationError("Book title and author are required")
        document = prepare_book_fields(fields)
        document.setdefault('genres', [])
        document.setdefault('reads', [])
        document['deletedAt'] = None
        book_id = self.store.create(user_id, BOOKS, stamp_new(document))
        logger.info(f"Added book {book_id}: {document['title']}")
        return book_id

    def update(self, user_id: str, book_id: str, **fields) -> None:
        """Update the given fields of a book."""
        document = prepare_book_fields(fields)
        self.store.update(user_id, BOOKS, book_id, stamp_update(document))
        logger.debug(f"Updated book {book_id}: {sorted(document)}")

    def soft_delete(self, user_id: str, book_id: str) -> None:
        """Move a book to the bin."""
        self.store.update(user_id, BOOKS, book_id, stamp_update({'deletedAt': now_millis()}))
        logger.info(f"Moved book {book_id} to bin")

    def restore(self, user_id: str, book_id: str) -> None:
        """Take a book back out of the bin."""
        self.store.update(user_id, BOOKS, book_id, stamp_update({'deletedAt': None}))
        logger.info(f"Restored book {book_id}")

    def delete(self, user_id: str, book_id: str) -> None:
        """Permanently delete a book."""
        self.store.delete(user_id, BOOKS, book_id)
        logger.info(f"Deleted book {book_id}")

    def start_reading(self, user_id: str, book_id: str, when: Any = None) -> None:
        """Append a new read attempt started now (or at ``when``)."""
        book = self.get_or_raise(user_id, book_id)
        started = to_datetime(when) if when is not None else to_datetime(now_millis())
        reads = list(book.reads) + [ReadAttempt(started_at=started)]
        self.update(user_id, book_id, reads=reads)

    def finish_reading(self, user_id: str, book_id: str, when: Any = None) -> None:
        """
        Mark the current read attempt finished.

        When the last attempt is not in progress, a new finished-only
        attempt is appended instead.
        """
        book = self.get_or_raise(user_id, book_id)
        finished = to_datetime(when) if when is not None else to_datetime(now_millis())
        reads = list(book.reads)
        if reads and reads[-1].started_at and not reads[-1].finished_at:
            reads[-1] = ReadAttempt(started_at=reads[-1].started_at, finished_at=finished)
        else:
            reads.append(ReadAttempt(finished_at=finished))
        self.update(user_id, book_id, reads=reads)
