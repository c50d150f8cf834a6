"""Series repository."""

import logging
from typing import Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import Series
from ..normalize import collapse_whitespace, to_datetime
from ..store import BOOKS, SERIES
from .base import Repository, positive_int_or_none, stamp_new, stamp_update

logger = logging.getLogger(__name__)


def series_from_document(record: Dict) -> Series:
    return Series(
        id=record['id'],
        name=record.get('name') or '',
        total_books=positive_int_or_none(record.get('totalBooks')),
        book_count=record.get('bookCount') or 0,
        created_at=to_datetime(record.get('createdAt')),
        updated_at=to_datetime(record.get('updatedAt')),
    )


def series_lookup(series: List[Series]) -> Dict[str, Series]:
    """Map series id to series."""
    return {s.id: s for s in series}


class SeriesRepository(Repository):
    """Data access for the series collection."""

    collection = SERIES

    def list(self, user_id: str) -> List[Series]:
        """All series ordered by name."""
        records = self.store.list(user_id, SERIES, order_by=('name', 'asc'))
        return [series_from_document(r) for r in records]

    def get(self, user_id: str, series_id: str) -> Optional[Series]:
        record = self.store.get(user_id, SERIES, series_id)
        return series_from_document(record) if record else None

    def get_or_raise(self, user_id: str, series_id: str) -> Series:
        series = self.get(user_id, series_id)
        if series is None:
            raise NotFoundError(SERIES, series_id)
        return series

    def find_by_name(self, user_id: str, name: str) -> Optional[Series]:
        """Find a series by name, ignoring case and extra whitespace."""
        wanted = collapse_whitespace(name)
        for series in self.list(user_id):
            if collapse_whitespace(series.name) == wanted:
                return series
        return None

    def create(self, user_id: str, name: str, total_books: Optional[int] = None) -> str:
        """
        Create a series.

        Raises:
            ValidationError: Empty name or a series with this name exists
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError("Series name is required")
        if self.find_by_name(user_id, name):
            raise ValidationError(f"Series already exists: {name}")

        series_id = self.store.create(user_id, SERIES, stamp_new({
            'name': name,
            'totalBooks': positive_int_or_none(total_books),
        }))
        logger.info(f"Created series {series_id}: {name}")
        return series_id

    def update(self, user_id: str, series_id: str, name: Optional[str] = None,
               total_books: Optional[int] = None, book_count: Optional[int] = None) -> None:
        document = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Series name is required")
            document['name'] = name.strip()
        if total_books is not None:
            # Zero or negative clears the expected total
            document['totalBooks'] = positive_int_or_none(total_books)
        if book_count is not None:
            document['bookCount'] = book_count
        self.store.update(user_id, SERIES, series_id, stamp_update(document))

    def delete(self, user_id: str, series_id: str) -> int:
        """
        Delete a series, first unlinking every book that references it.

        The unlinking and the deletion are committed as one batch.

        Returns:
            Number of books unlinked
        """
        books = self.store.list(user_id, BOOKS, filters=[('seriesId', '==', series_id)])

        batch = self.store.batch(user_id)
        for record in books:
            batch.update(BOOKS, record['id'], stamp_update({
                'seriesId': None,
                'seriesPosition': None,
            }))
        batch.delete(SERIES, series_id)
        batch.commit()

        logger.info(f"Deleted series {series_id}, unlinked {len(books)} books")
        return len(books)
