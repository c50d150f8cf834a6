"""
Merge one genre or series into another.

Every book referencing the source is rewritten to reference the target,
and the source is deleted, all in a single batch.
"""

import logging
from typing import List

from ..exceptions import ValidationError
from ..normalize import now_millis
from ..store import BOOKS, GENRES, SERIES, DocumentStore

logger = logging.getLogger(__name__)


def merged_genres(genres: List[str], source_id: str, target_id: str) -> List[str]:
    """
    Replace ``source_id`` with ``target_id`` in a genre list.

    Order of the remaining genres is kept and the target appears once.

    Example:
        >>> merged_genres(['a', 'src', 'b'], 'src', 'b')
        ['a', 'b']
    """
    result = []
    for genre_id in genres:
        if genre_id == source_id:
            genre_id = target_id
        if genre_id not in result:
            result.append(genre_id)
    if target_id not in result:
        result.append(target_id)
    return result


class MergeService:
    """Batch rewrite of genre and series references."""

    def __init__(self, store: DocumentStore):
        """
        Initialize the merge service.

        Args:
            store: Document store holding the user's collections
        """
        self.store = store

    def merge_genre(self, user_id: str, source_id: str, target_id: str) -> int:
        """
        Move every book from one genre to another and delete the source.

        Args:
            user_id: Owning user
            source_id: Genre being merged away
            target_id: Genre that receives the books

        Returns:
            Number of books rewritten. When no book references the source,
            nothing is written and the source genre is kept.
        """
        if source_id == target_id:
            raise ValidationError("Cannot merge a genre into itself")

        books = self.store.list(
            user_id, BOOKS, filters=[('genres', 'array-contains', source_id)]
        )
        if not books:
            logger.info(f"No books in genre {source_id}, nothing to merge")
            return 0

        now = now_millis()
        batch = self.store.batch(user_id)
        for record in books:
            batch.update(BOOKS, record['id'], {
                'genres': merged_genres(record.get('genres') or [], source_id, target_id),
                'updatedAt': now,
            })
        batch.delete(GENRES, source_id)
        batch.commit()

        logger.info(f"Merged genre {source_id} into {target_id}: {len(books)} books")
        return len(books)

    def merge_series(self, user_id: str, source_id: str, target_id: str) -> int:
        """
        Move every book from one series to another and delete the source.

        Series positions are left as they were.

        Returns:
            Number of books rewritten, 0 when the source has no books (in
            which case the source series is kept)
        """
        if source_id == target_id:
            raise ValidationError("Cannot merge a series into itself")

        books = self.store.list(user_id, BOOKS, filters=[('seriesId', '==', source_id)])
        if not books:
            logger.info(f"No books in series {source_id}, nothing to merge")
            return 0

        now = now_millis()
        batch = self.store.batch(user_id)
        for record in books:
            batch.update(BOOKS, record['id'], {'seriesId': target_id, 'updatedAt': now})
        batch.delete(SERIES, source_id)
        batch.commit()

        logger.info(f"Merged series {source_id} into {target_id}: {len(books)} books")
        return len(books)
