"""Genres repository."""

import logging
from typing import Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import Genre
from ..normalize import (
    DEFAULT_GENRE_COLOR, next_available_color, normalize_color,
    normalize_genre_name, to_datetime,
)
from ..store import GENRES
from .base import Repository, stamp_new, stamp_update

logger = logging.getLogger(__name__)


def genre_from_document(record: Dict) -> Genre:
    return Genre(
        id=record['id'],
        name=record.get('name') or '',
        color=record.get('color') or DEFAULT_GENRE_COLOR,
        book_count=record.get('bookCount') or 0,
        created_at=to_datetime(record.get('createdAt')),
        updated_at=to_datetime(record.get('updatedAt')),
    )


def genre_lookup(genres: List[Genre]) -> Dict[str, Genre]:
    """Map genre id to genre."""
    return {g.id: g for g in genres}


class GenreRepository(Repository):
    """Data access for the genres collection."""

    collection = GENRES

    def list(self, user_id: str) -> List[Genre]:
        """All genres ordered by name."""
        records = self.store.list(user_id, GENRES, order_by=('name', 'asc'))
        return [genre_from_document(r) for r in records]

    def get(self, user_id: str, genre_id: str) -> Optional[Genre]:
        record = self.store.get(user_id, GENRES, genre_id)
        return genre_from_document(record) if record else None

    def get_or_raise(self, user_id: str, genre_id: str) -> Genre:
        genre = self.get(user_id, genre_id)
        if genre is None:
            raise NotFoundError(GENRES, genre_id)
        return genre

    def find_by_name(self, user_id: str, name: str) -> Optional[Genre]:
        """Find a genre by name, ignoring case and extra whitespace."""
        wanted = normalize_genre_name(name)
        for genre in self.list(user_id):
            if normalize_genre_name(genre.name) == wanted:
                return genre
        return None

    def create(self, user_id: str, name: str, color: Optional[str] = None) -> str:
        """
        Create a genre.

        Without a colour, the first unused palette colour is chosen.

        Raises:
            ValidationError: Empty name or a genre with this name exists
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError("Genre name is required")
        existing = self.list(user_id)
        wanted = normalize_genre_name(name)
        if any(normalize_genre_name(g.name) == wanted for g in existing):
            raise ValidationError(f"Genre already exists: {name}")

        if color:
            color = normalize_color(color)
        else:
            color = next_available_color(g.color for g in existing)

        genre_id = self.store.create(user_id, GENRES, stamp_new({'name': name, 'color': color}))
        logger.info(f"Created genre {genre_id}: {name}")
        return genre_id

    def update(self, user_id: str, genre_id: str, name: Optional[str] = None,
               color: Optional[str] = None, book_count: Optional[int] = None) -> None:
        document = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Genre name is required")
            document['name'] = name.strip()
        if color is not None:
            document['color'] = normalize_color(color)
        if book_count is not None:
            document['bookCount'] = book_count
        self.store.update(user_id, GENRES, genre_id, stamp_update(document))

    def delete(self, user_id: str, genre_id: str) -> None:
        """
        Delete a genre.

        Books keep any reference to the deleted genre; such references are
        simply not resolved when displayed.
        """
        self.store.delete(user_id, GENRES, genre_id)
        logger.info(f"Deleted genre {genre_id}")
