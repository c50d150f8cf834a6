"""Sorting for book lists."""

import locale
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List

from .exceptions import ValidationError
from .models import Book

SORT_KEYS = ('title', 'author', 'rating', 'seriesPosition', 'createdAt')
SORT_DIRECTIONS = ('asc', 'desc')

_KEY_ALIASES = {
    'series_position': 'seriesPosition',
    'created_at': 'createdAt',
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _text_key(value: str) -> str:
    return locale.strxfrm((value or '').casefold())


_GETTERS: Dict[str, Callable[[Book], Any]] = {
    'title': lambda b: _text_key(b.title),
    'author': lambda b: _text_key(b.author),
    # Unrated (None or 0) is treated as missing, not as the lowest rating
    'rating': lambda b: b.rating or None,
    'seriesPosition': lambda b: b.series_position,
    'createdAt': lambda b: b.created_at or _EPOCH,
}


def sort_books(books: Iterable[Book], key: str = 'createdAt', direction: str = 'asc') -> List[Book]:
    """
    Return a sorted copy of the books.

    Args:
        books: Books to sort (not modified)
        key: title, author, rating, seriesPosition or createdAt
        direction: 'asc' or 'desc'

    Books without a rating or series position always come after the ones
    that have it, in both directions. Books with equal keys keep their
    input order.

    Raises:
        ValidationError: Unknown key or direction
    """
    key = _KEY_ALIASES.get(key, key)
    if key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key: {key}")
    if direction not in SORT_DIRECTIONS:
        raise ValidationError(f"Unknown sort direction: {direction}")

    getter = _GETTERS[key]
    books = list(books)
    present = [b for b in books if getter(b) is not None]
    missing = [b for b in books if getter(b) is None]

    present.sort(key=getter, reverse=(direction == 'desc'))
    return present + missing
