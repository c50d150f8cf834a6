"""
Duplicate detection: ISBN validation and duplicate book lookup.

A book is a duplicate of another when the ISBNs are equal, or when both
title and author are equal after lowercasing, trimming and collapsing
whitespace. The ISBN rule is checked first.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .normalize import collapse_whitespace
from .store import BOOKS, DocumentStore

logger = logging.getLogger(__name__)

# Max books fetched for the title/author comparison
DUPLICATE_CHECK_LIMIT = 200

MATCH_ISBN = 'isbn'
MATCH_TITLE_AUTHOR = 'title-author'

_ISBN_PREFIX = re.compile(r'^isbn[-:\s]*(10|13)?[-:\s]*', re.IGNORECASE)
_ISBN_SEPARATORS = re.compile(r'[-\s]')
_ISBN_DIGITS = re.compile(r'\d{10}|\d{13}')


def clean_isbn(text: Optional[str]) -> str:
    """
    Strip an 'ISBN', 'ISBN-10' or 'ISBN-13' prefix and all dashes/spaces.

    The result is not validated; combine with is_isbn() where needed.

    Example:
        >>> clean_isbn('ISBN-10: 0-12-345678-9')
        '0123456789'
    """
    if not text:
        return ''
    return _ISBN_SEPARATORS.sub('', _ISBN_PREFIX.sub('', text))


def is_isbn(text: Optional[str]) -> bool:
    """True if the text is a 10 or 13 digit ISBN once cleaned."""
    if not text or not isinstance(text, str):
        return False
    return bool(_ISBN_DIGITS.fullmatch(clean_isbn(text)))


def normalize_key(title: Optional[str], author: Optional[str]) -> Tuple[str, str]:
    """Normalized (title, author) pair used for duplicate comparison."""
    return collapse_whitespace(title), collapse_whitespace(author)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


@dataclass(frozen=True)
class DuplicateCheckResult:
    """Outcome of a duplicate check."""
    is_duplicate: bool
    match_type: Optional[str] = None  # 'isbn', 'title-author' or None
    existing_book: Any = None


NOT_DUPLICATE = DuplicateCheckResult(False, None, None)


class DuplicateIndex:
    """
    In-memory index of owned items by ISBN and by title/author.

    Works over any records exposing ``isbn``, ``title`` and ``author``
    (typed records or raw dicts).
    """

    def __init__(self, items: Iterable[Any] = ()):
        self._by_isbn: Dict[str, Any] = {}
        self._by_key: Dict[Tuple[str, str], Any] = {}
        for item in items:
            self.add(item)

    def __len__(self) -> int:
        return len(self._by_key)

    def add(self, item: Any) -> None:
        isbn = _field(item, 'isbn')
        if isbn:
            self._by_isbn.setdefault(isbn, item)
        key = normalize_key(_field(item, 'title'), _field(item, 'author'))
        self._by_key.setdefault(key, item)

    def find(self, isbn: Optional[str], title: Optional[str],
             author: Optional[str]) -> DuplicateCheckResult:
        if isbn and isbn in self._by_isbn:
            return DuplicateCheckResult(True, MATCH_ISBN, self._by_isbn[isbn])
        key = normalize_key(title, author)
        if key in self._by_key:
            return DuplicateCheckResult(True, MATCH_TITLE_AUTHOR, self._by_key[key])
        return NOT_DUPLICATE

    def find_item(self, item: Any) -> DuplicateCheckResult:
        return self.find(_field(item, 'isbn'), _field(item, 'title'), _field(item, 'author'))


def check_for_duplicate(store: DocumentStore, user_id: str, isbn: Optional[str],
                        title: str, author: str) -> DuplicateCheckResult:
    """
    Check whether the user already owns a book.

    An ISBN, when given, is looked up first and a hit returns straight
    away. Otherwise up to DUPLICATE_CHECK_LIMIT books are fetched and
    compared on normalized title and author, both of which must match.

    Returns:
        DuplicateCheckResult; ``existing_book`` is the stored record (a
        dict with its ``id``) when a duplicate is found
    """
    if isbn:
        hits = store.list(user_id, BOOKS, filters=[('isbn', '==', isbn)], limit=1)
        if hits:
            logger.debug(f"Duplicate by ISBN {isbn}: {hits[0]['id']}")
            return DuplicateCheckResult(True, MATCH_ISBN, hits[0])

    wanted = normalize_key(title, author)
    candidates = store.list(user_id, BOOKS, limit=DUPLICATE_CHECK_LIMIT)
    for record in candidates:
        if normalize_key(record.get('title'), record.get('author')) == wanted:
            logger.debug(f"Duplicate by title/author: {record['id']}")
            return DuplicateCheckResult(True, MATCH_TITLE_AUTHOR, record)

    return NOT_DUPLICATE


def find_duplicate(candidate: Any, existing: Iterable[Any]) -> DuplicateCheckResult:
    """Two-tier duplicate check of one record against an in-memory snapshot."""
    return DuplicateIndex(existing).find_item(candidate)
