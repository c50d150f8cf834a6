"""
Quick search over the library.

Matches a query against title, author, publisher, notes, ISBN and series
name, highlights the first match in a display string, and keeps a short
list of recent searches in a settings store.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from .models import Book, Series
from .settings import SettingsStore

MIN_QUERY_LENGTH = 2
MAX_RECENT_SEARCHES = 5
RECENT_SEARCHES_KEY = 'recent_searches'


def _norm(text: Optional[str]) -> str:
    if not text:
        return ''
    return text.lower().strip()


def book_matches(book: Book, query: str, series_lookup: Dict[str, Series]) -> bool:
    """Check whether a book matches a (already long enough) query."""
    q = _norm(query)

    if q in _norm(book.title):
        return True
    if q in _norm(book.author):
        return True
    if q in _norm(book.publisher):
        return True
    if q in _norm(book.notes):
        return True
    # ISBN is compared against the raw query
    if book.isbn and query in book.isbn:
        return True
    if book.series_id:
        series = series_lookup.get(book.series_id)
        if series and q in _norm(series.name):
            return True
    return False


def search_books(books: Iterable[Book], series: Iterable[Series], query: Optional[str]) -> List[Book]:
    """
    Find books matching a search query.

    Queries shorter than two characters return nothing. Soft-deleted books
    are never returned.

    Args:
        books: Books to search
        series: Series used to resolve series names
        query: Search text

    Returns:
        Matching books in input order
    """
    if not query or len(query) < MIN_QUERY_LENGTH:
        return []

    series_lookup = {s.id: s for s in series}
    return [b for b in books if not b.in_bin and book_matches(b, query, series_lookup)]


@dataclass(frozen=True)
class HighlightSpans:
    """A display string split around a highlighted match."""
    before: str
    match: str
    after: str

    def __str__(self) -> str:
        return f"{self.before}{self.match}{self.after}"


def highlight_match(text: str, query: Optional[str]) -> Union[HighlightSpans, str]:
    """
    Split ``text`` around the first case-insensitive occurrence of ``query``.

    Returns:
        HighlightSpans, or ``text`` unchanged when the query is too short or
        does not occur
    """
    if not text or not query or len(query) < MIN_QUERY_LENGTH:
        return text

    needle = query.strip()
    if not needle:
        return text

    # Matched on the original text so the spans index into it directly
    found = re.search(re.escape(needle), text, re.IGNORECASE)
    if found is None:
        return text

    start, end = found.span()
    return HighlightSpans(text[:start], text[start:end], text[end:])


class RecentSearches:
    """Most-recent-first list of past queries, capped at five."""

    def __init__(self, settings: SettingsStore, limit: int = MAX_RECENT_SEARCHES):
        self.settings = settings
        self.limit = limit

    def read(self) -> List[str]:
        stored = self.settings.get(RECENT_SEARCHES_KEY, [])
        if not isinstance(stored, list):
            return []
        return [s for s in stored if isinstance(s, str)][:self.limit]

    def record(self, query: str) -> List[str]:
        """Add a query to the front, dropping an earlier copy of it."""
        if not query or len(query) < MIN_QUERY_LENGTH:
            return self.read()

        updated = [query] + [s for s in self.read() if s != query]
        updated = updated[:self.limit]
        self.settings.set(RECENT_SEARCHES_KEY, updated)
        return updated

    def clear(self) -> None:
        self.settings.delete(RECENT_SEARCHES_KEY)
