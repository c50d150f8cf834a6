"""
Book filtering and facet counts.

Criteria are ANDed together; criteria that take several values (statuses,
genres, series) match when any one value matches. Facet counts tell the
caller how many books each filter option would leave if chosen, given all
the other active criteria.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Book
from .normalize import normalize_author
from .status import derive_status, FINISHED, READING, WANT_TO_READ

RATING_THRESHOLDS = (1, 2, 3, 4, 5)

FACET_DIMENSIONS = ('statuses', 'genre_ids', 'series_ids', 'min_rating', 'author')


@dataclass
class BookFilters:
    """Active filter criteria. Empty values impose no constraint."""
    search: Optional[str] = None
    statuses: List[str] = field(default_factory=list)
    genre_ids: List[str] = field(default_factory=list)
    series_ids: List[str] = field(default_factory=list)
    min_rating: Optional[int] = None
    author: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.search or self.statuses or self.genre_ids
                    or self.series_ids or self.min_rating or self.author)

    def without(self, dimension: str) -> 'BookFilters':
        """Copy of these filters with one dimension cleared."""
        if dimension not in FACET_DIMENSIONS:
            raise ValueError(f"Unknown filter dimension: {dimension}")
        empty = [] if dimension in ('statuses', 'genre_ids', 'series_ids') else None
        return replace(self, **{dimension: empty})


def matches(book: Book, filters: BookFilters) -> bool:
    """Check a single book against the filters."""
    if filters.search:
        needle = filters.search.lower()
        if needle not in (book.title or '').lower() and needle not in (book.author or '').lower():
            return False

    if filters.statuses:
        if derive_status(book) not in filters.statuses:
            return False

    if filters.genre_ids:
        book_genres = book.genres or []
        if not any(genre_id in book_genres for genre_id in filters.genre_ids):
            return False

    if filters.series_ids:
        if not book.series_id or book.series_id not in filters.series_ids:
            return False

    if filters.min_rating:
        if not book.rating or book.rating < filters.min_rating:
            return False

    if filters.author:
        if (book.author or '').lower() != filters.author.lower():
            return False

    return True


def filter_books(books: Iterable[Book], filters: Optional[BookFilters] = None,
                 include_bin: bool = False) -> List[Book]:
    """
    Filter books by the given criteria, keeping input order.

    Args:
        books: Books to filter
        filters: Criteria; None or empty criteria keep every book
        include_bin: Keep soft-deleted books (bin view)

    Returns:
        Matching books
    """
    filters = filters or BookFilters()
    return [
        book for book in books
        if (include_bin or not book.in_bin) and matches(book, filters)
    ]


@dataclass
class FacetCounts:
    """Per-option counts under all criteria except the option's own."""
    statuses: Dict[str, int] = field(default_factory=dict)
    genres: Dict[str, int] = field(default_factory=dict)
    series: Dict[str, int] = field(default_factory=dict)
    ratings: Dict[int, int] = field(default_factory=dict)
    authors: Dict[str, int] = field(default_factory=dict)

    def status_count(self, status: str) -> int:
        return self.statuses.get(status, 0)

    def genre_count(self, genre_id: str) -> int:
        return self.genres.get(genre_id, 0)

    def series_count(self, series_id: str) -> int:
        return self.series.get(series_id, 0)

    def rating_count(self, threshold: int) -> int:
        return self.ratings.get(threshold, 0)

    def author_count(self, author: str) -> int:
        author_lower = author.lower()
        return sum(n for name, n in self.authors.items() if name.lower() == author_lower)


def compute_facet_counts(books: Iterable[Book], filters: Optional[BookFilters] = None) -> FacetCounts:
    """
    Count matching books per filter option.

    Each dimension (status, genre, series, rating, author) is counted over
    the books that pass every *other* active criterion. Rating counts are
    cumulative: a book rated 4 counts towards thresholds 1 to 4. Authors are
    grouped case-insensitively under the first spelling seen.
    """
    books = [b for b in books if not b.in_bin]
    filters = filters or BookFilters()

    status_pool = filter_books(books, filters.without('statuses'))
    statuses = Counter({WANT_TO_READ: 0, READING: 0, FINISHED: 0})
    statuses.update(derive_status(b) for b in status_pool)

    genre_pool = filter_books(books, filters.without('genre_ids'))
    genres: Counter = Counter()
    for book in genre_pool:
        genres.update(set(book.genres or []))

    series_pool = filter_books(books, filters.without('series_ids'))
    series = Counter(b.series_id for b in series_pool if b.series_id)

    rating_pool = filter_books(books, filters.without('min_rating'))
    ratings = {
        threshold: sum(1 for b in rating_pool if b.rating and b.rating >= threshold)
        for threshold in RATING_THRESHOLDS
    }

    author_pool = filter_books(books, filters.without('author'))
    authors: Dict[str, int] = {}
    spellings: Dict[str, str] = {}
    for book in author_pool:
        if not book.author:
            continue
        name = spellings.setdefault(book.author.lower(), book.author)
        authors[name] = authors.get(name, 0) + 1

    return FacetCounts(
        statuses=dict(statuses),
        genres=dict(genres),
        series=dict(series),
        ratings=ratings,
        authors=authors,
    )


def extract_authors(books: Iterable[Book]) -> List[Tuple[str, int]]:
    """
    Unique authors with book counts, most books first then alphabetical.

    Names are grouped by their normalized form (case and punctuation
    insensitive); the first spelling seen is reported.
    """
    counts: Dict[str, List] = {}
    for book in books:
        if not book.author or book.in_bin:
            continue
        key = normalize_author(book.author)
        if key not in counts:
            counts[key] = [book.author, 0]
        counts[key][1] += 1

    return sorted(
        ((name, count) for name, count in counts.values()),
        key=lambda item: (-item[1], item[0].lower()),
    )
