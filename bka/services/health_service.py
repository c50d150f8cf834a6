"""
Library health: how complete is the metadata of each book.

Also recounts the ``bookCount`` stored on each genre.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..models import Book
from ..repositories import BookRepository, GenreRepository
from ..store import DocumentStore

logger = logging.getLogger(__name__)

# Field -> (weight, label). ISBN is tracked but not scored.
HEALTH_FIELDS = {
    'cover_image_url': (2, 'Cover'),
    'genres': (2, 'Genres'),
    'page_count': (1, 'Pages'),
    'physical_format': (1, 'Format'),
    'publisher': (1, 'Publisher'),
    'published_date': (1, 'Date'),
    'isbn': (0, 'ISBN'),
}

SCORED_FIELDS = tuple(name for name, (weight, _) in HEALTH_FIELDS.items() if weight > 0)


def _round(value: float) -> int:
    return int(value + 0.5)


def has_field_value(book: Book, name: str) -> bool:
    value = getattr(book, name, None)
    if name == 'genres':
        return isinstance(value, list) and len(value) > 0
    return bool(value)


def missing_fields(book: Book) -> List[str]:
    """Health fields the book has no value for, in HEALTH_FIELDS order."""
    return [name for name in HEALTH_FIELDS if not has_field_value(book, name)]


def book_completeness(book: Book) -> int:
    """Weighted completeness of one book, 0-100."""
    total = sum(weight for weight, _ in HEALTH_FIELDS.values())
    if total == 0:
        return 100
    score = sum(
        weight for name, (weight, _) in HEALTH_FIELDS.items()
        if weight and has_field_value(book, name)
    )
    return _round(score / total * 100)


def library_completeness(books: List[Book]) -> int:
    """
    Mean completeness across books, 0-100.

    An empty library scores 100. A library with any incomplete book never
    scores 100, even when the mean rounds up to it.
    """
    if not books:
        return 100
    scores = [book_completeness(b) for b in books]
    score = _round(sum(scores) / len(scores))
    if score == 100 and any(s < 100 for s in scores):
        return 99
    return score


@dataclass
class HealthReport:
    total_books: int
    completeness_score: int
    total_issues: int
    fixable_books: int
    issues: Dict[str, List[Book]] = field(default_factory=dict)


def analyze_library_health(books: Iterable[Book]) -> HealthReport:
    """
    Find missing metadata across active books.

    ``total_issues`` counts missing scored fields only (not ISBN).
    ``fixable_books`` are books with an ISBN, so a lookup could fill their
    missing scored fields.
    """
    active = [b for b in books if not b.in_bin]
    issues = {name: [] for name in HEALTH_FIELDS}
    for book in active:
        for name in missing_fields(book):
            issues[name].append(book)

    fixable = [
        b for b in active
        if b.isbn and any(name in SCORED_FIELDS for name in missing_fields(b))
    ]
    return HealthReport(
        total_books=len(active),
        completeness_score=library_completeness(active),
        total_issues=sum(len(issues[name]) for name in SCORED_FIELDS),
        fixable_books=len(fixable),
        issues=issues,
    )


def completeness_rating(score: int) -> Tuple[str, str]:
    """Label and colour for a completeness score."""
    if score >= 90:
        return 'Excellent', 'green'
    if score >= 70:
        return 'Good', 'green'
    if score >= 50:
        return 'Fair', 'amber'
    return 'Needs Attention', 'red'


def books_with_issues(report: HealthReport) -> List[Tuple[Book, List[str]]]:
    """Each book with the labels of its missing fields, most issues first."""
    grouped: Dict[str, Tuple[Book, List[str]]] = {}
    for name, (_, label) in HEALTH_FIELDS.items():
        for book in report.issues.get(name, []):
            grouped.setdefault(book.id, (book, []))[1].append(label)
    return sorted(grouped.values(), key=lambda entry: len(entry[1]), reverse=True)


class HealthService:
    """Library maintenance operations."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.books = BookRepository(store)
        self.genres = GenreRepository(store)

    def analyze(self, user_id: str) -> HealthReport:
        return analyze_library_health(self.books.list(user_id))

    def recount_genres(self, user_id: str) -> Tuple[int, int]:
        """
        Rewrite each genre's bookCount from the active books.

        Returns:
            (genres updated, books scanned)
        """
        books = self.books.list(user_id)
        tally = Counter(genre_id for book in books for genre_id in set(book.genres))

        updated = 0
        batch = self.store.batch(user_id)
        for genre in self.genres.list(user_id):
            count = tally.get(genre.id, 0)
            if genre.book_count != count:
                batch.update(self.genres.collection, genre.id, {'bookCount': count})
                updated += 1
        batch.commit()

        logger.info(f"Recounted genres: {updated} updated from {len(books)} books")
        return updated, len(books)
