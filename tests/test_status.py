"""
Tests for reading status derivation.
"""

from datetime import datetime, timezone

from bka.models import Book, ReadAttempt
from bka.status import FINISHED, READING, STATUS_LABELS, WANT_TO_READ, derive_status


def at(day):
    return datetime(2024, 1, day, tzinfo=timezone.utc)


def book_with(*reads):
    return Book(id="b1", title="Dune", author="Frank Herbert", reads=list(reads))


class TestDeriveStatus:
    """Status comes from the last read attempt."""

    def test_no_reads_is_want_to_read(self):
        """A book never started is want-to-read."""
        assert derive_status(book_with()) == WANT_TO_READ

    def test_started_only_is_reading(self):
        assert derive_status(book_with(ReadAttempt(started_at=at(1)))) == READING

    def test_finished_is_finished(self):
        assert derive_status(book_with(ReadAttempt(at(1), at(5)))) == FINISHED

    def test_finish_without_start_is_finished(self):
        """A finish date alone still counts as finished."""
        assert derive_status(book_with(ReadAttempt(finished_at=at(5)))) == FINISHED

    def test_empty_attempt_is_want_to_read(self):
        assert derive_status(book_with(ReadAttempt())) == WANT_TO_READ

    def test_reread_in_progress(self):
        """Finished once, started again: reading."""
        book = book_with(ReadAttempt(at(1), at(5)), ReadAttempt(started_at=at(10)))
        assert derive_status(book) == READING

    def test_last_element_wins_even_when_out_of_order(self):
        """
        Attempts are not re-sorted by date: an older finished attempt
        appended after a newer in-progress one makes the book finished.
        """
        book = book_with(ReadAttempt(started_at=at(20)), ReadAttempt(at(1), at(2)))
        assert derive_status(book) == FINISHED

    def test_last_element_wins_in_progress_out_of_order(self):
        book = book_with(ReadAttempt(at(10), at(15)), ReadAttempt(started_at=at(1)))
        assert derive_status(book) == READING

    def test_labels_cover_every_status(self):
        assert set(STATUS_LABELS) == {WANT_TO_READ, READING, FINISHED}
        assert STATUS_LABELS[READING] == "Currently Reading"
