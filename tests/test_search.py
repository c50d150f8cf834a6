"""
Tests for quick search, match highlighting and recent searches.
"""

import json
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from bka.models import Book, Series
from bka.search import HighlightSpans, RecentSearches, highlight_match, search_books
from bka.settings import JsonFileSettings, MemorySettings


@pytest.fixture
def books():
    return [
        Book(id="1", title="The Colour of Magic", author="Terry Pratchett",
             series_id="dw", isbn="9780552124751"),
        Book(id="2", title="Dune", author="Frank Herbert", publisher="Chilton",
             notes="Spice must flow"),
        Book(id="3", title="Emma", author="Jane Austen", isbn="978-0-14-143958-7"),
        Book(id="4", title="Magic Binned", author="Nobody",
             deleted_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ]


@pytest.fixture
def series():
    return [Series(id="dw", name="Discworld")]


class TestSearchBooks:
    """Search over title, author, publisher, notes, ISBN and series name."""

    def test_short_query_returns_nothing(self, books, series):
        assert search_books(books, series, "d") == []
        assert search_books(books, series, "") == []
        assert search_books(books, series, None) == []

    def test_title_case_insensitive(self, books, series):
        assert [b.id for b in search_books(books, series, "DUNE")] == ["2"]

    def test_bin_books_never_returned(self, books, series):
        assert [b.id for b in search_books(books, series, "magic")] == ["1"]

    def test_publisher_and_notes(self, books, series):
        assert [b.id for b in search_books(books, series, "chilton")] == ["2"]
        assert [b.id for b in search_books(books, series, "spice")] == ["2"]

    def test_series_name(self, books, series):
        assert [b.id for b in search_books(books, series, "discworld")] == ["1"]

    def test_isbn_substring(self, books, series):
        assert [b.id for b in search_books(books, series, "0552124")] == ["1"]

    def test_isbn_compared_against_raw_query(self, books, series):
        """Hyphens in a stored ISBN are not stripped before matching."""
        assert search_books(books, series, "9780141439587") == []
        assert [b.id for b in search_books(books, series, "0-14-143958")] == ["3"]


class TestHighlightMatch:

    def test_splits_around_first_match(self):
        spans = highlight_match("Dune Messiah", "mess")
        assert spans == HighlightSpans("Dune ", "Mess", "iah")
        assert str(spans) == "Dune Messiah"

    def test_only_first_occurrence(self):
        spans = highlight_match("abcabc", "bc")
        assert spans.before == "a"
        assert spans.after == "abc"

    def test_no_match_returns_text(self):
        assert highlight_match("Dune", "xyz") == "Dune"

    def test_short_query_returns_text(self):
        assert highlight_match("Dune", "d") == "Dune"

    def test_spans_follow_original_text(self):
        """Characters whose lowercase form is longer do not shift the match."""
        spans = highlight_match("\u0130 dune", "dune")
        assert spans == HighlightSpans("\u0130 ", "dune", "")

    def test_regex_characters_in_query(self):
        spans = highlight_match("What If? (2014)", "f? (")
        assert spans.match == "f? ("


class TestRecentSearches:
    """Most recent first, deduplicated, at most five."""

    def test_empty(self):
        assert RecentSearches(MemorySettings()).read() == []

    def test_most_recent_first(self):
        recent = RecentSearches(MemorySettings())
        recent.record("dune")
        recent.record("emma")
        assert recent.read() == ["emma", "dune"]

    def test_repeat_moves_to_front(self):
        recent = RecentSearches(MemorySettings())
        for query in ("aa", "bb", "cc", "aa"):
            recent.record(query)
        assert recent.read() == ["aa", "cc", "bb"]

    def test_capped_at_five(self):
        recent = RecentSearches(MemorySettings())
        for query in ("q1", "q2", "q3", "q4", "q5", "q6", "q7"):
            recent.record(query)
        assert recent.read() == ["q7", "q6", "q5", "q4", "q3"]

    def test_short_query_not_recorded(self):
        settings = MemorySettings()
        RecentSearches(settings).record("x")
        assert settings.get("recent_searches") is None

    def test_clear(self):
        recent = RecentSearches(MemorySettings())
        recent.record("dune")
        recent.clear()
        assert recent.read() == []

    def test_ignores_malformed_stored_value(self):
        recent = RecentSearches(MemorySettings({"recent_searches": "oops"}))
        assert recent.read() == []


class TestJsonFileSettings:

    @pytest.fixture
    def temp_dir(self):
        temp_dir = tempfile.mkdtemp()
        yield Path(temp_dir)
        shutil.rmtree(temp_dir, ignore_errors=True)

    def test_persists_across_instances(self, temp_dir):
        path = temp_dir / "settings.json"
        RecentSearches(JsonFileSettings(path)).record("dune")
        assert RecentSearches(JsonFileSettings(path)).read() == ["dune"]
        assert json.loads(path.read_text())["recent_searches"] == ["dune"]

    def test_unreadable_file_treated_as_empty(self, temp_dir):
        path = temp_dir / "settings.json"
        path.write_text("{not json")
        settings = JsonFileSettings(path)
        assert settings.get("recent_searches", []) == []
        settings.set("k", 1)
        assert settings.get("k") == 1

    def test_delete_missing_key(self, temp_dir):
        settings = JsonFileSettings(temp_dir / "settings.json")
        settings.delete("nothing")
        assert not (temp_dir / "settings.json").exists()
