"""
Tests for backup export and import.
"""

import json
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from bka.exceptions import (
    BackupParseError, EmptyBackupError, StoreError, UnsupportedBackupError,
)
from bka.library import Library
from bka.services.backup_service import (
    EXPORT_ID, ImportResult, backup_filename, parse_backup, write_backup,
)
from bka.settings import MemorySettings
from bka.store import BOOKS, GENRES, SERIES, WISHLIST


@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_library(temp_dir):
    """Create a temporary library for testing."""
    lib = Library.open(temp_dir / "source", settings=MemorySettings())
    yield lib
    lib.close()


def populate(lib):
    """A genre, a series, two books (one binned) and a wishlist item."""
    genre = lib.genres.create(lib.user_id, "Science Fiction", color="#3b82f6")
    series = lib.series.create(lib.user_id, "Dune", total_books=6)
    lib.books.add(lib.user_id, title="Dune", author="Frank Herbert", isbn="9780441013593",
                  rating=5, genres=[genre], series_id=series, series_position=1)
    binned = lib.books.add(lib.user_id, title="Emma", author="Jane Austen")
    lib.books.soft_delete(lib.user_id, binned)
    lib.wishlist.add(lib.user_id, title="Hyperion", author="Dan Simmons", priority="high")
    return genre, series


def counts(lib):
    return {name: len(lib.store.list(lib.user_id, name))
            for name in (BOOKS, GENRES, SERIES, WISHLIST)}


class TestParseBackup:
    """Validation happens before anything is written."""

    def test_malformed_json(self):
        with pytest.raises(BackupParseError):
            parse_backup("{not json")

    @pytest.mark.parametrize("document", [
        {"books": [{"title": "Dune", "author": "Frank Herbert"}]},
        {"version": 3, "books": [{"title": "Dune", "author": "Frank Herbert"}]},
        {"version": "2", "books": [{"title": "Dune", "author": "Frank Herbert"}]},
        {"version": True, "books": [{"title": "Dune", "author": "Frank Herbert"}]},
        [1, 2, 3],
    ])
    def test_unsupported_version(self, document):
        with pytest.raises(UnsupportedBackupError):
            parse_backup(json.dumps(document))

    def test_empty(self):
        with pytest.raises(EmptyBackupError):
            parse_backup({"version": 2, "books": [], "genres": [], "wishlist": []})

    def test_version_one_has_no_series_or_bin(self):
        sections = parse_backup({
            "version": 1,
            "books": [{"title": "Dune", "author": "Frank Herbert"}],
            "series": [{"name": "ignored"}],
        })
        assert sections["series"] == []
        assert sections["bin"] == []
        assert len(sections["books"]) == 1

    def test_non_record_entries_dropped(self):
        sections = parse_backup({"version": 2, "books": ["junk", {"title": "A", "author": "B"}]})
        assert sections["books"] == [{"title": "A", "author": "B"}]


class TestExport:

    def test_nothing_to_export(self, temp_library):
        result = temp_library.export_library()
        assert result.nothing_to_export
        assert result.document is None

    def test_export_document(self, temp_library):
        genre, series = populate(temp_library)
        result = temp_library.export_library()
        document = result.document

        assert document["version"] == 2
        assert result.counts == {"genres": 1, "series": 1, "books": 1, "wishlist": 1, "bin": 1}
        assert document["genres"][0][EXPORT_ID] == genre
        assert document["series"][0][EXPORT_ID] == series
        book = document["books"][0]
        assert "id" not in book
        assert book["genres"] == [genre]
        assert isinstance(book["createdAt"], str)
        assert document["bin"][0]["title"] == "Emma"
        # Serialisable as plain JSON
        json.dumps(document)

    def test_backup_file(self, temp_library, temp_dir):
        populate(temp_library)
        path = write_backup(temp_library.export_library().document, temp_dir / "out.json")
        assert json.loads(path.read_text(encoding="utf-8"))["version"] == 2

    def test_backup_filename(self):
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert backup_filename(when) == "book-assembly-backup-2024-05-01.json"


class TestImport:
    """Import into a second, separate library."""

    @pytest.fixture
    def target(self, temp_dir):
        lib = Library.open(temp_dir / "target", settings=MemorySettings())
        yield lib
        lib.close()

    def test_round_trip_into_empty_library(self, temp_library, target):
        populate(temp_library)
        document = temp_library.export_library().document

        result = target.import_library(json.dumps(document))

        assert result.genres_created == 1
        assert result.series_created == 1
        assert result.books_created == 1
        assert result.bin_created == 1
        assert result.wishlist_created == 1
        assert result.total_skipped == 0
        assert result.summary().startswith("Import complete")

        genre = target.genres.list(target.user_id)[0]
        series = target.series.list(target.user_id)[0]
        book = target.books.list(target.user_id)[0]
        assert genre.name == "Science Fiction"
        assert genre.color == "#3b82f6"
        assert series.total_books == 6
        assert book.genres == [genre.id]
        assert book.series_id == series.id
        assert book.series_position == 1
        assert book.rating == 5
        assert [b.title for b in target.books.list_bin(target.user_id)] == ["Emma"]

    def test_importing_twice_skips_everything(self, temp_library):
        populate(temp_library)
        document = temp_library.export_library().document
        before = counts(temp_library)

        result = temp_library.import_library(document)

        assert result.nothing_new
        assert result.total_skipped == 5
        assert result.summary() == "Nothing new to import (5 already in library)"
        assert counts(temp_library) == before

    def test_genre_matched_by_name(self, temp_library):
        lib = temp_library
        existing = lib.genres.create(lib.user_id, "Science Fiction")
        result = lib.import_library({
            "version": 2,
            "genres": [{"name": "  science  FICTION", EXPORT_ID: "old-g"}],
            "books": [{"title": "Dune", "author": "Frank Herbert", "genres": ["old-g"]}],
        })
        assert result.genres_skipped == 1
        assert result.genres_created == 0
        assert lib.books.list(lib.user_id)[0].genres == [existing]

    def test_duplicate_names_within_one_backup(self, temp_library):
        lib = temp_library
        result = lib.import_library({
            "version": 2,
            "genres": [{"name": "Fantasy", EXPORT_ID: "g1"}, {"name": "fantasy", EXPORT_ID: "g2"}],
            "books": [{"title": "Mort", "author": "Terry Pratchett", "genres": ["g1", "g2"]}],
        })
        assert result.genres_created == 1
        assert result.genres_skipped == 1
        genres = lib.genres.list(lib.user_id)
        assert len(genres) == 1
        assert lib.books.list(lib.user_id)[0].genres == [genres[0].id]

    def test_unknown_references_dropped(self, temp_library):
        lib = temp_library
        result = lib.import_library({
            "version": 2,
            "books": [{"title": "Dune", "author": "Frank Herbert", "genres": ["gone"],
                       "seriesId": "missing", "seriesPosition": 1, "rating": 9}],
        })
        assert result.books_created == 1
        assert result.dropped_references == 2
        book = lib.books.list(lib.user_id)[0]
        assert book.genres == []
        assert book.series_id is None
        assert book.series_position is None
        assert book.rating is None

    def test_books_deduplicated_against_library(self, temp_library):
        lib = temp_library
        lib.books.add(lib.user_id, title="Dune", author="Frank Herbert", isbn="9780441013593")
        result = lib.import_library({
            "version": 2,
            "books": [
                {"title": "Different", "author": "Title", "isbn": "9780441013593"},
                {"title": "dune ", "author": "FRANK herbert"},
                {"title": "Emma", "author": "Jane Austen"},
            ],
        })
        assert result.books_skipped == 2
        assert result.books_created == 1
        assert lib.books.count(lib.user_id) == 2

    def test_wishlist_skipped_when_owned(self, temp_library):
        """A wishlist item matching a book owned before or during the import is skipped."""
        lib = temp_library
        lib.books.add(lib.user_id, title="Dune", author="Frank Herbert")
        result = lib.import_library({
            "version": 2,
            "books": [{"title": "Hyperion", "author": "Dan Simmons", "isbn": "9780553283686"}],
            "wishlist": [
                {"title": "Dune", "author": "Frank Herbert"},
                {"title": "Other Title", "author": "Dan Simmons", "isbn": "9780553283686"},
                {"title": "Neuromancer", "author": "William Gibson", "priority": "urgent"},
            ],
        })
        assert result.wishlist_skipped == 2
        assert result.wishlist_created == 1
        item = lib.wishlist.list(lib.user_id)[0]
        assert item.title == "Neuromancer"
        assert item.priority is None

    def test_wishlist_deduplicated_against_wishlist(self, temp_library):
        lib = temp_library
        lib.wishlist.add(lib.user_id, title="Neuromancer", author="William Gibson")
        result = lib.import_library({
            "version": 2,
            "wishlist": [{"title": "neuromancer", "author": "william gibson"}],
        })
        assert result.nothing_new
        assert lib.wishlist.count(lib.user_id) == 1

    def test_version_one_backup(self, temp_library):
        lib = temp_library
        result = lib.import_library({
            "version": 1,
            "genres": [{"name": "Classic", EXPORT_ID: "c"}],
            "books": [{"title": "Emma", "author": "Jane Austen", "genres": ["c"]}],
        })
        assert result.books_created == 1
        assert result.genres_created == 1

    @pytest.mark.parametrize("source", [
        "{broken",
        json.dumps({"version": 3, "books": [{"title": "Dune", "author": "Frank Herbert"}]}),
        json.dumps({"books": [{"title": "Dune", "author": "Frank Herbert"}]}),
        json.dumps({"version": 2}),
    ])
    def test_invalid_backup_writes_nothing(self, temp_library, source):
        with pytest.raises((BackupParseError, UnsupportedBackupError, EmptyBackupError)):
            temp_library.import_library(source)
        assert counts(temp_library) == {BOOKS: 0, GENRES: 0, SERIES: 0, WISHLIST: 0}

    def test_failed_commit_keeps_counts(self, temp_library):
        """The whole import rolls back; skip counts still reach the caller."""
        lib = temp_library
        lib.books.add(lib.user_id, title="Dune", author="Frank Herbert")
        document = {
            "version": 2,
            "genres": [{"name": "Fantasy"}],
            "books": [{"title": "Dune", "author": "Frank Herbert"},
                      {"title": "Mort", "author": "Terry Pratchett"}],
        }

        with mock.patch.object(lib.session, "commit", side_effect=SQLAlchemyError("offline")):
            with pytest.raises(StoreError) as excinfo:
                lib.import_library(document)

        result = excinfo.value.result
        assert isinstance(result, ImportResult)
        assert result.books_skipped == 1
        assert counts(lib) == {BOOKS: 1, GENRES: 0, SERIES: 0, WISHLIST: 0}


class TestImportFieldTypes:
    """Values of the wrong type are coerced or dropped, never stored as-is."""

    def test_string_series_position_coerced(self, temp_library):
        lib = temp_library
        lib.import_library({
            "version": 2,
            "series": [{"name": "Dune", EXPORT_ID: "s"}],
            "books": [
                {"title": "Dune Messiah", "author": "Frank Herbert", "seriesId": "s",
                 "seriesPosition": "2", "pageCount": "256"},
                {"title": "Dune", "author": "Frank Herbert", "seriesId": "s", "seriesPosition": 1},
            ],
        })
        books = lib.list_books(sort_key="seriesPosition", direction="asc")
        assert [b.title for b in books] == ["Dune", "Dune Messiah"]
        assert books[1].series_position == 2
        assert books[1].page_count == 256

        series_id = lib.series.list(lib.user_id)[0].id
        assert [b.title for b in lib.books.list_by_series(lib.user_id, series_id)] == [
            "Dune", "Dune Messiah",
        ]

    def test_unusable_counts_dropped(self, temp_library):
        lib = temp_library
        lib.import_library({
            "version": 2,
            "books": [{"title": "Dune", "author": "Frank Herbert",
                       "pageCount": "many", "rating": True}],
        })
        book = lib.books.list(lib.user_id)[0]
        assert book.page_count is None
        assert book.rating is None

    def test_non_text_title_counted_as_skipped(self, temp_library):
        lib = temp_library
        result = lib.import_library({
            "version": 2,
            "books": [{"title": 1984, "author": "George Orwell"},
                      {"title": "Animal Farm", "author": "George Orwell"}],
            "wishlist": [{"title": "Homage to Catalonia", "author": ["George Orwell"]}],
        })
        assert result.books_skipped == 1
        assert result.books_created == 1
        assert result.wishlist_skipped == 1
        assert [b.title for b in lib.books.list(lib.user_id)] == ["Animal Farm"]

    def test_non_text_names_skipped(self, temp_library):
        lib = temp_library
        result = lib.import_library({
            "version": 2,
            "genres": [{"name": 42, EXPORT_ID: "g"}],
            "series": [{"name": {"en": "Dune"}, EXPORT_ID: "s"}],
            "books": [{"title": "Dune", "author": "Frank Herbert",
                       "genres": ["g", {"id": "x"}], "seriesId": "s"}],
        })
        assert result.genres_skipped == 1
        assert result.series_skipped == 1
        assert result.books_created == 1
        book = lib.books.list(lib.user_id)[0]
        assert book.genres == []
        assert book.series_id is None

    def test_malformed_read_timestamps_ignored(self, temp_library):
        lib = temp_library
        lib.import_library({
            "version": 2,
            "books": [{"title": "Dune", "author": "Frank Herbert",
                       "reads": [{"startedAt": {"seconds": "soon"}, "finishedAt": None}]}],
        })
        book = lib.books.list(lib.user_id)[0]
        assert book.reads[0].started_at is None


class TestImportResultSummary:

    def test_pluralisation(self):
        result = ImportResult(books_created=1, genres_created=2, books_skipped=3)
        assert result.summary() == "Import complete: 1 book, 2 genres added, 3 skipped as duplicates"

    def test_no_skips(self):
        assert ImportResult(series_created=1).summary() == "Import complete: 1 series added"
