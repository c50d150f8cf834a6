"""
Tests for the bka command line.
"""

import json
import shutil
import tempfile
from pathlib import Path
from unittest import mock

import pytest
from typer.testing import CliRunner

from bka import cli
from bka.cli import app
from bka.exceptions import StoreError
from bka.library import Library
from bka.services.lookup_service import LookupResult, LookupService
from bka.status import FINISHED, READING, derive_status
from bka.store import WriteBatch

runner = CliRunner()


@pytest.fixture
def workspace(monkeypatch):
    """Temporary directory with the config file redirected into it."""
    temp_dir = Path(tempfile.mkdtemp())
    config_path = temp_dir / "config" / "config.json"
    monkeypatch.setattr("bka.config.get_config_path", lambda: config_path)
    monkeypatch.setattr("bka.cli.get_config_path", lambda: config_path)
    monkeypatch.delenv("GOOGLE_BOOKS_API_KEY", raising=False)
    # Wide enough that table cells are not wrapped
    monkeypatch.setattr(cli.console, "width", 200)
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def library_path(workspace):
    """An initialized, empty library."""
    path = workspace / "library"
    result = runner.invoke(app, ["init", str(path)])
    assert result.exit_code == 0
    return path


def add_book(path, **fields):
    with Library.open(path) as lib:
        return lib.books.add(lib.user_id, **fields)


def get_book(path, book_id):
    with Library.open(path) as lib:
        return lib.get_book(book_id)


class TestInitAndAdd:
    """Creating a library and adding books."""

    def test_init_creates_database(self, library_path):
        assert (library_path / "library.db").exists()

    def test_add_and_list(self, library_path):
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--isbn", "978-0-441-01359-3",
                                     "--rating", "5"])
        assert result.exit_code == 0
        assert "Added 'Dune'" in result.stdout

        with Library.open(library_path) as lib:
            book = lib.books.list(lib.user_id)[0]
        assert book.isbn == "9780441013593"
        assert book.rating == 5

        result = runner.invoke(app, ["list", str(library_path)])
        assert result.exit_code == 0
        assert "Dune" in result.stdout

    def test_add_duplicate_refused(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["add", str(library_path), "--title", " dune ",
                                     "--author", "FRANK HERBERT"])
        assert result.exit_code == 1
        assert "Already in library" in result.stdout

    def test_add_duplicate_forced(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--force"])
        assert result.exit_code == 0
        with Library.open(library_path) as lib:
            assert lib.books.count(lib.user_id) == 2

    def test_add_invalid_isbn(self, library_path):
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--isbn", "12345"])
        assert result.exit_code == 1
        assert "Not a valid ISBN" in result.stdout

    def test_add_with_unknown_genre(self, library_path):
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--genre", "Nope"])
        assert result.exit_code == 1
        assert "Not found" in result.stdout

    def test_add_invalid_rating(self, library_path):
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--rating", "7"])
        assert result.exit_code == 1
        assert "Invalid input" in result.stdout

    def test_missing_library(self, workspace):
        result = runner.invoke(app, ["list", str(workspace / "nowhere")])
        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestListAndSearch:

    def test_filter_by_status(self, library_path):
        reading = add_book(library_path, title="Dune", author="Frank Herbert")
        add_book(library_path, title="Emma", author="Jane Austen")
        runner.invoke(app, ["read", "start", reading, str(library_path)])

        result = runner.invoke(app, ["list", str(library_path), "--status", "reading"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout
        assert "Emma" not in result.stdout

    def test_unknown_status(self, library_path):
        result = runner.invoke(app, ["list", str(library_path), "--status", "skimmed"])
        assert result.exit_code == 1

    def test_unknown_sort_key(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["list", str(library_path), "--sort", "publisher"])
        assert result.exit_code == 1
        assert "Unknown sort key" in result.stdout

    def test_empty_list(self, library_path):
        result = runner.invoke(app, ["list", str(library_path)])
        assert result.exit_code == 0
        assert "No books found" in result.stdout

    def test_search_and_recent(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["search", str(library_path), "herbert"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout

        result = runner.invoke(app, ["search", str(library_path), "--recent"])
        assert "herbert" in result.stdout

        runner.invoke(app, ["search", str(library_path), "--clear-recent"])
        result = runner.invoke(app, ["search", str(library_path), "--recent"])
        assert "No recent searches" in result.stdout

    def test_facets_and_authors(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert", rating=4)
        result = runner.invoke(app, ["facets", str(library_path)])
        assert result.exit_code == 0
        assert "Frank Herbert" in result.stdout

        result = runner.invoke(app, ["authors", str(library_path)])
        assert result.exit_code == 0
        assert "Frank Herbert" in result.stdout

    def test_check_duplicate(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert", isbn="9780441013593")
        result = runner.invoke(app, ["check-duplicate", str(library_path), "--isbn", "9780441013593"])
        assert "Duplicate (same ISBN)" in result.stdout
        result = runner.invoke(app, ["check-duplicate", str(library_path),
                                     "--title", "Emma", "--author", "Jane Austen"])
        assert "Not in library" in result.stdout


class TestReadingAndBin:

    def test_start_and_finish(self, library_path):
        book_id = add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["read", "start", book_id, str(library_path)])
        assert result.exit_code == 0
        assert derive_status(get_book(library_path, book_id)) == READING

        result = runner.invoke(app, ["read", "finish", book_id, str(library_path)])
        assert result.exit_code == 0
        assert derive_status(get_book(library_path, book_id)) == FINISHED

        result = runner.invoke(app, ["read", "history", book_id, str(library_path)])
        assert "Finished" in result.stdout

    def test_read_unknown_book(self, library_path):
        result = runner.invoke(app, ["read", "start", "nope", str(library_path)])
        assert result.exit_code == 1
        assert "Not found: nope" in result.stdout

    def test_rate_and_clear(self, library_path):
        book_id = add_book(library_path, title="Dune", author="Frank Herbert")
        runner.invoke(app, ["rate", book_id, str(library_path), "--rating", "4"])
        assert get_book(library_path, book_id).rating == 4
        runner.invoke(app, ["rate", book_id, str(library_path), "--rating", "0"])
        assert get_book(library_path, book_id).rating is None

    def test_delete_and_restore(self, library_path):
        book_id = add_book(library_path, title="Dune", author="Frank Herbert")
        runner.invoke(app, ["delete", book_id, str(library_path)])
        assert get_book(library_path, book_id).in_bin

        result = runner.invoke(app, ["list", str(library_path), "--bin"])
        assert "Dune" in result.stdout

        runner.invoke(app, ["restore", book_id, str(library_path)])
        assert not get_book(library_path, book_id).in_bin

    def test_purge_with_yes(self, library_path):
        book_id = add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["purge", book_id, str(library_path), "--yes"])
        assert result.exit_code == 0
        assert get_book(library_path, book_id) is None

    def test_purge_cancelled(self, library_path):
        book_id = add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["purge", book_id, str(library_path)], input="n\n")
        assert result.exit_code == 0
        assert "Operation cancelled" in result.stdout
        assert get_book(library_path, book_id) is not None


class TestGenresAndSeries:

    def test_genre_add_list_merge(self, library_path):
        runner.invoke(app, ["genre", "add", "Sci-Fi", str(library_path)])
        runner.invoke(app, ["genre", "add", "Science Fiction", str(library_path)])
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert", "--genre", "sci-fi"])
        assert result.exit_code == 0

        result = runner.invoke(app, ["genre", "list", str(library_path)])
        assert "Sci-Fi" in result.stdout

        result = runner.invoke(app, ["genre", "merge", "Sci-Fi", "Science Fiction",
                                     str(library_path), "--yes"])
        assert result.exit_code == 0
        assert "Moved 1 books" in result.stdout

        with Library.open(library_path) as lib:
            target = lib.genres.find_by_name(lib.user_id, "Science Fiction")
            assert lib.genres.find_by_name(lib.user_id, "Sci-Fi") is None
            assert lib.books.list(lib.user_id)[0].genres == [target.id]

    def test_genre_add_duplicate(self, library_path):
        runner.invoke(app, ["genre", "add", "Fantasy", str(library_path)])
        result = runner.invoke(app, ["genre", "add", "fantasy", str(library_path)])
        assert result.exit_code == 1

    def test_genre_merge_into_itself(self, library_path):
        runner.invoke(app, ["genre", "add", "Fantasy", str(library_path)])
        result = runner.invoke(app, ["genre", "merge", "Fantasy", "fantasy",
                                     str(library_path), "--yes"])
        assert result.exit_code == 1
        assert "into itself" in result.stdout

    def test_genre_recount(self, library_path):
        runner.invoke(app, ["genre", "add", "Fantasy", str(library_path)])
        runner.invoke(app, ["add", str(library_path), "--title", "Mort",
                            "--author", "Terry Pratchett", "--genre", "Fantasy"])
        result = runner.invoke(app, ["genre", "recount", str(library_path)])
        assert "Updated 1 genres from 1 books" in result.stdout

    def test_series_show_and_delete(self, library_path):
        runner.invoke(app, ["series", "add", "Discworld", str(library_path), "--total", "41"])
        runner.invoke(app, ["add", str(library_path), "--title", "Mort", "--author",
                            "Terry Pratchett", "--series", "Discworld", "--position", "4"])

        result = runner.invoke(app, ["series", "show", "Discworld", str(library_path)])
        assert "Mort" in result.stdout

        result = runner.invoke(app, ["series", "list", str(library_path)])
        assert "1/41" in result.stdout

        result = runner.invoke(app, ["series", "delete", "Discworld", str(library_path), "--yes"])
        assert "1 books unlinked" in result.stdout
        with Library.open(library_path) as lib:
            assert lib.books.list(lib.user_id)[0].series_id is None


class TestWishlist:

    def test_add_and_list(self, library_path):
        result = runner.invoke(app, ["wishlist", "add", str(library_path), "--title", "Hyperion",
                                     "--author", "Dan Simmons", "--priority", "high"])
        assert result.exit_code == 0
        result = runner.invoke(app, ["wishlist", "list", str(library_path)])
        assert "Hyperion" in result.stdout
        assert "high" in result.stdout

    def test_already_owned(self, library_path):
        add_book(library_path, title="Hyperion", author="Dan Simmons")
        result = runner.invoke(app, ["wishlist", "add", str(library_path), "--title", "hyperion",
                                     "--author", "dan simmons"])
        assert result.exit_code == 1
        assert "already own" in result.stdout


class TestBackup:

    def test_export_nothing(self, library_path):
        result = runner.invoke(app, ["export", str(library_path)])
        assert result.exit_code == 0
        assert "Nothing to export" in result.stdout

    def test_export_then_import(self, workspace, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        backup = workspace / "backup.json"
        result = runner.invoke(app, ["export", str(library_path), "-o", str(backup)])
        assert result.exit_code == 0
        assert json.loads(backup.read_text(encoding="utf-8"))["version"] == 2

        other = workspace / "other"
        runner.invoke(app, ["init", str(other)])
        result = runner.invoke(app, ["import", str(backup), str(other)])
        assert result.exit_code == 0
        assert "Import complete: 1 book added" in result.stdout

        result = runner.invoke(app, ["import", str(backup), str(other)])
        assert "Nothing new to import (1 already in library)" in result.stdout

    def test_import_rejects_bad_version(self, workspace, library_path):
        backup = workspace / "backup.json"
        backup.write_text(json.dumps({"version": 3, "books": [{"title": "A", "author": "B"}]}))
        result = runner.invoke(app, ["import", str(backup), str(library_path)])
        assert result.exit_code == 1
        assert "Unrecognised backup format" in result.stdout

    def test_import_missing_file(self, workspace, library_path):
        result = runner.invoke(app, ["import", str(workspace / "missing.json"), str(library_path)])
        assert result.exit_code == 1

    def test_import_failed_commit(self, workspace, library_path):
        backup = workspace / "backup.json"
        backup.write_text(json.dumps({"version": 2, "books": [{"title": "Dune", "author": "Frank Herbert"}]}))
        with mock.patch.object(WriteBatch, "commit", side_effect=StoreError("disk full")):
            result = runner.invoke(app, ["import", str(backup), str(library_path)])
        assert result.exit_code == 1
        assert "1 records were ready to import" in result.stdout
        assert "No changes were saved" in result.stdout


class TestMaintenance:

    def test_stats(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["stats", str(library_path)])
        assert result.exit_code == 0
        assert "Library Statistics" in result.stdout
        assert "Recently added" in result.stdout
        assert "Dune" in result.stdout

    def test_health(self, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["health", str(library_path)])
        assert result.exit_code == 0
        assert "Completeness:" in result.stdout
        assert "Needs Attention" in result.stdout

    def test_lookup_isbn(self, workspace, monkeypatch):
        async def fake_lookup(self, isbn):
            return LookupResult(title="Dune", author="Frank Herbert", isbn=isbn,
                                series_name="Dune Chronicles", series_position=1)

        monkeypatch.setattr(LookupService, "lookup_isbn", fake_lookup)
        result = runner.invoke(app, ["lookup", "9780441013593"])
        assert result.exit_code == 0
        assert "Dune Chronicles #1" in result.stdout

    def test_lookup_disabled(self, workspace):
        runner.invoke(app, ["config", "--no-lookup"])
        result = runner.invoke(app, ["lookup", "dune"])
        assert "lookup is disabled" in result.stdout


class TestConfigCommand:

    def test_set_and_show(self, workspace):
        result = runner.invoke(app, ["config", "--user-id", "alice", "--page-size", "20"])
        assert result.exit_code == 0
        saved = json.loads((workspace / "config" / "config.json").read_text())
        assert saved["library"]["user_id"] == "alice"
        assert saved["cli"]["page_size"] == 20

        result = runner.invoke(app, ["config", "--show"])
        assert "user_id: alice" in result.stdout

    def test_api_key_masked(self, workspace):
        runner.invoke(app, ["config", "--google-books-api-key", "secret"])
        result = runner.invoke(app, ["config"])
        assert "secret" not in result.stdout
        assert "***" in result.stdout


class TestConfiguredDefaults:
    """Settings from the config file that change how commands run."""

    def test_default_library_path(self, workspace, library_path):
        add_book(library_path, title="Dune", author="Frank Herbert")
        result = runner.invoke(app, ["config", "--library-path", str(library_path)])
        assert result.exit_code == 0

        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "Dune" in result.stdout

    def test_init_at_default_library_path(self, workspace):
        path = workspace / "default-library"
        runner.invoke(app, ["config", "--library-path", str(path)])
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert (path / "library.db").exists()

    def test_no_library_path_anywhere(self, workspace):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 1
        assert "No library path given" in result.stdout

    def test_color_turned_off(self, workspace, library_path, monkeypatch):
        monkeypatch.setattr(cli.console, "no_color", False)
        monkeypatch.setattr(cli.error_console, "no_color", False)
        runner.invoke(app, ["config", "--no-cli-color"])

        result = runner.invoke(app, ["list", str(library_path)])
        assert result.exit_code == 0
        assert cli.console.no_color is True
        assert cli.error_console.no_color is True

    def test_add_format_spelling(self, library_path):
        result = runner.invoke(app, ["add", str(library_path), "--title", "Dune",
                                     "--author", "Frank Herbert",
                                     "--format", "mass market  paperback"])
        assert result.exit_code == 0
        result = runner.invoke(app, ["add", str(library_path), "--title", "Emma",
                                     "--author", "Jane Austen", "--format", " Scroll "])
        assert result.exit_code == 0

        with Library.open(library_path) as lib:
            formats = {b.title: b.physical_format for b in lib.books.list(lib.user_id)}
        assert formats == {"Dune": "Mass Market Paperback", "Emma": "Scroll"}
