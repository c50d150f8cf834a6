"""
Backup export and import.

A backup is a UTF-8 JSON document::

    {
        "version": 2,
        "exportedAt": "2024-05-01T10:00:00+00:00",
        "genres": [...], "series": [...], "books": [...],
        "wishlist": [...], "bin": [...]
    }

Records carry no storage id. Genres and series keep their old id under
``_exportId`` so books can be pointed at the re-created entities on import.
Version 1 documents (no series, no bin) are still accepted.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..duplicates import DuplicateIndex
from ..exceptions import (
    BackupParseError, EmptyBackupError, StoreError, UnsupportedBackupError,
)
from ..models import WISHLIST_PRIORITIES
from ..normalize import (
    DEFAULT_GENRE_COLOR, collapse_whitespace, normalize_color, now_millis,
    to_iso, to_millis,
)
from ..repositories.base import positive_int_or_none
from ..store import BOOKS, GENRES, SERIES, WISHLIST, DocumentStore

logger = logging.getLogger(__name__)

BACKUP_VERSION = 2
SUPPORTED_VERSIONS = (1, 2)
EXPORT_ID = '_exportId'
BACKUP_SECTIONS = ('genres', 'series', 'books', 'wishlist', 'bin')

TIMESTAMP_FIELDS = ('createdAt', 'updatedAt', 'deletedAt')

# Fields that must hold text; anything else is dropped on import
TEXT_FIELDS = (
    'title', 'author', 'name', 'isbn', 'publisher', 'publishedDate',
    'physicalFormat', 'coverImageUrl', 'notes', 'color', 'priority',
    'seriesId', EXPORT_ID,
)
# Fields that must hold a positive whole number
COUNT_FIELDS = ('pageCount', 'seriesPosition', 'totalBooks')

BOOK_KEYS = (
    'title', 'author', 'isbn', 'publisher', 'publishedDate', 'pageCount',
    'physicalFormat', 'rating', 'coverImageUrl', 'notes', 'seriesPosition',
)
WISHLIST_KEYS = (
    'title', 'author', 'isbn', 'coverImageUrl', 'publisher', 'publishedDate',
    'pageCount', 'priority', 'notes',
)


def backup_filename(now: Optional[datetime] = None) -> str:
    """Backup file name embedding the export date."""
    now = now or datetime.now(timezone.utc)
    return f"book-assembly-backup-{now.strftime('%Y-%m-%d')}.json"


def write_backup(document: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write a backup document as UTF-8 JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2, ensure_ascii=False)
    logger.info(f"Wrote backup to {path}")
    return path


def _export_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Copy a stored record for export: no id, ISO timestamps."""
    exported = {k: v for k, v in record.items() if k != 'id'}
    for name in TIMESTAMP_FIELDS:
        if name in exported:
            exported[name] = to_iso(exported[name])
    if isinstance(exported.get('reads'), list):
        exported['reads'] = [
            {'startedAt': to_iso(r.get('startedAt')), 'finishedAt': to_iso(r.get('finishedAt'))}
            for r in exported['reads'] if isinstance(r, dict)
        ]
    return exported


def _clean_import_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy a backup record, dropping values of the wrong type.

    Text fields holding anything but a string are removed, so a record with
    a numeric title is treated like one without a title. Counts are coerced
    to positive integers (``"2"`` becomes ``2``) or removed.
    """
    cleaned = {}
    for key, value in record.items():
        if value is None:
            cleaned[key] = value
        elif key in TEXT_FIELDS and not isinstance(value, str):
            logger.warning(f"Ignoring {key} that is not text: {value!r}")
        elif key in COUNT_FIELDS:
            number = positive_int_or_none(value)
            if number is None:
                logger.warning(f"Ignoring {key} that is not a positive number: {value!r}")
            else:
                cleaned[key] = number
        elif key in ('genres', 'reads') and not isinstance(value, list):
            logger.warning(f"Ignoring {key} that is not a list: {value!r}")
        else:
            cleaned[key] = value
    return cleaned


def parse_backup(source: Union[str, bytes, Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Parse and validate a backup document.

    Args:
        source: Raw JSON text or bytes, or an already-parsed document

    Returns:
        Mapping of section name to its list of records, upgraded to the
        current version

    Raises:
        BackupParseError: Not valid JSON
        UnsupportedBackupError: Version missing or not 1/2
        EmptyBackupError: No records in any section
    """
    if isinstance(source, (str, bytes, bytearray)):
        try:
            document = json.loads(source)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BackupParseError(f"Backup file is not valid JSON: {e}") from e
    elif isinstance(source, dict):
        document = source
    else:
        raise BackupParseError(f"Cannot read backup from {type(source).__name__}")

    if not isinstance(document, dict):
        raise UnsupportedBackupError(None)

    version = document.get('version')
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise UnsupportedBackupError(version)

    sections = {}
    for name in BACKUP_SECTIONS:
        records = document.get(name)
        if version == 1 and name in ('series', 'bin'):
            records = []
        if not isinstance(records, list):
            records = []
        sections[name] = [_clean_import_record(r) for r in records if isinstance(r, dict)]

    if not any(sections.values()):
        raise EmptyBackupError("Backup file contains no data")

    return sections


@dataclass
class ExportResult:
    """Outcome of an export: a document, or nothing to export."""
    document: Optional[Dict[str, Any]] = None

    @property
    def nothing_to_export(self) -> bool:
        return self.document is None

    @property
    def counts(self) -> Dict[str, int]:
        if self.document is None:
            return {name: 0 for name in BACKUP_SECTIONS}
        return {name: len(self.document[name]) for name in BACKUP_SECTIONS}


@dataclass
class ImportResult:
    """Created and skipped counts for each kind of record."""
    genres_created: int = 0
    genres_skipped: int = 0
    series_created: int = 0
    series_skipped: int = 0
    books_created: int = 0
    books_skipped: int = 0
    bin_created: int = 0
    bin_skipped: int = 0
    wishlist_created: int = 0
    wishlist_skipped: int = 0
    dropped_references: int = 0
    created_ids: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def total_created(self) -> int:
        return (self.genres_created + self.series_created + self.books_created
                + self.bin_created + self.wishlist_created)

    @property
    def total_skipped(self) -> int:
        return (self.genres_skipped + self.series_skipped + self.books_skipped
                + self.bin_skipped + self.wishlist_skipped)

    @property
    def nothing_new(self) -> bool:
        return self.total_created == 0

    def summary(self) -> str:
        """Human-readable tally."""
        if self.nothing_new:
            return f"Nothing new to import ({self.total_skipped} already in library)"

        parts = []
        for count, singular, plural in (
            (self.books_created, 'book', 'books'),
            (self.bin_created, 'binned book', 'binned books'),
            (self.genres_created, 'genre', 'genres'),
            (self.series_created, 'series', 'series'),
            (self.wishlist_created, 'wishlist item', 'wishlist items'),
        ):
            if count:
                parts.append(f"{count} {singular if count == 1 else plural}")
        message = f"Import complete: {', '.join(parts)} added"
        if self.total_skipped:
            message += f", {self.total_skipped} skipped as duplicates"
        return message


class BackupService:
    """Export a user's collections to a backup document and import one back."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def export_library(self, user_id: str) -> ExportResult:
        """
        Export every collection, bin included.

        Returns:
            ExportResult; ``nothing_to_export`` when all collections are empty
        """
        genres = self.store.list(user_id, GENRES, order_by=('name', 'asc'))
        series = self.store.list(user_id, SERIES, order_by=('name', 'asc'))
        books = self.store.list(user_id, BOOKS, order_by=('createdAt', 'asc'))
        wishlist = self.store.list(user_id, WISHLIST, order_by=('createdAt', 'asc'))

        active = [b for b in books if b.get('deletedAt') is None]
        binned = [b for b in books if b.get('deletedAt') is not None]

        if not (genres or series or books or wishlist):
            logger.info("Nothing to export")
            return ExportResult()

        document = {
            'version': BACKUP_VERSION,
            'exportedAt': datetime.now(timezone.utc).isoformat(),
            'genres': [{**_export_record(g), EXPORT_ID: g['id']} for g in genres],
            'series': [{**_export_record(s), EXPORT_ID: s['id']} for s in series],
            'books': [_export_record(b) for b in active],
            'wishlist': [_export_record(w) for w in wishlist],
            'bin': [_export_record(b) for b in binned],
        }
        logger.info(
            f"Exported {len(active)} books, {len(binned)} binned, {len(genres)} genres, "
            f"{len(series)} series, {len(wishlist)} wishlist items"
        )
        return ExportResult(document)

    def import_library(self, user_id: str,
                       source: Union[str, bytes, Dict[str, Any]]) -> ImportResult:
        """
        Import a backup into the user's library.

        Genres and series are matched by name and reused when they exist;
        books are skipped when they duplicate a book already owned (ISBN or
        title and author); wishlist items are skipped when they duplicate
        the wishlist or a book owned before or after this import.

        All writes go through one batch, so a failed commit leaves the
        library as it was.

        Raises:
            BackupParseError, UnsupportedBackupError, EmptyBackupError:
                Invalid backup, raised before anything is written
            StoreError: Commit failed; the error's ``result`` holds the
                counts worked out before the commit
        """
        sections = parse_backup(source)
        result = ImportResult()
        batch = self.store.batch(user_id)
        now = now_millis()

        genre_map = self._import_genres(user_id, sections['genres'], batch, result, now)
        series_map = self._import_series(user_id, sections['series'], batch, result, now)

        owned = DuplicateIndex(self.store.list(user_id, BOOKS))
        imported = DuplicateIndex()
        for record in sections['books']:
            self._import_book(record, owned, imported, genre_map, series_map,
                              batch, result, now, binned=False)
        for record in sections['bin']:
            self._import_book(record, owned, imported, genre_map, series_map,
                              batch, result, now, binned=True)

        self._import_wishlist(user_id, sections['wishlist'], owned, imported,
                              batch, result, now)

        try:
            batch.commit()
        except StoreError as e:
            e.result = result
            raise

        logger.info(f"Import finished: {result.summary()}")
        return result

    def _import_genres(self, user_id, records, batch, result, now) -> Dict[str, str]:
        by_name = {
            collapse_whitespace(g.get('name')): g['id']
            for g in self.store.list(user_id, GENRES)
        }
        id_map = {}
        for record in records:
            name = (record.get('name') or '').strip()
            if not name:
                logger.warning("Skipping genre without a name")
                result.genres_skipped += 1
                continue

            key = collapse_whitespace(name)
            if key in by_name:
                result.genres_skipped += 1
                logger.debug(f"Genre already exists: {name}")
            else:
                by_name[key] = batch.create(GENRES, {
                    'name': name,
                    'color': normalize_color(record.get('color') or DEFAULT_GENRE_COLOR),
                    'bookCount': 0,
                    'createdAt': to_millis(record.get('createdAt')) or now,
                    'updatedAt': now,
                })
                result.genres_created += 1
                result.created_ids.setdefault(GENRES, []).append(by_name[key])

            if record.get(EXPORT_ID):
                id_map[record[EXPORT_ID]] = by_name[key]
        return id_map

    def _import_series(self, user_id, records, batch, result, now) -> Dict[str, str]:
        by_name = {
            collapse_whitespace(s.get('name')): s['id']
            for s in self.store.list(user_id, SERIES)
        }
        id_map = {}
        for record in records:
            name = (record.get('name') or '').strip()
            if not name:
                logger.warning("Skipping series without a name")
                result.series_skipped += 1
                continue

            key = collapse_whitespace(name)
            if key in by_name:
                result.series_skipped += 1
                logger.debug(f"Series already exists: {name}")
            else:
                by_name[key] = batch.create(SERIES, {
                    'name': name,
                    'totalBooks': positive_int_or_none(record.get('totalBooks')),
                    'createdAt': to_millis(record.get('createdAt')) or now,
                    'updatedAt': now,
                })
                result.series_created += 1
                result.created_ids.setdefault(SERIES, []).append(by_name[key])

            if record.get(EXPORT_ID):
                id_map[record[EXPORT_ID]] = by_name[key]
        return id_map

    def _import_book(self, record, owned, imported, genre_map, series_map,
                     batch, result, now, binned: bool) -> None:
        title = record.get('title')
        if not title or not record.get('author'):
            logger.warning("Skipping book without title or author")
            self._count_book(result, binned, created=False)
            return

        match = owned.find_item(record)
        if match.is_duplicate:
            logger.debug(f"Skipping duplicate book ({match.match_type}): {title}")
            self._count_book(result, binned, created=False)
            return

        data = {k: record[k] for k in BOOK_KEYS if record.get(k) is not None}
        rating = data.get('rating')
        if isinstance(rating, bool) or rating not in (1, 2, 3, 4, 5):
            data.pop('rating', None)
        else:
            data['rating'] = int(rating)

        genres = []
        for old_id in record.get('genres') or []:
            new_id = genre_map.get(old_id) if isinstance(old_id, str) else None
            if new_id is None:
                result.dropped_references += 1
                logger.warning(f"Dropping unknown genre reference {old_id} on '{title}'")
            elif new_id not in genres:
                genres.append(new_id)
        data['genres'] = genres

        old_series = record.get('seriesId')
        data['seriesId'] = series_map.get(old_series) if old_series else None
        if old_series and data['seriesId'] is None:
            result.dropped_references += 1
            logger.warning(f"Dropping unknown series reference {old_series} on '{title}'")
            data.pop('seriesPosition', None)

        data['reads'] = [
            {'startedAt': to_millis(r.get('startedAt')), 'finishedAt': to_millis(r.get('finishedAt'))}
            for r in record.get('reads') or [] if isinstance(r, dict)
        ]
        data['createdAt'] = to_millis(record.get('createdAt')) or now
        data['updatedAt'] = now
        data['deletedAt'] = (to_millis(record.get('deletedAt')) or now) if binned else None

        book_id = batch.create(BOOKS, data)
        imported.add(data)
        self._count_book(result, binned, created=True)
        result.created_ids.setdefault(BOOKS, []).append(book_id)

    @staticmethod
    def _count_book(result: ImportResult, binned: bool, created: bool) -> None:
        if binned and created:
            result.bin_created += 1
        elif binned:
            result.bin_skipped += 1
        elif created:
            result.books_created += 1
        else:
            result.books_skipped += 1

    def _import_wishlist(self, user_id, records, owned, imported, batch, result, now) -> None:
        existing = DuplicateIndex(self.store.list(user_id, WISHLIST))
        for record in records:
            title = record.get('title')
            if not title or not record.get('author'):
                logger.warning("Skipping wishlist item without title or author")
                result.wishlist_skipped += 1
                continue

            if existing.find_item(record).is_duplicate:
                logger.debug(f"Skipping duplicate wishlist item: {title}")
                result.wishlist_skipped += 1
                continue
            if owned.find_item(record).is_duplicate or imported.find_item(record).is_duplicate:
                logger.debug(f"Skipping wishlist item already owned: {title}")
                result.wishlist_skipped += 1
                continue

            data = {k: record[k] for k in WISHLIST_KEYS if record.get(k) is not None}
            if data.get('priority') not in WISHLIST_PRIORITIES:
                data.pop('priority', None)
            data['createdAt'] = to_millis(record.get('createdAt')) or now
            data['updatedAt'] = now

            item_id = batch.create(WISHLIST, data)
            result.wishlist_created += 1
            result.created_ids.setdefault(WISHLIST, []).append(item_id)
