"""
Bibliographic lookup against Google Books and Open Library.

Results are suggestions for the user to review before saving, never
authoritative. A source that fails (network error, timeout, bad status)
is logged and skipped; whatever the other source returned is still used.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from ..models import canonical_format

logger = logging.getLogger(__name__)

GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
OPEN_LIBRARY_BOOKS_URL = "https://openlibrary.org/api/books"
OPEN_LIBRARY_EDITION_URL = "https://openlibrary.org/isbn/{isbn}.json"

DEFAULT_TIMEOUT = 10.0

_SERIES_POSITION = re.compile(r'[#(]?\s*(?:book\s*)?(\d+)\s*[)]?$', re.IGNORECASE)


@dataclass
class LookupResult:
    """Candidate book metadata from a lookup."""
    title: str = ''
    author: str = ''
    isbn: Optional[str] = None
    publisher: str = ''
    published_date: str = ''
    physical_format: str = ''
    page_count: Optional[int] = None
    genres: List[str] = field(default_factory=list)
    cover_image_url: str = ''
    covers: Dict[str, str] = field(default_factory=dict)
    series_name: Optional[str] = None
    series_position: Optional[int] = None
    source: str = ''
    volume_id: Optional[str] = None


def parse_genres(categories: List[str]) -> List[str]:
    """
    Most specific part of each hierarchical category, de-duplicated.

    Example:
        >>> parse_genres(['Fiction / Fantasy', 'Fantasy'])
        ['Fantasy']
    """
    genres = []
    for category in categories or []:
        if not category:
            continue
        last = category.split(' / ')[-1].strip()
        if last and last not in genres:
            genres.append(last)
    return genres


def parse_series_hint(series: Any) -> Optional[Tuple[str, Optional[int]]]:
    """
    Split a series string into name and position.

    Example:
        >>> parse_series_hint('Harry Potter #3')
        ('Harry Potter', 3)
        >>> parse_series_hint('Discworld (Book 12)')
        ('Discworld', 12)
    """
    if isinstance(series, list):
        series = series[0] if series else None
    if not series or not isinstance(series, str):
        return None
    match = _SERIES_POSITION.search(series)
    position = int(match.group(1)) if match else None
    name = _SERIES_POSITION.sub('', series).strip()
    return name, position


def _https(url: str) -> str:
    return url.replace('http:', 'https:', 1) if url else ''


def _title_case(text: str) -> str:
    return ' '.join(word[:1].upper() + word[1:].lower() for word in text.split(' '))


def parse_google_volume(item: Dict[str, Any]) -> LookupResult:
    """Build a LookupResult from a Google Books volume."""
    info = item.get('volumeInfo', {})
    links = info.get('imageLinks') or {}
    cover = _https(
        links.get('large') or links.get('medium') or links.get('small')
        or links.get('thumbnail') or ''
    )

    isbn = None
    for identifier in info.get('industryIdentifiers') or []:
        value = identifier.get('identifier') or ''
        if len(value) in (10, 13):
            isbn = value
            break

    return LookupResult(
        title=(info.get('title') or '').strip(),
        author=', '.join(info.get('authors') or []).strip(),
        isbn=isbn,
        publisher=(info.get('publisher') or '').strip(),
        published_date=(info.get('publishedDate') or '').strip(),
        page_count=info.get('pageCount') or None,
        genres=parse_genres(info.get('categories') or []),
        cover_image_url=cover,
        covers={'googleBooks': cover} if cover else {},
        source='google_books',
        volume_id=item.get('id'),
    )


def parse_open_library_book(book: Dict[str, Any]) -> LookupResult:
    """Build a LookupResult from an Open Library ``jscmd=data`` record."""
    subjects = [
        s if isinstance(s, str) else (s.get('name') or '')
        for s in book.get('subjects') or []
    ]
    cover_links = book.get('cover') or {}
    cover = cover_links.get('large') or cover_links.get('medium') or ''
    publishers = book.get('publishers') or []

    return LookupResult(
        title=(book.get('title') or '').strip(),
        author=', '.join(a.get('name', '') for a in book.get('authors') or []).strip(),
        publisher=(publishers[0].get('name') or '').strip() if publishers else '',
        published_date=(book.get('publish_date') or '').strip(),
        page_count=book.get('number_of_pages') or None,
        genres=parse_genres(subjects),
        cover_image_url=cover,
        covers={'openLibrary': cover} if cover else {},
        source='open_library',
    )


def supplement(result: LookupResult, extra: LookupResult) -> LookupResult:
    """Fill fields missing from ``result`` with values from ``extra``."""
    for name in ('publisher', 'published_date', 'cover_image_url', 'page_count'):
        if not getattr(result, name) and getattr(extra, name):
            setattr(result, name, getattr(extra, name))

    known = {g.lower() for g in result.genres}
    for genre in extra.genres:
        if genre.lower() not in known:
            result.genres.append(genre)
            known.add(genre.lower())

    result.covers.update(extra.covers)
    return result


class LookupService:
    """Look up books by ISBN or free text."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the lookup service.

        Args:
            api_key: Google Books API key; falls back to GOOGLE_BOOKS_API_KEY
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key or os.environ.get('GOOGLE_BOOKS_API_KEY')
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_json(self, session: aiohttp.ClientSession, url: str,
                        params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        try:
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    logger.warning(f"Lookup request to {url} failed with status {response.status}")
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Lookup request to {url} failed: {e}")
            return None

    async def _google_by_isbn(self, session, isbn: str) -> Optional[LookupResult]:
        params = {'q': f'isbn:{isbn}'}
        if self.api_key:
            params['key'] = self.api_key
        data = await self._get_json(session, GOOGLE_BOOKS_URL, params)
        if not data or not data.get('items'):
            return None
        return parse_google_volume(data['items'][0])

    async def _open_library_by_isbn(self, session, isbn: str) -> Optional[LookupResult]:
        params = {'bibkeys': f'ISBN:{isbn}', 'format': 'json', 'jscmd': 'data'}
        data = await self._get_json(session, OPEN_LIBRARY_BOOKS_URL, params)
        book = (data or {}).get(f'ISBN:{isbn}')
        return parse_open_library_book(book) if book else None

    async def _add_edition_details(self, session, isbn: str, result: LookupResult) -> None:
        edition = await self._get_json(session, OPEN_LIBRARY_EDITION_URL.format(isbn=isbn))
        if not edition:
            return
        if not result.physical_format and edition.get('physical_format'):
            raw_format = edition['physical_format']
            result.physical_format = canonical_format(raw_format) or _title_case(raw_format)
        if not result.page_count and edition.get('number_of_pages'):
            result.page_count = edition['number_of_pages']
        hint = parse_series_hint(edition.get('series'))
        if hint:
            result.series_name, result.series_position = hint

    async def lookup_isbn(self, isbn: Optional[str]) -> Optional[LookupResult]:
        """
        Look up a book by ISBN.

        Google Books is preferred; Open Library fills missing fields or
        stands in when Google has nothing. Open Library's edition record
        then adds physical format and series.

        Returns:
            LookupResult, or None when no source knows the ISBN
        """
        if not isbn:
            return None

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            google, open_library = await asyncio.gather(
                self._google_by_isbn(session, isbn),
                self._open_library_by_isbn(session, isbn),
            )

            if google and open_library:
                result = supplement(google, open_library)
            else:
                result = google or open_library
            if result is None:
                logger.info(f"No lookup results for ISBN {isbn}")
                return None

            result.isbn = result.isbn or isbn
            if not result.physical_format or not result.series_name:
                await self._add_edition_details(session, isbn, result)

        return result

    async def search(self, query: str, start_index: int = 0,
                     max_results: int = 10) -> List[LookupResult]:
        """Search Google Books by title, author or free text."""
        if not query or not query.strip():
            return []

        params = {
            'q': query.strip(),
            'startIndex': start_index,
            'maxResults': min(max_results, 40),
        }
        if self.api_key:
            params['key'] = self.api_key

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            data = await self._get_json(session, GOOGLE_BOOKS_URL, params)

        if not data or not data.get('items'):
            return []
        return [parse_google_volume(item) for item in data['items']]
