"""
Normalization helpers.

Stored fields arrive in several shapes depending on where they came from
(epoch milliseconds, ISO strings, datetimes, ``{"seconds": ...}`` mappings,
timestamp objects with a conversion method). Everything here turns them
into one canonical form before the rest of bka sees them.
"""

import random
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

_WHITESPACE = re.compile(r'\s+')
_AUTHOR_PUNCTUATION = re.compile(r"[.,\-']")

DEFAULT_GENRE_COLOR = '#6b7280'


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a stored timestamp into a timezone-aware UTC datetime.

    Accepts epoch milliseconds (int/float), ISO-8601 strings (a trailing
    ``Z`` is allowed), ``date``/``datetime`` objects (naive values are taken
    as UTC), mappings with ``seconds`` and optional ``nanoseconds`` keys, and
    objects exposing ``to_datetime()``, ``to_pydatetime()`` or ``toDate()``.

    Returns:
        Aware datetime, or None for empty or unparseable input
    """
    if value is None or value == '' or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if re.fullmatch(r'-?\d+(\.\d+)?', text):
            return to_datetime(float(text))
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return to_datetime(datetime.fromisoformat(text))
        except ValueError:
            return None

    if isinstance(value, dict):
        seconds = value.get('seconds')
        nanos = value.get('nanoseconds') or 0
        if isinstance(seconds, (int, float)) and isinstance(nanos, (int, float)):
            return to_datetime(seconds * 1000 + nanos / 1_000_000)
        return None

    for accessor in ('to_datetime', 'to_pydatetime', 'toDate'):
        method = getattr(value, accessor, None)
        if callable(method):
            return to_datetime(method())

    return None


def to_millis(value: Any) -> Optional[int]:
    """Convert a timestamp in any accepted shape to epoch milliseconds."""
    dt = to_datetime(value)
    if dt is None:
        return None
    return int(round(dt.timestamp() * 1000))


def to_iso(value: Any) -> Optional[str]:
    """Convert a timestamp in any accepted shape to an ISO-8601 string."""
    dt = to_datetime(value)
    return dt.isoformat() if dt else None


def now_millis() -> int:
    """Current time in epoch milliseconds."""
    return to_millis(datetime.now(timezone.utc))


def format_date(value: Any) -> str:
    """Format a timestamp for display, e.g. '1 Jan 2024'."""
    dt = to_datetime(value)
    if not dt:
        return ''
    return f"{dt.day} {dt.strftime('%b %Y')}"


def collapse_whitespace(text: Optional[str]) -> str:
    """Lowercase, trim and collapse runs of whitespace."""
    if not text:
        return ''
    return _WHITESPACE.sub(' ', text.lower().strip())


def normalize_genre_name(name: Optional[str]) -> str:
    """Normalize a genre name for comparison."""
    return collapse_whitespace(name)


def normalize_author(name: Optional[str]) -> str:
    """Normalize an author name: lowercase, no punctuation, single spaces."""
    if not name:
        return ''
    text = _AUTHOR_PUNCTUATION.sub('', name.lower())
    return _WHITESPACE.sub(' ', text).strip()


def normalize_color(color: Optional[str]) -> str:
    """Canonical '#rrggbb' form of a hex colour; default grey when invalid."""
    if not color:
        return DEFAULT_GENRE_COLOR
    hex_part = color.strip().lstrip('#').lower()
    if len(hex_part) == 3:
        hex_part = ''.join(c * 2 for c in hex_part)
    if not re.fullmatch(r'[0-9a-f]{6}', hex_part):
        return DEFAULT_GENRE_COLOR
    return f'#{hex_part}'


def contrast_color(hex_color: str) -> str:
    """Return 'black' or 'white', whichever reads better on the colour."""
    hex_part = normalize_color(hex_color)[1:]
    r = int(hex_part[0:2], 16)
    g = int(hex_part[2:4], 16)
    b = int(hex_part[4:6], 16)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return 'black' if luminance > 0.5 else 'white'


# Genre palette in rainbow order
GENRE_COLORS = (
    # Reds
    '#fecaca', '#fca5a5', '#f87171', '#ef4444', '#dc2626', '#b91c1c', '#991b1b',
    # Oranges
    '#fed7aa', '#fdba74', '#fb923c', '#f97316', '#ea580c', '#c2410c', '#9a3412',
    # Ambers
    '#fde68a', '#fcd34d', '#fbbf24', '#f59e0b', '#d97706', '#b45309',
    # Greens
    '#bbf7d0', '#86efac', '#4ade80', '#22c55e', '#16a34a', '#15803d', '#166534',
    # Teals
    '#99f6e4', '#5eead4', '#2dd4bf', '#14b8a6', '#0d9488', '#0f766e',
    # Blues
    '#bfdbfe', '#93c5fd', '#60a5fa', '#3b82f6', '#2563eb', '#1d4ed8', '#1e40af',
    # Violets
    '#ddd6fe', '#c4b5fd', '#a78bfa', '#8b5cf6', '#7c3aed', '#6d28d9',
    # Pinks
    '#fbcfe8', '#f9a8d4', '#f472b6', '#ec4899', '#db2777', '#be185d',
    # Grays
    '#e5e7eb', '#d1d5db', '#9ca3af', '#6b7280', '#4b5563', '#374151',
)


def next_available_color(used_colors: Iterable[str]) -> str:
    """First palette colour not already in use; random when all are taken."""
    used = {c.lower() for c in used_colors if c}
    for color in GENRE_COLORS:
        if color not in used:
            return color
    return random.choice(GENRE_COLORS)
