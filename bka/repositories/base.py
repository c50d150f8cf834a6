"""
Shared helpers for repositories.

Repositories translate between stored documents (camelCase keys, epoch
millisecond timestamps) and the typed records in ``bka.models``.
"""

from typing import Any, Dict, Mapping

from ..normalize import now_millis
from ..store import DocumentStore


def to_document(fields: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, Any]:
    """
    Rename snake_case fields to their stored names.

    Only fields present in ``fields`` are included, so a partial update
    never touches fields the caller did not mention.

    Raises:
        ValueError: For a field the record type does not have
    """
    document = {}
    for name, value in fields.items():
        if name not in field_map:
            raise ValueError(f"Unknown field: {name}")
        document[field_map[name]] = value
    return document


def stamp_new(document: Dict[str, Any]) -> Dict[str, Any]:
    now = now_millis()
    return {**document, 'createdAt': now, 'updatedAt': now}


def stamp_update(document: Dict[str, Any]) -> Dict[str, Any]:
    return {**document, 'updatedAt': now_millis()}


def positive_int_or_none(value: Any) -> Any:
    """Keep positive integers (numeric strings included); anything else becomes None."""
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None


def rating_or_none(value: Any) -> Any:
    """Keep whole-number ratings from 1 to 5; anything else becomes None."""
    number = positive_int_or_none(value)
    return number if number is not None and number <= 5 else None


class Repository:
    """Base class holding the document store."""

    collection: str = ''

    def __init__(self, store: DocumentStore):
        self.store = store
