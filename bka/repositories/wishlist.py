"""Wishlist repository."""

import logging
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import WishlistItem, WISHLIST_PRIORITIES
from ..normalize import to_datetime
from ..store import WISHLIST
from .base import Repository, positive_int_or_none, stamp_new, stamp_update, to_document

logger = logging.getLogger(__name__)

WISHLIST_FIELDS = {
    'title': 'title',
    'author': 'author',
    'isbn': 'isbn',
    'cover_image_url': 'coverImageUrl',
    'publisher': 'publisher',
    'published_date': 'publishedDate',
    'page_count': 'pageCount',
    'priority': 'priority',
    'notes': 'notes',
}

PRIORITY_ORDER = {'high': 0, 'medium': 1, 'low': 2}


def wishlist_item_from_document(record: Dict[str, Any]) -> WishlistItem:
    return WishlistItem(
        id=record['id'],
        title=record.get('title') or '',
        author=record.get('author') or '',
        isbn=record.get('isbn') or None,
        cover_image_url=record.get('coverImageUrl') or None,
        publisher=record.get('publisher') or None,
        published_date=record.get('publishedDate') or None,
        page_count=positive_int_or_none(record.get('pageCount')),
        priority=record.get('priority') or None,
        notes=record.get('notes') or None,
        created_at=to_datetime(record.get('createdAt')),
        updated_at=to_datetime(record.get('updatedAt')),
    )


def prepare_wishlist_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    priority = fields.get('priority')
    if priority is not None and priority not in WISHLIST_PRIORITIES:
        raise ValidationError(f"Priority must be one of: {', '.join(WISHLIST_PRIORITIES)}")
    for required in ('title', 'author'):
        if required in fields and not (fields[required] or '').strip():
            raise ValidationError(f"Wishlist {required} is required")
    return to_document(fields, WISHLIST_FIELDS)


class WishlistRepository(Repository):
    """Data access for the wishlist collection."""

    collection = WISHLIST

    def list(self, user_id: str) -> List[WishlistItem]:
        """Wishlist items, high priority first, newest first within a priority."""
        records = self.store.list(user_id, WISHLIST, order_by=('createdAt', 'desc'))
        items = [wishlist_item_from_document(r) for r in records]
        return sorted(items, key=lambda item: PRIORITY_ORDER.get(item.priority, 3))

    def list_recent(self, user_id: str, count: int = 5) -> List[WishlistItem]:
        records = self.store.list(user_id, WISHLIST, order_by=('createdAt', 'desc'), limit=count)
        return [wishlist_item_from_document(r) for r in records]

    def count(self, user_id: str) -> int:
        return len(self.store.list(user_id, WISHLIST))

    def get(self, user_id: str, item_id: str) -> Optional[WishlistItem]:
        record = self.store.get(user_id, WISHLIST, item_id)
        return wishlist_item_from_document(record) if record else None

    def get_or_raise(self, user_id: str, item_id: str) -> WishlistItem:
        item = self.get(user_id, item_id)
        if item is None:
            raise NotFoundError(WISHLIST, item_id)
        return item

    def add(self, user_id: str, **fields) -> str:
        if not fields.get('title') or not fields.get('author'):
            raise ValidationError("Wishlist title and author are required")
        document = prepare_wishlist_fields(fields)
        item_id = self.store.create(user_id, WISHLIST, stamp_new(document))
        logger.info(f"Added wishlist item {item_id}: {document['title']}")
        return item_id

    def update(self, user_id: str, item_id: str, **fields) -> None:
        document = prepare_wishlist_fields(fields)
        self.store.update(user_id, WISHLIST, item_id, stamp_update(document))

    def delete(self, user_id: str, item_id: str) -> None:
        self.store.delete(user_id, WISHLIST, item_id)
        logger.info(f"Deleted wishlist item {item_id}")
