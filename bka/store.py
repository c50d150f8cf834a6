"""
Document store for per-user collections.

Records are plain dictionaries grouped into named collections
(``books``, ``genres``, ``series``, ``wishlist``) under an owning user.
The store offers list/get/create/update/delete primitives plus a write
batch whose queued operations are applied in one transaction.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db.models import Document
from .db.session import session_scope
from .exceptions import NotFoundError, StoreError

logger = logging.getLogger(__name__)

BOOKS = 'books'
GENRES = 'genres'
SERIES = 'series'
WISHLIST = 'wishlist'
COLLECTIONS = (BOOKS, GENRES, SERIES, WISHLIST)

Filter = Tuple[str, str, Any]
OrderBy = Tuple[str, str]

_OPERATORS = ('==', '!=', 'array-contains')


def new_id() -> str:
    """Generate a new document id."""
    return uuid.uuid4().hex


def _matches(data: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    for field, op, value in filters:
        actual = data.get(field)
        if op == '==':
            if actual != value:
                return False
        elif op == '!=':
            if actual == value:
                return False
        elif op == 'array-contains':
            if not isinstance(actual, list) or value not in actual:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


def _order_key(value: Any) -> Tuple[int, Any]:
    # Numbers sort before text so mixed stored values never compare directly
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, str(value))


def _order(records: List[Dict[str, Any]], order_by: OrderBy) -> List[Dict[str, Any]]:
    field, direction = order_by
    if direction not in ('asc', 'desc'):
        raise ValueError(f"Unsupported sort direction: {direction}")

    # Records without the field go last in either direction
    present = [r for r in records if r.get(field) is not None]
    missing = [r for r in records if r.get(field) is None]
    present.sort(key=lambda r: _order_key(r[field]), reverse=(direction == 'desc'))
    return present + missing


def _to_record(doc: Document) -> Dict[str, Any]:
    record = dict(doc.data or {})
    record['id'] = doc.doc_id
    return record


class DocumentStore:
    """SQLAlchemy-backed document store."""

    def __init__(self, session: Session):
        self.session = session

    def _query(self, user_id: str, collection: str):
        return self.session.query(Document).filter_by(
            user_id=user_id, collection=collection
        )

    def _find(self, user_id: str, collection: str, doc_id: str) -> Optional[Document]:
        return self._query(user_id, collection).filter_by(doc_id=doc_id).first()

    def list(self, user_id: str, collection: str,
             filters: Optional[Sequence[Filter]] = None,
             order_by: Optional[OrderBy] = None,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        List records in a collection.

        Args:
            user_id: Owning user
            collection: Collection name
            filters: ``(field, op, value)`` tuples, op one of ``==``, ``!=``,
                ``array-contains``; all must hold
            order_by: ``(field, 'asc'|'desc')``
            limit: Maximum number of records returned

        Returns:
            List of records, each with its ``id``
        """
        docs = self._query(user_id, collection).order_by(Document.pk).all()
        records = [_to_record(d) for d in docs]

        if filters:
            records = [r for r in records if _matches(r, filters)]
        if order_by:
            records = _order(records, order_by)
        if limit is not None:
            records = records[:limit]
        return records

    def get(self, user_id: str, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get a single record, or None if it does not exist."""
        doc = self._find(user_id, collection, doc_id)
        return _to_record(doc) if doc else None

    def create(self, user_id: str, collection: str, data: Dict[str, Any]) -> str:
        """Create a record and return its id."""
        batch = self.batch(user_id)
        doc_id = batch.create(collection, data)
        batch.commit()
        return doc_id

    def update(self, user_id: str, collection: str, doc_id: str,
               data: Dict[str, Any]) -> None:
        """
        Partially update a record.

        Keys in ``data`` overwrite stored values; omitted keys are left as
        they are.

        Raises:
            NotFoundError: If the record does not exist
        """
        batch = self.batch(user_id)
        batch.update(collection, doc_id, data)
        batch.commit()

    def delete(self, user_id: str, collection: str, doc_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""
        batch = self.batch(user_id)
        batch.delete(collection, doc_id)
        batch.commit()

    def batch(self, user_id: str) -> 'WriteBatch':
        """Start a batch of writes that commit atomically."""
        return WriteBatch(self, user_id)


class WriteBatch:
    """Queue of writes applied in a single transaction on commit()."""

    def __init__(self, store: DocumentStore, user_id: str):
        self.store = store
        self.user_id = user_id
        self._operations: List[Tuple[str, str, str, Optional[Dict[str, Any]]]] = []
        self.committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        """Queue a create; the new id is returned immediately."""
        doc_id = new_id()
        payload = {k: v for k, v in data.items() if k != 'id'}
        self._operations.append(('create', collection, doc_id, payload))
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Queue a partial update."""
        payload = {k: v for k, v in data.items() if k != 'id'}
        self._operations.append(('update', collection, doc_id, payload))

    def delete(self, collection: str, doc_id: str) -> None:
        """Queue a delete."""
        self._operations.append(('delete', collection, doc_id, None))

    def commit(self) -> None:
        """
        Apply all queued writes atomically.

        Raises:
            NotFoundError: If an update targets a missing record
            StoreError: If the database rejects the transaction
        """
        if self.committed:
            raise RuntimeError("Batch already committed")
        self.committed = True

        if not self._operations:
            return

        session = self.store.session
        try:
            with session_scope(session):
                for op, collection, doc_id, data in self._operations:
                    self._apply(op, collection, doc_id, data)
        except SQLAlchemyError as e:
            logger.error(f"Batch of {len(self._operations)} writes failed: {e}")
            raise StoreError(f"Failed to save changes: {e}") from e

        logger.debug(f"Committed batch of {len(self._operations)} writes")

    def _apply(self, op: str, collection: str, doc_id: str,
               data: Optional[Dict[str, Any]]) -> None:
        store = self.store
        if op == 'create':
            store.session.add(Document(
                user_id=self.user_id,
                collection=collection,
                doc_id=doc_id,
                data=data,
            ))
            store.session.flush()
        elif op == 'update':
            doc = store._find(self.user_id, collection, doc_id)
            if doc is None:
                raise NotFoundError(collection, doc_id)
            # Reassign so the JSON column is flagged dirty
            doc.data = {**(doc.data or {}), **data}
        elif op == 'delete':
            doc = store._find(self.user_id, collection, doc_id)
            if doc is not None:
                store.session.delete(doc)
                store.session.flush()
