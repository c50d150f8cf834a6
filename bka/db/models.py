"""
SQLAlchemy models for bka database.

Every user-owned record (books, genres, series, wishlist items) is stored
as a JSON document keyed by owner, collection name and document id.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Document(Base):
    """A single document in a per-user collection."""
    __tablename__ = 'documents'

    pk = Column(Integer, primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    collection = Column(String(50), nullable=False)  # books, genres, series, wishlist
    doc_id = Column(String(32), nullable=False)

    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'collection', 'doc_id', name='uix_document'),
        Index('idx_document_collection', 'user_id', 'collection'),
    )

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}')>"
