"""
Database module for bka.

Provides SQLAlchemy session management and initialization.
"""

from .models import Base, Document
from .session import database_path, get_session, init_db, close_db, session_scope

__all__ = [
    'Base',
    'Document',
    'database_path',
    'get_session',
    'init_db',
    'close_db',
    'session_scope',
]
