"""
Database session management for bka.

Each library directory holds one SQLite file. Engines are kept per
library directory, so several libraries can be open in one process.
"""

from pathlib import Path
from typing import Dict, Optional, Union
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine

from .models import Base

DB_FILENAME = 'library.db'

# Milliseconds SQLite waits on a locked database before failing
BUSY_TIMEOUT_MS = 5000

_engines: Dict[Path, Engine] = {}
_session_factories: Dict[Path, sessionmaker] = {}


def _key(library_path: Union[str, Path]) -> Path:
    return Path(library_path).expanduser().resolve()


def database_path(library_path: Union[str, Path]) -> Path:
    """Path of the SQLite file inside a library directory."""
    return Path(library_path) / DB_FILENAME


def init_db(library_path: Union[str, Path], echo: bool = False) -> Engine:
    """
    Initialize the library database, creating the directory and tables.

    Calling this again for an open library returns the existing engine.

    Args:
        library_path: Path to library directory
        echo: If True, log all SQL statements (debug mode)

    Returns:
        SQLAlchemy engine
    """
    key = _key(library_path)
    if key in _engines:
        return _engines[key]

    key.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f'sqlite:///{database_path(key)}', echo=echo)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        cursor.close()

    Base.metadata.create_all(engine)

    _engines[key] = engine
    _session_factories[key] = sessionmaker(bind=engine)
    return engine


def get_session(library_path: Union[str, Path]) -> Session:
    """
    Get a new session on an initialized library.

    Raises:
        RuntimeError: If init_db() has not been called for the library
    """
    factory = _session_factories.get(_key(library_path))
    if factory is None:
        raise RuntimeError(
            f"Database not initialized for {library_path}. Call init_db() first."
        )
    return factory()


@contextmanager
def session_scope(session: Session):
    """
    Commit on success, roll back on any error.

    Usage:
        with session_scope(session):
            session.add(document)
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def close_db(library_path: Optional[Union[str, Path]] = None):
    """Dispose the engine of one library, or of every library when no path is given."""
    keys = [_key(library_path)] if library_path is not None else list(_engines)
    for key in keys:
        engine = _engines.pop(key, None)
        if engine is not None:
            engine.dispose()
        _session_factories.pop(key, None)
