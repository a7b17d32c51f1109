"""Database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from blockwage.config import get_settings
from blockwage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def get_engine(database_url: str | None = None) -> Engine:
    """Create database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(engine: Engine | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if engine is not None:
        _engine = engine
        _session_factory = None
    if _engine is None:
        _engine = get_engine()
    if _session_factory is None:
        _session_factory = sessionmaker(_engine, autoflush=False)
    return _engine, _session_factory


def create_schema(engine: Engine | None = None) -> None:
    """Create all settlement tables that do not exist yet."""
    engine = engine or init_db()[0]
    Base.metadata.create_all(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Get a database session."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def check_connection(session: Session) -> bool:
    """Return True when the database answers a trivial query."""
    return session.execute(text("SELECT 1")).scalar() == 1
