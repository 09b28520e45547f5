"""Engine and session factory for the availability store."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import settings

logger = logging.getLogger(__name__)

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> Engine:
    """Create the engine on first use and bind the session factory to it."""
    global _engine
    if _engine is None:
        url = settings.database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(
            url,
            echo=settings.database_echo,
            pool_pre_ping=not url.startswith("sqlite"),
            connect_args=connect_args,
            future=True,
        )
        if url.startswith("sqlite"):
            event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        SessionLocal.configure(bind=_engine)
        logger.info(
            "Database engine created for %s", _engine.url.render_as_string(hide_password=True)
        )
    return _engine


def get_db() -> Generator[Session, None, None]:
    """Yield a session for request-scoped use (FastAPI dependency style)."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session that commits on success and rolls back on error."""
    get_engine()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
