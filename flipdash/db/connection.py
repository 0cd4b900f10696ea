"""SQLAlchemy engines.

Two kinds of database are used:

* the audit database (``settings.database_url``), one shared engine;
* throwaway in-memory SQLite databases that hold one request's flip
  records while user SQL runs against them (``scratch_engine``).
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def _create(url: str) -> Engine:
    if url.startswith("sqlite"):
        # One connection shared by every caller, so in-memory tables survive.
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10, echo=False)


def get_engine() -> Engine:
    """Return the shared audit-database engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = _create(settings.database_url)
        logger.info("DB engine created  dialect=%s", _engine.dialect.name)
    return _engine


def reset_engine() -> None:
    """Dispose the shared engine; the next ``get_engine`` call builds a fresh one."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def scratch_engine() -> Engine:
    """A private in-memory SQLite database."""
    return _create("sqlite://")


@contextmanager
def readonly_connection(engine: Engine) -> Generator[Connection, None, None]:
    """Yield a connection on which SQLite refuses every write.

    ``PRAGMA query_only`` is switched back off on exit because the scratch
    engine's single connection is reused.
    """
    conn = engine.connect()
    try:
        conn.execute(text("PRAGMA query_only = ON"))
        yield conn
    finally:
        conn.execute(text("PRAGMA query_only = OFF"))
        conn.close()
