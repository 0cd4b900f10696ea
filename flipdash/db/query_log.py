"""
SQL-generation audit log -- records every request -> SQL (or error) cycle.

The table is created automatically on first use via ``ensure_log_table()``.
Writes are best-effort: a failing insert is logged and swallowed so the
caller's response is never blocked by the audit trail.
"""
from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    insert,
    select,
)

from flipdash.core.logging import get_logger
from flipdash.db.connection import get_engine

logger = get_logger(__name__)

_TABLE = "sql_generation_logs"

metadata = MetaData()

generation_logs = Table(
    _TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("query", Text, nullable=False),
    Column("previous_query", Text),
    Column("session_id", String(120)),
    Column("is_owner", Boolean, nullable=False, default=False),
    Column("provider", String(20), nullable=False, default="mock"),
    Column("generated_sql", Text),
    Column("success", Boolean, nullable=False, default=True),
    Column("error", Text),
    Column("latency_ms", Integer),
    Column("created_at", DateTime, nullable=False),
)

_table_ready = False


def ensure_log_table() -> None:
    """Create the audit table if it doesn't exist."""
    global _table_ready
    metadata.create_all(get_engine(), checkfirst=True)
    _table_ready = True
    logger.info("Audit log table '%s' ensured", _TABLE)


def log_generation(
    query: str,
    provider: str,
    sql: str,
    success: bool,
    error: str | None = None,
    latency_ms: int = 0,
    previous_query: str | None = None,
    session_id: str | None = None,
    is_owner: bool = False,
) -> None:
    """Insert one row into the audit table."""
    if not _table_ready:
        ensure_log_table()

    params = {
        "query": query[:2000],
        "previous_query": previous_query,
        "session_id": session_id,
        "is_owner": is_owner,
        "provider": provider,
        "generated_sql": sql or None,
        "success": success,
        "error": error,
        "latency_ms": latency_ms,
        "created_at": datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None),
    }

    try:
        with get_engine().begin() as conn:
            conn.execute(insert(generation_logs), params)
        logger.debug("Generation logged: query=%s success=%s", query[:80], success)
    except Exception:
        logger.exception("Failed to log SQL generation -- continuing without logging")


def recent_generations(limit: int = 50) -> list[dict[str, Any]]:
    """Newest audit rows first."""
    if not _table_ready:
        ensure_log_table()
    stmt = select(generation_logs).order_by(generation_logs.c.id.desc()).limit(limit)
    with get_engine().connect() as conn:
        return [dict(row._mapping) for row in conn.execute(stmt)]


def reset_log_table() -> None:
    """Forget table state, for use after ``reset_engine``."""
    global _table_ready
    _table_ready = False
