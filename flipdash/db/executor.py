"""
Read-only SQL execution over one request's flip records.

``execute_sql_over_records``:
  1. Runs the SQL through the safety gate (``ensure_safe_sql``)
  2. Loads the records into a private in-memory SQLite ``flips`` table
  3. Executes with ``PRAGMA query_only`` so SQLite itself refuses writes
  4. Converts Decimal/date/datetime to JSON-safe Python types
  5. Caps the result at ``max_rows``
"""
from __future__ import annotations

import datetime
import decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import Column, Float, Integer, MetaData, Table, Text, insert, text
from sqlalchemy.exc import SQLAlchemyError

from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger
from flipdash.db.connection import readonly_connection, scratch_engine
from flipdash.engine.records import TradeRecord
from flipdash.governance.sql_safety import ensure_safe_sql

logger = get_logger(__name__)

metadata = MetaData()

flips_table = Table(
    "flips",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("item", Text, nullable=False),
    Column("buy_price", Integer),
    Column("sell_price", Integer),
    Column("profit", Integer),
    Column("roi", Float),
    Column("quantity", Integer),
    Column("buy_time", Text),
    Column("sell_time", Text),
    Column("account", Text),
    Column("flip_duration_minutes", Integer),
    Column("date", Text),
)

_TABLE_COLUMNS = tuple(c.name for c in flips_table.columns if c.name != "id")


class QueryExecutionError(RuntimeError):
    """SQLite rejected the statement (syntax error, unknown column, ...)."""


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def _table_row(record: TradeRecord | Mapping[str, Any]) -> dict[str, Any]:
    row = record.to_row() if isinstance(record, TradeRecord) else dict(record)
    values = {col: row.get(col) for col in _TABLE_COLUMNS}
    for col in ("buy_price", "sell_price", "profit", "quantity", "flip_duration_minutes"):
        if isinstance(values[col], float):
            values[col] = round(values[col])
    return values


def execute_sql_over_records(
    sql: str,
    records: Iterable[TradeRecord | Mapping[str, Any]],
    max_rows: int | None = None,
) -> list[dict[str, Any]]:
    """Execute a read-only SELECT against *records* loaded as the ``flips`` table.

    Raises
    ------
    UnsafeSQLError
        The SQL failed the safety gate; nothing was executed.
    QueryExecutionError
        SQLite could not run the statement.
    """
    safe_sql = ensure_safe_sql(sql)
    limit = max_rows or get_settings().max_result_rows
    rows_in = [_table_row(r) for r in records]
    logger.info("Executing SQL (%d chars) over %d records", len(safe_sql), len(rows_in))

    engine = scratch_engine()
    try:
        metadata.create_all(engine)
        if rows_in:
            with engine.begin() as conn:
                conn.execute(insert(flips_table), rows_in)

        with readonly_connection(engine) as conn:
            result = conn.execute(text(safe_sql))
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchmany(limit)
            ]
    except SQLAlchemyError as exc:
        logger.warning("SQL execution failed: %s", exc)
        raise QueryExecutionError(str(getattr(exc, "orig", exc))) from exc
    finally:
        engine.dispose()

    logger.info("Returned %d rows", len(rows))
    return rows
