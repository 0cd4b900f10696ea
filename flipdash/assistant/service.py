"""
Assistant service -- orchestrates plan -> (confirm) -> render SQL -> execute.

Two routes:
  local  the rule-based planner builds a QuerySpec; the spec is rendered to
         SQL for display and executed over the caller's records by the local
         executor (no database involved)
  sql    refinements and questions too complex for the rules go to the
         SQL-generation service (remote when SQL_SERVICE_URL is set, otherwise
         in-process); the SQL runs over the records in a read-only SQLite copy

Specs that need confirmation are returned with their preview and are not
executed until the caller asks again with ``confirmed=True``.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Literal, Mapping

from flipdash.assistant.planner import PlanOutcome, get_planner, should_use_remote
from flipdash.assistant.sql_client import SQLGenerationClient
from flipdash.assistant.sql_generator import render_sql
from flipdash.assistant.sql_service import (
    SQLGenerationRequest,
    build_temporal_context,
    check_query_bounds,
    generate_sql,
)
from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger
from flipdash.core.utils import timer
from flipdash.db.executor import QueryExecutionError, execute_sql_over_records
from flipdash.engine.executor import execute_query
from flipdash.engine.records import TradeRecord
from flipdash.governance.sql_safety import UnsafeSQLError, check_sql_safety

logger = get_logger(__name__)

Route = Literal["local", "sql"]


class AssistantResult:
    def __init__(
        self,
        question: str,
        outcome: PlanOutcome,
        route: Route,
        sql: str = "",
        rows: list[dict[str, Any]] | None = None,
        errors: list[str] | None = None,
        executed: bool = False,
        latency_ms: int = 0,
    ):
        self.question = question
        self.outcome = outcome
        self.route = route
        self.sql = sql
        self.rows = rows or []
        self.errors = errors or []
        self.executed = executed
        self.latency_ms = latency_ms

    @property
    def success(self) -> bool:
        return not self.errors and self.outcome.type in ("parsed", "confirm")

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "outcome": self.outcome.type,
            "route": self.route,
            "spec": self.outcome.spec.model_dump(mode="json", by_alias=True) if self.outcome.spec else None,
            "preview": self.outcome.preview,
            "confidence": self.outcome.confidence,
            "clarification": self.outcome.question,
            "options": self.outcome.options,
            "reason": self.outcome.reason,
            "alternatives": self.outcome.alternatives,
            "sql": self.sql,
            "rows": self.rows,
            "row_count": len(self.rows),
            "executed": self.executed,
            "errors": self.errors,
            "latency_ms": self.latency_ms,
            "success": self.success,
        }


def _remote_sql(request: SQLGenerationRequest, provider: str | None, today: date | None) -> str:
    settings = get_settings()
    if settings.sql_service_url:
        return SQLGenerationClient().generate(request)
    return generate_sql(request, provider=provider, today=today).sql


def ask(
    question: str,
    records: Iterable[TradeRecord | Mapping[str, Any]] | None = None,
    previous_query: str | None = None,
    previous_sql: str | None = None,
    confirmed: bool = False,
    provider: str | None = None,
    today: date | None = None,
) -> AssistantResult:
    """End-to-end: question -> plan outcome, SQL and (when records are given) rows.

    Parameters
    ----------
    question : str
        Natural-language question about the user's flips.
    records : iterable, optional
        Flip records to run the query over.  Without records the result is
        a dry run (spec, preview and SQL only).
    previous_query, previous_sql : str, optional
        The previous turn, for refinements.
    confirmed : bool
        Execute even when the planner asked for confirmation.
    provider : str, optional
        LLM provider override for the SQL route.
    """
    question = check_query_bounds(question)
    logger.info("Assistant.ask | question=%s | confirmed=%s | refinement=%s",
                question, confirmed, bool(previous_query))
    rows_in = list(records) if records is not None else None

    with timer() as t:
        if should_use_remote(question, previous_query):
            result = _ask_sql(question, rows_in, previous_query, previous_sql, provider, today)
        else:
            result = _ask_local(question, rows_in, confirmed, today)
    result.latency_ms = t["elapsed_ms"]

    logger.info("Assistant.ask done | route=%s outcome=%s rows=%d errors=%d | %d ms",
                result.route, result.outcome.type, len(result.rows), len(result.errors), result.latency_ms)
    return result


def _ask_local(question: str, records: list | None, confirmed: bool, today: date | None) -> AssistantResult:
    outcome = get_planner().plan(question)
    if outcome.spec is None or outcome.type in ("clarify", "impossible"):
        return AssistantResult(question, outcome, route="local")

    sql = render_sql(outcome.spec, today)
    errors = check_sql_safety(sql)
    rows: list[dict[str, Any]] = []
    executed = False
    ready = outcome.type == "parsed" or confirmed
    if ready and records is not None and not errors:
        rows = execute_query(outcome.spec, records, today)
        executed = True
    return AssistantResult(question, outcome, route="local", sql=sql, rows=rows,
                           errors=errors, executed=executed)


def _ask_sql(question: str, records: list | None, previous_query: str | None,
             previous_sql: str | None, provider: str | None, today: date | None) -> AssistantResult:
    request = SQLGenerationRequest(
        query=question,
        previous_query=previous_query,
        previous_sql=previous_sql,
        temporal_context=build_temporal_context(today),
    )
    outcome = PlanOutcome(type="parsed", confidence=1.0)
    try:
        sql = _remote_sql(request, provider, today)
    except UnsafeSQLError as exc:
        return AssistantResult(question, outcome, route="sql", errors=list(exc.errors))

    rows: list[dict[str, Any]] = []
    errors: list[str] = []
    executed = False
    if records is not None:
        try:
            rows = execute_sql_over_records(sql, records)
            executed = True
        except QueryExecutionError as exc:
            logger.exception("SQL execution failed")
            errors.append(f"Execution error: {exc}")
    return AssistantResult(question, outcome, route="sql", sql=sql, rows=rows,
                           errors=errors, executed=executed)
