"""
SQL-generation service -- the in-process implementation of ``POST /generate-sql``.

    request -> bounds check -> generate (spec renderer or LLM) -> safety gate -> audit log

Generation paths
----------------
structured spec   the caller already has a QuerySpec: render it directly
mock provider     plan the question with the rule-based pipeline and render
                  (a refinement is planned as "previous question + refinement")
openai/anthropic  prompt the LLM with the table schema, date context and,
                  for refinements, the previous question and SQL

Whatever the path, the SQL passes ``ensure_safe_sql`` before it is returned.
Every call, successful or not, is written to the audit log.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flipdash.assistant.llm_client import call_llm, resolve_provider, strip_code_fences
from flipdash.assistant.planner import get_planner
from flipdash.assistant.spec import QuerySpec, WEEKDAYS
from flipdash.assistant.sql_generator import render_sql
from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger
from flipdash.core.utils import timer
from flipdash.db.query_log import log_generation
from flipdash.governance.sql_safety import UnsafeSQLError, ensure_safe_sql

logger = get_logger(__name__)


class InvalidQueryError(ValueError):
    """The request itself is malformed (missing, too short or too long)."""


class SQLGenerationError(RuntimeError):
    """Upstream generation failed; ``message`` carries the underlying cause."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Failed to generate SQL: {message}")


# ── Contract models ──────────────────────────────────────


class TemporalContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_date: str = Field(..., alias="currentDate")
    day_name: str = Field("", alias="dayName")
    current_year: int | None = Field(None, alias="currentYear")
    timezone: str = "UTC"
    recent_days: dict[str, str] = Field(default_factory=dict, alias="recentDays")


class SQLGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    previous_query: str | None = Field(None, alias="previousQuery")
    previous_sql: str | None = Field(None, alias="previousSQL")
    session_id: str | None = Field(None, alias="sessionId")
    is_owner: bool = Field(False, alias="isOwner")
    temporal_context: TemporalContext | None = Field(None, alias="temporalContext")
    structured_spec: dict[str, Any] | None = Field(None, alias="structuredSpec")
    is_hybrid_query: bool = Field(False, alias="isHybridQuery")


GenerationSource = Literal["spec", "rules", "llm"]


class SQLGenerationResult(BaseModel):
    sql: str
    source: GenerationSource
    latency_ms: int = 0


def build_temporal_context(today: date | None = None, timezone: str = "UTC") -> TemporalContext:
    """Date facts the generator needs to resolve "last tuesday" and friends."""
    today = today or date.today()
    recent: dict[str, str] = {}
    for i, day in enumerate(WEEKDAYS):
        delta = (today.weekday() - i) % 7 or 7
        recent[f"last{day.capitalize()}"] = (today - timedelta(days=delta)).isoformat()
    return TemporalContext(
        current_date=today.isoformat(),
        day_name=WEEKDAYS[today.weekday()].capitalize(),
        current_year=today.year,
        timezone=timezone,
        recent_days=recent,
    )


# ── Prompts ──────────────────────────────────────────────

_SCHEMA = """CREATE TABLE flips (
  item TEXT NOT NULL,
  buy_price INTEGER,
  sell_price INTEGER,
  profit INTEGER,
  roi REAL,
  quantity INTEGER,
  buy_time TEXT,
  sell_time TEXT,
  account TEXT,
  flip_duration_minutes INTEGER,
  date TEXT -- YYYY-MM-DD
);"""

_DATE_RULES = """DATE RULES:
- Today: {current_date} ({day_name}); current year: {current_year}; timezone: {timezone}
- A month without a year means this year if it has passed, otherwise last year.
- "last <day>" is one specific date (see RECENT DAYS); "<day> flips" is every such weekday.
- strftime('%w', date) returns 0=Sunday .. 6=Saturday; weekends are IN ('0','6').

RECENT DAYS:
{recent_days}"""

_RULES = """RULES:
1. Return ONLY one SQLite SELECT (or WITH ... SELECT) statement, no explanations.
2. Only read from the flips table. Never use SELECT *; never UNION.
3. Only add LIMIT when the user gives a number ("top 10").
4. Default to ORDER BY profit DESC.
5. Column names: SUM(profit) -> total_profit, AVG(profit) -> avg_profit_per_flip,
   COUNT(*) -> flip_count, AVG(roi) -> avg_roi_percent.
6. ROI per time period is SUM(profit) * 100.0 / SUM(buy_price * quantity), not AVG(roi).
7. Match items with LOWER(item) LIKE '%name%'; expand abbreviations (dscim = dragon scimitar,
   bcp = bandos chestplate, sgs = saradomin godsword).
8. If the request is not about flips, return: SELECT 'Please ask about OSRS flips' AS error"""

_NEW_QUERY_PROMPT = """You write SQL for an Old School RuneScape flipping log.

{date_rules}

Table schema:
{schema}

{rules}

User request: "{query}"
SQL:"""

_REFINEMENT_PROMPT = """You are refining a previous SQL query based on user feedback.

{date_rules}

Table schema:
{schema}

Previous user query: "{previous_query}"
Previous SQL: {previous_sql}

Refinement request: "{query}"

Keep every WHERE condition and ORDER BY of the previous SQL unless the refinement
changes them. "show all" removes only the LIMIT.

{rules}

Updated SQL:"""


def build_prompt(request: SQLGenerationRequest, today: date | None = None) -> str:
    ctx = request.temporal_context or build_temporal_context(today)
    date_rules = _DATE_RULES.format(
        current_date=ctx.current_date,
        day_name=ctx.day_name or "N/A",
        current_year=ctx.current_year or "N/A",
        timezone=ctx.timezone,
        recent_days="\n".join(f"- {k}: {v}" for k, v in ctx.recent_days.items()) or "- N/A",
    )
    if request.previous_query:
        return _REFINEMENT_PROMPT.format(
            date_rules=date_rules, schema=_SCHEMA, rules=_RULES,
            previous_query=request.previous_query,
            previous_sql=request.previous_sql or "(none)",
            query=request.query,
        )
    return _NEW_QUERY_PROMPT.format(date_rules=date_rules, schema=_SCHEMA, rules=_RULES, query=request.query)


# ── Generation ───────────────────────────────────────────


def check_query_bounds(query: str | None) -> str:
    """Return the trimmed query or raise ``InvalidQueryError``."""
    settings = get_settings()
    text = (query or "").strip()
    if not text:
        raise InvalidQueryError("Query is required")
    if len(text) < settings.query_min_length:
        raise InvalidQueryError(f"Query must be at least {settings.query_min_length} characters")
    if len(text) > settings.query_max_length:
        raise InvalidQueryError(f"Query must be at most {settings.query_max_length} characters")
    return text


def _spec_from_request(request: SQLGenerationRequest) -> QuerySpec:
    try:
        return QuerySpec.model_validate(request.structured_spec)
    except ValidationError as exc:
        raise InvalidQueryError(f"Invalid structuredSpec: {exc.errors()[0]['msg']}") from exc


def _generate(request: SQLGenerationRequest, provider: str, today: date | None) -> tuple[str, GenerationSource]:
    if request.structured_spec is not None:
        return render_sql(_spec_from_request(request), today), "spec"
    if provider == "mock":
        question = request.query
        if request.previous_query:
            question = f"{request.previous_query} {request.query}"
        spec = get_planner().build_spec(question)
        return render_sql(spec, today), "rules"
    reply = call_llm(build_prompt(request, today), provider=provider)
    return strip_code_fences(reply), "llm"


def _audit(request: SQLGenerationRequest, provider: str, sql: str, success: bool,
           error: str | None, latency_ms: int) -> None:
    try:
        log_generation(
            query=request.query,
            previous_query=request.previous_query,
            session_id=request.session_id,
            is_owner=request.is_owner,
            provider=provider,
            sql=sql,
            success=success,
            error=error,
            latency_ms=latency_ms,
        )
    except Exception:
        logger.warning("Audit log write failed -- continuing")


def generate_sql(
    request: SQLGenerationRequest | dict[str, Any],
    provider: str | None = None,
    today: date | None = None,
) -> SQLGenerationResult:
    """Generate safety-checked SQL for one request.

    Raises
    ------
    InvalidQueryError
        Missing, too-short or too-long query, or a malformed structured spec.
    UnsafeSQLError
        The generated SQL failed the safety gate; it is never returned.
    SQLGenerationError
        The generator itself failed (provider error, bad reply).
    """
    if not isinstance(request, SQLGenerationRequest):
        request = SQLGenerationRequest.model_validate(request)
    request = request.model_copy(update={"query": check_query_bounds(request.query)})
    name = resolve_provider(provider)

    with timer() as t:
        try:
            sql, source = _generate(request, name, today)
        except InvalidQueryError:
            raise
        except Exception as exc:
            logger.exception("SQL generation failed")
            _audit(request, name, "", False, str(exc), 0)
            raise SQLGenerationError(str(exc)) from exc

        try:
            sql = ensure_safe_sql(sql)
        except UnsafeSQLError as exc:
            _audit(request, name, sql, False, f"Safety check failed: {exc}", 0)
            raise

    _audit(request, name, sql, True, None, t["elapsed_ms"])
    logger.info("Generated SQL via %s in %d ms", source, t["elapsed_ms"])
    return SQLGenerationResult(sql=sql, source=source, latency_ms=t["elapsed_ms"])
