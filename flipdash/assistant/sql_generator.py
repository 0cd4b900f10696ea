"""
SQL Generator -- renders a QuerySpec as a single SQLite SELECT over ``flips``.

This is the deterministic counterpart of the remote SQL-generation service:
same table, same column naming rules, same date semantics.  It never
references anything but the ``flips`` table and the columns below.

Column naming follows the aggregate, not the metric alone:
``SUM(profit)`` -> ``total_profit``, ``AVG(profit)`` -> ``avg_profit_per_flip``,
``COUNT(*)`` -> ``flip_count``, ``AVG(roi)`` -> ``avg_roi_percent``.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from flipdash.assistant.spec import (
    AGGREGATE_OPS,
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    MetricSpec,
    PresetRange,
    QuerySpec,
    SpecFilter,
    WEEKDAYS,
)
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

FLIPS_COLUMNS: tuple[str, ...] = (
    "item", "buy_price", "sell_price", "profit", "roi", "quantity",
    "buy_time", "sell_time", "account", "flip_duration_minutes", "date",
)
DEFAULT_COLUMNS: tuple[str, ...] = (
    "item", "buy_price", "sell_price", "profit", "roi", "quantity", "account", "date",
)

# strftime('%w') numbering: 0 = Sunday.
_SQLITE_DOW = {day: str((i + 1) % 7) for i, day in enumerate(WEEKDAYS)}
_WEEKEND_DOW = "('0','6')"


# ── Expressions ──────────────────────────────────────────

_METRIC_COLUMNS: dict[str, str] = {
    "profit": "profit",
    "roi": "roi",
    "volume": "quantity",
    "avg_hold_time": "flip_duration_minutes",
}

_AGGREGATE_ALIASES: dict[tuple[str, str], str] = {
    ("profit", "sum"): "total_profit",
    ("profit", "avg"): "avg_profit_per_flip",
    ("roi", "avg"): "avg_roi_percent",
    ("volume", "sum"): "total_quantity",
    ("avg_hold_time", "avg"): "avg_hold_minutes",
}

_WEEKDAY_CASE = (
    "CASE strftime('%w', date) "
    + " ".join(f"WHEN '{n}' THEN '{day.capitalize()}'" for day, n in _SQLITE_DOW.items())
    + " END"
)

DIMENSION_EXPRESSIONS: dict[str, tuple[str, str]] = {
    "item": ("item", "item"),
    "account": ("account", "account"),
    "date": ("date", "date"),
    "hour": ("CAST(strftime('%H', sell_time) AS INTEGER)", "hour"),
    "weekday": (_WEEKDAY_CASE, "weekday"),
    "time_period": (
        f"CASE WHEN strftime('%w', date) IN {_WEEKEND_DOW} THEN 'Weekend' ELSE 'Weekday' END",
        "day_type",
    ),
}

_SORT_ALIASES: dict[str, str] = {
    "flips": "flip_count",
    "flip_count": "flip_count",
    "volume": "total_quantity",
}


def metric_select(m: MetricSpec) -> tuple[str, str] | None:
    """``(expression, alias)`` for one metric, or None when it adds no column."""
    if m.metric == "flips":
        return ("COUNT(*)", "flip_count") if m.op in AGGREGATE_OPS else None
    if m.metric == "weighted_roi":
        return ("SUM(profit) * 100.0 / NULLIF(SUM(buy_price * quantity), 0)", "weighted_roi_percent")
    column = _METRIC_COLUMNS[m.metric]
    if m.op == "calculate":
        return column, column
    if m.op == "count":
        return f"COUNT({column})", f"{column}_count"
    alias = _AGGREGATE_ALIASES.get((m.metric, m.op), f"{m.op}_{column}")
    return f"{m.op.upper()}({column})", alias


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def filter_clause(f: SpecFilter) -> str:
    field = f.field
    if f.op == "contains":
        escaped = str(f.value).lower().replace("'", "''")
        return f"LOWER({field}) LIKE '%{escaped}%'"
    if f.op == "between":
        low, high = f.value
        return f"{field} BETWEEN {_literal(low)} AND {_literal(high)}"
    if f.op == "in":
        values = f.value if isinstance(f.value, (list, tuple)) else [f.value]
        return f"{field} IN ({', '.join(_literal(v) for v in values)})"
    if f.op == "!=" and isinstance(f.value, str) and field == "item":
        escaped = f.value.lower().replace("'", "''")
        return f"LOWER(item) NOT LIKE '%{escaped}%'"
    return f"{field} {f.op} {_literal(f.value)}"


def _last_weekday(day: str, today: date) -> date:
    delta = (today.weekday() - WEEKDAYS.index(day)) % 7 or 7
    return today - timedelta(days=delta)


def time_range_clause(tr: Any, today: date) -> str | None:
    """WHERE fragment for a time range, resolved against *today*."""
    if isinstance(tr, PresetRange):
        if tr.preset == "last_7d":
            return f"date > '{(today - timedelta(days=7)).isoformat()}'"
        if tr.preset == "last_30d":
            return f"date > '{(today - timedelta(days=30)).isoformat()}'"
        if tr.preset == "this_week":
            return f"date >= '{(today - timedelta(days=today.weekday())).isoformat()}'"
        if tr.preset == "this_month":
            return f"date >= '{today.replace(day=1).isoformat()}'"
        if tr.preset == "last_month":
            end = today.replace(day=1) - timedelta(days=1)
            return f"date BETWEEN '{end.replace(day=1).isoformat()}' AND '{end.isoformat()}'"
        return None
    if isinstance(tr, CustomRange):
        return f"date BETWEEN '{tr.date_from.isoformat()}' AND '{tr.date_to.isoformat()}'"
    if isinstance(tr, DayOfWeekRange):
        if tr.specific:
            return f"date = '{_last_weekday(tr.day_of_week, today).isoformat()}'"
        return f"strftime('%w', date) = '{_SQLITE_DOW[tr.day_of_week]}'"
    return None


# ── SQL builder ──────────────────────────────────────────

def render_sql(spec: QuerySpec, today: date | None = None) -> str:
    """Build a SQLite SELECT for *spec*.

    Grouped specs (dimensions, or a weekend/weekday comparison) select the
    group expressions plus aggregates.  Ungrouped specs with only aggregate
    metrics and no ``include_columns`` collapse to one summary row; the rest
    list raw flips using ``include_columns`` (or the default column set).
    """
    today = today or date.today()

    dimensions = list(spec.dimensions)
    if not dimensions and isinstance(spec.time_range, ComparisonRange):
        dimensions = ["time_period"]

    summary = False
    select_parts: list[str] = []
    group_parts: list[str] = []
    aliases: dict[str, str] = {}

    if dimensions:
        for dim in dimensions:
            expr, alias = DIMENSION_EXPRESSIONS[dim]
            select_parts.append(expr if expr == alias else f"{expr} AS {alias}")
            group_parts.append(alias)
            aliases[dim] = alias
        for m in spec.metrics:
            rendered = metric_select(m)
            if rendered is None:
                continue
            expr, alias = rendered
            part = f"{expr} AS {alias}"
            if part not in select_parts:
                select_parts.append(part)
            aliases.setdefault(m.metric, alias)
    elif not spec.include_columns and spec.metrics and all(m.op in AGGREGATE_OPS for m in spec.metrics):
        for m in spec.metrics:
            rendered = metric_select(m)
            if rendered is not None:
                select_parts.append(f"{rendered[0]} AS {rendered[1]}")
        summary = True
    else:
        columns = [c for c in (spec.include_columns or DEFAULT_COLUMNS) if c in FLIPS_COLUMNS]
        for f in spec.filters:
            if f.field == "flip_duration_minutes" and f.field not in columns:
                columns.append(f.field)
        select_parts.extend(columns or DEFAULT_COLUMNS)

    where_parts: list[str] = []
    for f in spec.filters:
        if f.field not in FLIPS_COLUMNS:
            logger.warning("Filter on unknown column %r skipped", f.field)
            continue
        where_parts.append(filter_clause(f))
    time_clause = time_range_clause(spec.time_range, today)
    if time_clause:
        where_parts.append(time_clause)

    sql = f"SELECT {', '.join(select_parts)} FROM flips"
    if where_parts:
        sql += " WHERE " + " AND ".join(where_parts)
    if group_parts:
        sql += " GROUP BY " + ", ".join(group_parts)

    order_parts: list[str] = []
    for s in ([] if summary else spec.sort):
        if dimensions:
            column = aliases.get(s.by) or _SORT_ALIASES.get(s.by)
            if column is None:
                logger.debug("Sort key %r is not selected in a grouped query; skipped", s.by)
                continue
        else:
            column = s.by if s.by in FLIPS_COLUMNS else None
            if column is None:
                continue
        order_parts.append(f"{column} {s.order.upper()}")
    if not order_parts and not dimensions and not summary:
        order_parts.append("profit DESC")
    if order_parts:
        sql += " ORDER BY " + ", ".join(order_parts)

    if spec.limit and not summary:
        sql += f" LIMIT {int(spec.limit)}"

    logger.info("Rendered SQL for intent=%s (%d chars)", spec.intent, len(sql))
    return sql
