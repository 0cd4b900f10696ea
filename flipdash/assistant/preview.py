"""
Human-readable one-line previews of a QuerySpec.

Shown to the user before execution so they can confirm what will run:

    "Show total profit, flip count grouped by item for last 7 days (showing top 10 results)"
"""
from __future__ import annotations

from typing import Any

from flipdash.assistant.spec import (
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    MetricSpec,
    PresetRange,
    QuerySpec,
    SpecFilter,
    SpecTemplate,
    TimeRange,
)

OPERATION_NAMES = {
    "sum": "total",
    "avg": "average",
    "count": "",
    "min": "minimum",
    "max": "maximum",
    "calculate": "calculated",
}

METRIC_NAMES = {
    "profit": "profit",
    "roi": "ROI",
    "flips": "flip count",
    "*": "flip count",
    "volume": "trading volume",
    "avg_hold_time": "average hold time",
    "weighted_roi": "weighted ROI",
}

DIMENSION_NAMES = {
    "item": "item",
    "date": "date",
    "account": "account",
    "hour": "hour",
    "weekday": "day of week",
    "time_period": "time period",
}

PRESET_NAMES = {
    "last_7d": "last 7 days",
    "last_30d": "last 30 days",
    "this_week": "this week",
    "this_month": "this month",
    "last_month": "last month",
    "all_time": "all time",
}

FIELD_NAMES = {
    "profit": "profit",
    "roi": "ROI",
    "item": "item",
    "account": "account",
    "buy_price": "buy price",
    "sell_price": "sell price",
    "flip_duration_minutes": "hold time",
}

OPERATOR_NAMES = {
    ">": "greater than",
    ">=": "at least",
    "<": "less than",
    "<=": "at most",
    "=": "equals",
    "!=": "not equal to",
    "contains": "contains",
    "in": "in",
    "between": "between",
}

_GP_FIELDS = frozenset({"profit", "buy_price", "sell_price"})

# item_analysis phrases its metrics without the operation word
_ITEM_METRIC_PHRASES = {
    ("flips", "count"): "flip count",
    ("profit", "sum"): "total profit",
    ("roi", "avg"): "average ROI",
}


# ── Display helpers ──────────────────────────────────────

def describe_metric(m: MetricSpec) -> str:
    op = OPERATION_NAMES.get(m.op, m.op)
    name = METRIC_NAMES.get(m.metric, m.metric)
    return f"{op} {name}".strip()


def describe_time_range(tr: TimeRange) -> str:
    if isinstance(tr, PresetRange):
        return PRESET_NAMES.get(tr.preset, tr.preset)
    if isinstance(tr, CustomRange):
        return f"{tr.date_from.isoformat()} to {tr.date_to.isoformat()}"
    if isinstance(tr, DayOfWeekRange):
        day = tr.day_of_week.capitalize()
        return f"last {day}" if tr.specific else f"{day}s"
    if isinstance(tr, ComparisonRange):
        return tr.comparison.replace("_", " ")
    return str(tr)


def format_minutes(minutes: float) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours}h {mins}m" if hours else f"{mins}m"


def describe_value(field: str, value: Any) -> str:
    if isinstance(value, (list, tuple)):
        parts = [describe_value(field, v) for v in value]
        return " and ".join(parts) if len(parts) == 2 else ", ".join(parts)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if field in _GP_FIELDS:
        return f"{value:,} GP"
    if field == "roi":
        return f"{value}%"
    if field == "flip_duration_minutes":
        return format_minutes(value)
    return str(value)


def describe_filter(f: SpecFilter) -> str:
    name = FIELD_NAMES.get(f.field, f.field)
    op = OPERATOR_NAMES.get(f.op, f.op)
    return f"{name} {op} {describe_value(f.field, f.value)}"


# ── Preview ──────────────────────────────────────────────

def generate_preview(spec: QuerySpec | SpecTemplate) -> str:
    """One readable sentence describing what *spec* will fetch."""
    parts: list[str] = []
    intent = getattr(spec, "intent", "")
    item_filter = next((f for f in spec.filters if f.field == "item" and f.op == "contains"), None)

    if intent == "item_analysis" and item_filter is not None:
        parts.append(f"Analyze {item_filter.value} flips")
        if spec.metrics:
            descs = [_ITEM_METRIC_PHRASES.get((m.metric, m.op), describe_metric(m)) for m in spec.metrics]
            parts.append(f"showing {', '.join(descs)}")
    else:
        if spec.metrics:
            parts.append(f"Show {', '.join(describe_metric(m) for m in spec.metrics)}")
        elif spec.include_columns:
            parts.append(f"Show {', '.join(spec.include_columns)}")
        else:
            parts.append("Show flips")
        if spec.dimensions:
            parts.append(f"grouped by {', '.join(DIMENSION_NAMES.get(d, d) for d in spec.dimensions)}")

    if spec.time_range is not None:
        parts.append(f"for {describe_time_range(spec.time_range)}")

    shown_filters = [f for f in spec.filters if f is not item_filter or intent != "item_analysis"]
    if shown_filters:
        parts.append(f"where {' and '.join(describe_filter(f) for f in shown_filters)}")

    if spec.limit:
        parts.append(f"(showing top {spec.limit} results)")

    return " ".join(parts)
