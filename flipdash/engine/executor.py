"""
Local query executor -- runs a query config directly over in-memory rows,
without SQL.

Processing order is fixed:

  1. filters   each filter is an independent AND pass over the current rows
  2. group by  rows collapse to one aggregate row per group key
  3. sort      stable; nulls last in both directions; strings case-insensitive
  4. limit     plain slice

A ``QuerySpec`` is accepted too: ``config_from_spec`` resolves its time
range into date/weekday filters and its first dimension into a group key.
"""
from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from flipdash.assistant.spec import (
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    PresetRange,
    QuerySpec,
    WEEKDAYS,
)
from flipdash.engine.conditions import OPERATORS, evaluate_condition
from flipdash.engine.records import TradeRecord
from flipdash.core.logging import get_logger

logger = get_logger(__name__)


# ── Config model ─────────────────────────────────────────

class FilterCondition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field: str | None = None
    operator: str | None = None
    value: Any = None
    value2: Any = None


class QueryConfig(BaseModel):
    """The narrow filter / group / sort / limit form the executor runs."""

    model_config = ConfigDict(populate_by_name=True)

    filters: list[FilterCondition] = Field(default_factory=list)
    group_by: str | None = Field(None, alias="groupBy")
    sort_by: str | None = Field(None, alias="sortBy")
    sort_order: str | None = Field(None, alias="sortOrder")
    limit: int | None = None


# ── Fields ───────────────────────────────────────────────

FIELD_ALIASES: dict[str, str] = {
    "profitVelocity": "profit_velocity",
    "marginPercent": "margin_percent",
    "daysSinceFlip": "days_since_flip",
    "weekOfYear": "week_of_year",
    "profitPerItem": "profit_per_item",
    "totalValue": "total_value",
    "dayType": "day_type",
    "avgBuyPrice": "buy_price",
    "avgSellPrice": "sell_price",
    "hoursHeld": "hours_held",
    "flipDurationMinutes": "flip_duration_minutes",
    "avg_buy_price": "buy_price",
    "avg_sell_price": "sell_price",
}

AVAILABLE_FIELDS: list[dict[str, Any]] = [
    {"name": "item", "type": "string", "label": "Item Name"},
    {"name": "account", "type": "string", "label": "Account"},
    {"name": "profit", "type": "number", "label": "Profit"},
    {"name": "roi", "type": "number", "label": "ROI %"},
    {"name": "quantity", "type": "number", "label": "Quantity"},
    {"name": "date", "type": "date", "label": "Date"},
    {"name": "buy_price", "type": "number", "label": "Avg Buy Price"},
    {"name": "sell_price", "type": "number", "label": "Avg Sell Price"},
    {"name": "spent", "type": "number", "label": "Total Spent"},
    {"name": "revenue", "type": "number", "label": "Total Revenue"},
    {"name": "hours_held", "type": "number", "label": "Hours Held"},
    {"name": "flip_duration_minutes", "type": "number", "label": "Hold Time (min)"},
    {"name": "days_since_flip", "type": "number", "label": "Days Ago", "computed": True},
    {"name": "profit_velocity", "type": "number", "label": "Profit/Hour", "computed": True},
    {"name": "margin_percent", "type": "number", "label": "Margin %", "computed": True},
    {"name": "profit_per_item", "type": "number", "label": "Profit/Item", "computed": True},
    {"name": "total_value", "type": "number", "label": "Total Value", "computed": True},
    {"name": "week_of_year", "type": "number", "label": "Week of Year", "computed": True},
    {"name": "weekday", "type": "string", "label": "Day of Week", "computed": True},
    {"name": "day_type", "type": "string", "label": "Weekday / Weekend", "computed": True},
    {"name": "hour", "type": "number", "label": "Hour Sold", "computed": True},
]
_FIELD_TYPES = {f["name"]: f["type"] for f in AVAILABLE_FIELDS}

_OPERATORS_BY_TYPE: dict[str, list[dict[str, str]]] = {
    "number": [
        {"value": ">", "label": "Greater than"},
        {"value": "<", "label": "Less than"},
        {"value": ">=", "label": "Greater or equal"},
        {"value": "<=", "label": "Less or equal"},
        {"value": "=", "label": "Equals"},
        {"value": "!=", "label": "Not equals"},
        {"value": "between", "label": "Between"},
    ],
    "string": [
        {"value": "=", "label": "Equals"},
        {"value": "!=", "label": "Not equals"},
        {"value": "contains", "label": "Contains"},
        {"value": "startsWith", "label": "Starts with"},
        {"value": "endsWith", "label": "Ends with"},
        {"value": "in", "label": "One of"},
    ],
    "date": [
        {"value": ">", "label": "After"},
        {"value": "<", "label": "Before"},
        {"value": "=", "label": "On"},
        {"value": "between", "label": "Between"},
    ],
}
_DEFAULT_OPERATORS = [{"value": "=", "label": "Equals"}, {"value": "!=", "label": "Not equals"}]


def available_fields() -> list[dict[str, Any]]:
    return [dict(f) for f in AVAILABLE_FIELDS]


def operators_for_field(field_or_type: str) -> list[dict[str, str]]:
    """Operators offered for a field name (``"profit"``) or a field type (``"number"``)."""
    kind = _FIELD_TYPES.get(FIELD_ALIASES.get(field_or_type, field_or_type), field_or_type)
    return [dict(o) for o in _OPERATORS_BY_TYPE.get(kind, _DEFAULT_OPERATORS)]


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _number(value: Any) -> float:
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def _week_of_year(d: date) -> int:
    start = date(d.year, 1, 1)
    start_dow = (start.weekday() + 1) % 7  # Sunday = 0
    return math.ceil(((d - start).days + start_dow + 1) / 7)


def resolve_field(row: Mapping[str, Any], field: str, today: date | None = None) -> Any:
    """Read *field* from *row*, deriving computed fields on the fly."""
    name = FIELD_ALIASES.get(field, field)
    if name == "profit_velocity":
        return _number(row.get("profit")) / (_number(row.get("hours_held")) or 1)
    if name == "margin_percent":
        spent = _number(row.get("spent")) or _number(row.get("buy_price")) * _number(row.get("quantity")) or 1
        return _number(row.get("profit")) / spent * 100
    if name == "profit_per_item":
        return _number(row.get("profit")) / (_number(row.get("quantity")) or 1)
    if name == "total_value":
        return _number(row.get("sell_price")) * _number(row.get("quantity"))
    if name in ("days_since_flip", "week_of_year", "weekday", "day_type"):
        d = _as_date(row.get("date"))
        if d is None:
            return None
        if name == "days_since_flip":
            return ((today or date.today()) - d).days
        if name == "week_of_year":
            return _week_of_year(d)
        weekday = WEEKDAYS[d.weekday()]
        if name == "weekday":
            return weekday
        return "weekend" if weekday in ("saturday", "sunday") else "weekday"
    if name == "hour":
        sold = row.get("sell_time")
        if isinstance(sold, datetime):
            return sold.hour
        try:
            return datetime.fromisoformat(str(sold)).hour
        except ValueError:
            return None
    return row.get(name, row.get(field))


# ── Pipeline stages ──────────────────────────────────────

def apply_filter(rows: list[dict[str, Any]], f: FilterCondition, today: date | None = None) -> list[dict[str, Any]]:
    if f.operator not in OPERATORS:
        logger.warning("Unknown filter operator %r on %r; filter ignored", f.operator, f.field)
        return rows
    return [
        r for r in rows
        if evaluate_condition(resolve_field(r, f.field or "", today), f.operator, f.value, f.value2)
    ]


def group_rows(rows: list[dict[str, Any]], field: str, today: date | None = None) -> list[dict[str, Any]]:
    """One aggregate row per distinct value of *field*, in first-seen order."""
    groups: dict[Any, list[dict[str, Any]]] = {}
    for r in rows:
        groups.setdefault(resolve_field(r, field, today), []).append(r)

    out: list[dict[str, Any]] = []
    for key, members in groups.items():
        total_profit = sum(_number(m.get("profit")) for m in members)
        out.append({
            "group": key,
            "count": len(members),
            "total_profit": total_profit,
            "total_quantity": sum(_number(m.get("quantity")) for m in members),
            "avg_profit": total_profit / len(members),
            "avg_roi": sum(_number(m.get("roi")) for m in members) / len(members),
            "items": members,
        })
    return out


def sort_rows(rows: list[dict[str, Any]], field: str, order: str | None = "asc",
              today: date | None = None) -> list[dict[str, Any]]:
    """Stable sort; numbers before strings, nulls always last."""
    descending = order == "desc"
    numbers, strings, nulls = [], [], []
    for r in rows:
        v = resolve_field(r, field, today)
        if v is None:
            nulls.append(r)
        elif isinstance(v, (int, float)) and not isinstance(v, bool):
            numbers.append((v, r))
        else:
            strings.append((str(v).lower(), r))
    numbers.sort(key=lambda p: p[0], reverse=descending)
    strings.sort(key=lambda p: p[0], reverse=descending)
    return [r for _, r in numbers] + [r for _, r in strings] + nulls


# ── QuerySpec translation ────────────────────────────────

_DIMENSION_GROUPS = {"time_period": "day_type"}
_GROUPED_SORT_FIELDS = {
    "profit": "total_profit",
    "roi": "avg_roi",
    "flips": "count",
    "flip_count": "count",
    "quantity": "total_quantity",
    "volume": "total_quantity",
}


def _last_weekday(day: str, today: date) -> date:
    """Most recent *day* strictly before *today*."""
    delta = (today.weekday() - WEEKDAYS.index(day)) % 7 or 7
    return today - timedelta(days=delta)


def time_range_filters(tr: Any, today: date) -> list[FilterCondition]:
    if isinstance(tr, PresetRange):
        if tr.preset == "last_7d":
            return [FilterCondition(field="days_since_flip", operator="<", value=7)]
        if tr.preset == "last_30d":
            return [FilterCondition(field="days_since_flip", operator="<", value=30)]
        if tr.preset == "this_week":
            start = today - timedelta(days=today.weekday())
            return [FilterCondition(field="date", operator=">=", value=start.isoformat())]
        if tr.preset == "this_month":
            return [FilterCondition(field="date", operator=">=", value=today.replace(day=1).isoformat())]
        if tr.preset == "last_month":
            end = today.replace(day=1) - timedelta(days=1)
            return [FilterCondition(field="date", operator="between",
                                    value=end.replace(day=1).isoformat(), value2=end.isoformat())]
        return []
    if isinstance(tr, CustomRange):
        return [FilterCondition(field="date", operator="between",
                                value=tr.date_from.isoformat(), value2=tr.date_to.isoformat())]
    if isinstance(tr, DayOfWeekRange):
        if tr.specific:
            return [FilterCondition(field="date", operator="=",
                                    value=_last_weekday(tr.day_of_week, today).isoformat())]
        return [FilterCondition(field="weekday", operator="=", value=tr.day_of_week)]
    return []


def config_from_spec(spec: QuerySpec, today: date | None = None) -> QueryConfig:
    """Resolve a QuerySpec into the executor's narrow config."""
    today = today or date.today()
    filters: list[FilterCondition] = []
    for f in spec.filters:
        if f.op == "between" and isinstance(f.value, (list, tuple)) and len(f.value) == 2:
            filters.append(FilterCondition(field=f.field, operator="between", value=f.value[0], value2=f.value[1]))
        else:
            filters.append(FilterCondition(field=f.field, operator=f.op, value=f.value))
    filters.extend(time_range_filters(spec.time_range, today))

    group_by = None
    if spec.dimensions:
        group_by = _DIMENSION_GROUPS.get(spec.dimensions[0], spec.dimensions[0])
    elif isinstance(spec.time_range, ComparisonRange):
        group_by = "day_type"

    sort_by = sort_order = None
    if spec.sort:
        sort_by, sort_order = spec.sort[0].by, spec.sort[0].order
        if group_by:
            sort_by = "group" if sort_by in spec.dimensions else _GROUPED_SORT_FIELDS.get(sort_by, sort_by)

    return QueryConfig(filters=filters, group_by=group_by, sort_by=sort_by,
                       sort_order=sort_order, limit=spec.limit)


# ── Validation ───────────────────────────────────────────

def validate_query_config(config: QueryConfig | Mapping[str, Any] | None) -> list[str]:
    """Return every structural problem in *config* (empty list = runnable)."""
    if config is None:
        return ["Query configuration is required"]
    raw = config.model_dump(by_alias=True, exclude_unset=True) if isinstance(config, QueryConfig) else dict(config)

    errors: list[str] = []
    filters = raw.get("filters") or []
    if isinstance(filters, list):
        for i, f in enumerate(filters, start=1):
            f = f.model_dump(exclude_unset=True) if isinstance(f, FilterCondition) else dict(f or {})
            operator = f.get("operator")
            if not f.get("field"):
                errors.append(f"Filter {i}: field is required")
            if not operator:
                errors.append(f"Filter {i}: operator is required")
            elif operator not in OPERATORS:
                errors.append(f"Filter {i}: unknown operator '{operator}'")
            if "value" not in f and operator not in ("is_null", "is_not_null"):
                errors.append(f"Filter {i}: value is required")
            if operator == "between" and f.get("value2") is None and not (
                isinstance(f.get("value"), (list, tuple)) and len(f["value"]) == 2
            ):
                errors.append(f"Filter {i}: value2 is required for 'between' operator")

    sort_by = raw.get("sortBy", raw.get("sort_by"))
    sort_order = raw.get("sortOrder", raw.get("sort_order"))
    if sort_by and sort_order not in ("asc", "desc", None):
        errors.append('sortOrder must be "asc" or "desc"')

    limit = raw.get("limit")
    if "limit" in raw and limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit < 0
    ):
        errors.append("limit must be a positive number")

    return errors


# ── Entry point ──────────────────────────────────────────

def _rows(records: Iterable[TradeRecord | Mapping[str, Any]]) -> list[dict[str, Any]]:
    return [r.to_row() if isinstance(r, TradeRecord) else dict(r) for r in records]


def execute_query(
    config: QueryConfig | QuerySpec | Mapping[str, Any],
    records: Iterable[TradeRecord | Mapping[str, Any]],
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Run *config* over *records* and return raw rows or group rows.

    Parameters
    ----------
    config : QueryConfig, QuerySpec or mapping
        A mapping is read as a QueryConfig (camelCase keys accepted).
    records : iterable
        ``TradeRecord`` objects or already-flattened row dicts.
    today : date, optional
        Reference date for relative time ranges; defaults to today.
    """
    if isinstance(config, QuerySpec):
        config = config_from_spec(config, today)
    elif not isinstance(config, QueryConfig):
        config = QueryConfig.model_validate(config)

    results = _rows(records)
    for f in config.filters:
        results = apply_filter(results, f, today)
    if config.group_by:
        results = group_rows(results, config.group_by, today)
    if config.sort_by:
        results = sort_rows(results, config.sort_by, config.sort_order, today)
    if config.limit and config.limit > 0:
        results = results[:config.limit]

    logger.debug("Executed local query: %d rows", len(results))
    return results
