"""
Unit tests -- local query executor: filters, grouping, sorting, limits, spec translation.
"""
from datetime import date, datetime

import pytest

from flipdash.assistant.spec import (
    ComparisonRange,
    DayOfWeekRange,
    MetricSpec,
    PresetRange,
    QuerySpec,
    SortSpec,
    SpecFilter,
)
from flipdash.engine.executor import (
    FilterCondition,
    QueryConfig,
    config_from_spec,
    execute_query,
    operators_for_field,
    resolve_field,
    sort_rows,
    validate_query_config,
)
from flipdash.engine.records import TradeRecord

TODAY = date(2026, 10, 15)  # a Thursday


def _flip(item, qty, buy, sell, closed, account="main", hours=2):
    closed_at = datetime.fromisoformat(closed)
    opened_at = closed_at.replace(hour=closed_at.hour - hours)
    return TradeRecord(item=item, quantity=qty, avg_buy_price=buy, avg_sell_price=sell,
                       opened_at=opened_at, closed_at=closed_at, account=account)


@pytest.fixture(scope="module")
def records() -> list[TradeRecord]:
    return [
        _flip("Abyssal whip", 1, 1_500_000, 1_600_000, "2026-10-13T12:00:00"),    # Tue, +100k
        _flip("Dragon scimitar", 10, 60_000, 59_000, "2026-10-10T18:00:00"),      # Sat, -10k
        _flip("Abyssal whip", 2, 1_550_000, 1_570_000, "2026-10-11T20:00:00"),    # Sun, +40k
        _flip("Nature rune", 1000, 100, 110, "2026-09-20T09:00:00", account="alt"),  # Sun, +10k
    ]


def _items(rows):
    return [r["item"] for r in rows]


# ── 1. Filters ───────────────────────────────────────────

def test_no_config_returns_every_row(records):
    assert len(execute_query({}, records, TODAY)) == 4


def test_filters_are_anded(records):
    config = {"filters": [
        {"field": "profit", "operator": ">", "value": 0},
        {"field": "item", "operator": "contains", "value": "whip"},
    ]}
    assert _items(execute_query(config, records, TODAY)) == ["Abyssal whip", "Abyssal whip"]


def test_between_filter(records):
    config = {"filters": [{"field": "profit", "operator": "between", "value": 0, "value2": 50_000}]}
    assert [r["profit"] for r in execute_query(config, records, TODAY)] == [40_000, 10_000]


def test_unknown_operator_is_ignored(records):
    config = {"filters": [{"field": "profit", "operator": "approximately", "value": 0}]}
    assert len(execute_query(config, records, TODAY)) == 4


def test_computed_field_filter(records):
    config = {"filters": [{"field": "daysSinceFlip", "operator": "<", "value": 7}]}
    assert len(execute_query(config, records, TODAY)) == 3


# ── 2. Grouping / sorting / limit ────────────────────────

def test_group_by_item(records):
    groups = execute_query({"groupBy": "item"}, records, TODAY)
    assert [g["group"] for g in groups] == ["Abyssal whip", "Dragon scimitar", "Nature rune"]
    whip = groups[0]
    assert whip["count"] == 2
    assert whip["total_profit"] == 140_000
    assert whip["avg_profit"] == 70_000
    assert whip["total_quantity"] == 3
    assert len(whip["items"]) == 2


def test_sort_desc_and_limit(records):
    rows = execute_query({"sortBy": "profit", "sortOrder": "desc", "limit": 2}, records, TODAY)
    assert [r["profit"] for r in rows] == [100_000, 40_000]


def test_sort_groups(records):
    groups = execute_query({"groupBy": "account", "sortBy": "count", "sortOrder": "desc"}, records, TODAY)
    assert [g["group"] for g in groups] == ["main", "alt"]


def test_sort_strings_case_insensitive_nulls_last():
    rows = [{"item": "coal"}, {"item": None}, {"item": "Abyssal whip"}, {"item": "bronze arrow"}]
    assert _items(sort_rows(rows, "item", "asc")) == ["Abyssal whip", "bronze arrow", "coal", None]
    assert _items(sort_rows(rows, "item", "desc"))[-1] is None


def test_numeric_nulls_last_both_directions():
    rows = [{"profit": 5}, {"profit": None}, {"profit": -3}]
    assert [r["profit"] for r in sort_rows(rows, "profit", "desc")] == [5, -3, None]
    assert [r["profit"] for r in sort_rows(rows, "profit", "asc")] == [-3, 5, None]


def test_sort_is_stable():
    rows = [{"k": 1, "n": "a"}, {"k": 1, "n": "b"}, {"k": 0, "n": "c"}]
    assert [r["n"] for r in sort_rows(rows, "k", "asc")] == ["c", "a", "b"]


def test_zero_limit_is_unlimited(records):
    assert len(execute_query({"limit": 0}, records, TODAY)) == 4


# ── 3. Computed fields ───────────────────────────────────

def test_computed_fields(records):
    row = records[0].to_row()
    assert resolve_field(row, "profitVelocity") == 50_000
    assert resolve_field(row, "margin_percent") == pytest.approx(6.6667, rel=1e-4)
    assert resolve_field(row, "weekday") == "tuesday"
    assert resolve_field(row, "day_type") == "weekday"
    assert resolve_field(row, "hour") == 12
    assert resolve_field(row, "days_since_flip", TODAY) == 2
    assert resolve_field({"date": "2026-01-01"}, "week_of_year") == 1


def test_missing_date_gives_none():
    assert resolve_field({}, "weekday") is None


# ── 4. QuerySpec translation ─────────────────────────────

def test_spec_top_items(records):
    spec = QuerySpec(
        intent="top_items_by_profit",
        metrics=[MetricSpec(metric="profit", op="sum")],
        dimensions=["item"],
        sort=[SortSpec(by="profit", order="desc")],
        limit=2,
    )
    groups = execute_query(spec, records, TODAY)
    assert [(g["group"], g["total_profit"]) for g in groups] == [
        ("Abyssal whip", 140_000), ("Nature rune", 10_000),
    ]


def test_spec_last_7_days(records):
    spec = QuerySpec(intent="recent_activity", time_range=PresetRange(preset="last_7d"))
    assert len(execute_query(spec, records, TODAY)) == 3


def test_spec_last_month(records):
    spec = QuerySpec(intent="recent_activity", time_range=PresetRange(preset="last_month"))
    assert _items(execute_query(spec, records, TODAY)) == ["Nature rune"]


def test_spec_last_tuesday_is_one_date(records):
    spec = QuerySpec(intent="day_of_week_analysis",
                     time_range=DayOfWeekRange(day_of_week="tuesday", specific=True))
    assert [r["date"] for r in execute_query(spec, records, TODAY)] == ["2026-10-13"]


def test_spec_every_sunday(records):
    spec = QuerySpec(intent="day_of_week_analysis",
                     time_range=DayOfWeekRange(day_of_week="sunday", all_occurrences=True))
    assert _items(execute_query(spec, records, TODAY)) == ["Abyssal whip", "Nature rune"]


def test_spec_weekend_comparison(records):
    spec = QuerySpec(intent="time_comparison", metrics=[MetricSpec(metric="profit", op="sum")],
                     time_range=ComparisonRange(comparison="weekend_vs_weekday"))
    groups = execute_query(spec, records, TODAY)
    assert {g["group"]: g["count"] for g in groups} == {"weekday": 1, "weekend": 3}


def test_config_from_spec_between_pair():
    spec = QuerySpec(intent="x", filters=[SpecFilter(field="profit", op="between", value=[1, 2])])
    f = config_from_spec(spec, TODAY).filters[0]
    assert (f.operator, f.value, f.value2) == ("between", 1, 2)


def test_config_from_spec_sorts_group_key():
    spec = QuerySpec(intent="x", metrics=[MetricSpec(metric="profit", op="sum")], dimensions=["item"],
                     sort=[SortSpec(by="item", order="asc")])
    assert config_from_spec(spec, TODAY).sort_by == "group"


# ── 5. Config validation ─────────────────────────────────

def test_valid_config():
    assert validate_query_config(QueryConfig(filters=[FilterCondition(field="profit", operator=">", value=0)])) == []


def test_missing_config():
    assert validate_query_config(None) == ["Query configuration is required"]


def test_config_errors():
    errors = validate_query_config({
        "filters": [
            {"operator": ">", "value": 1},
            {"field": "profit", "operator": "approximately", "value": 1},
            {"field": "profit", "operator": ">"},
            {"field": "profit", "operator": "between", "value": 1},
        ],
        "sortBy": "profit",
        "sortOrder": "sideways",
        "limit": -1,
    })
    assert errors == [
        "Filter 1: field is required",
        "Filter 2: unknown operator 'approximately'",
        "Filter 3: value is required",
        "Filter 4: value2 is required for 'between' operator",
        'sortOrder must be "asc" or "desc"',
        "limit must be a positive number",
    ]


def test_null_operator_needs_no_value():
    assert validate_query_config({"filters": [{"field": "roi", "operator": "is_null"}]}) == []


# ── 6. Field metadata ────────────────────────────────────

def test_operators_for_field():
    assert "between" in [o["value"] for o in operators_for_field("profit")]
    assert "contains" in [o["value"] for o in operators_for_field("item")]
    assert [o["value"] for o in operators_for_field("mystery")] == ["=", "!="]
