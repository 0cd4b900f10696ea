"""
Unit tests -- QuerySpec previews.
"""
from datetime import date

import pytest

from flipdash.assistant.preview import (
    describe_time_range,
    describe_value,
    format_minutes,
    generate_preview,
)
from flipdash.assistant.spec import (
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    MetricSpec,
    PresetRange,
    QuerySpec,
    SpecFilter,
)

_PROFIT = MetricSpec(metric="profit", op="sum")
_FLIPS = MetricSpec(metric="flips", op="count")


def test_grouped_preview_with_limit():
    spec = QuerySpec(
        intent="top_items_by_profit",
        metrics=[_PROFIT, _FLIPS],
        dimensions=["item"],
        time_range=PresetRange(preset="last_7d"),
        limit=10,
    )
    assert generate_preview(spec) == (
        "Show total profit, flip count grouped by item for last 7 days (showing top 10 results)"
    )


def test_raw_listing_with_gp_filter():
    spec = QuerySpec(
        intent="expensive_flips",
        include_columns=["item", "profit"],
        filters=[SpecFilter(field="profit", op=">", value=5_000_000)],
    )
    assert generate_preview(spec) == "Show item, profit where profit greater than 5,000,000 GP"


def test_item_analysis_phrasing():
    spec = QuerySpec(
        intent="item_analysis",
        metrics=[_PROFIT, _FLIPS],
        dimensions=["item"],
        filters=[SpecFilter(field="item", op="contains", value="abyssal whip")],
    )
    assert generate_preview(spec) == "Analyze abyssal whip flips showing total profit, flip count"


def test_empty_spec():
    assert generate_preview(QuerySpec(intent="recent_activity")) == "Show flips"


@pytest.mark.parametrize("tr, text", [
    (PresetRange(preset="last_month"), "last month"),
    (DayOfWeekRange(day_of_week="tuesday", specific=True), "last Tuesday"),
    (DayOfWeekRange(day_of_week="tuesday", all_occurrences=True), "Tuesdays"),
    (ComparisonRange(comparison="weekend_vs_weekday"), "weekend vs weekday"),
    (CustomRange(date_from=date(2026, 1, 1), date_to=date(2026, 1, 31)), "2026-01-01 to 2026-01-31"),
])
def test_describe_time_range(tr, text):
    assert describe_time_range(tr) == text


@pytest.mark.parametrize("field, value, text", [
    ("roi", 12.5, "12.5%"),
    ("flip_duration_minutes", 90, "1h 30m"),
    ("profit", [100_000, 200_000], "100,000 GP and 200,000 GP"),
    ("item", "whip", "whip"),
])
def test_describe_value(field, value, text):
    assert describe_value(field, value) == text


def test_format_minutes():
    assert format_minutes(45) == "45m"
    assert format_minutes(125) == "2h 5m"
