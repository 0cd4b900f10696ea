"""
Unit tests -- QuerySpec -> SQLite SELECT rendering.
"""
from datetime import date

import pytest

from flipdash.assistant.spec import (
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    MetricSpec,
    PresetRange,
    QuerySpec,
    SortSpec,
    SpecFilter,
)
from flipdash.assistant.sql_generator import filter_clause, metric_select, render_sql, time_range_clause
from flipdash.governance.sql_safety import check_sql_safety

TODAY = date(2026, 10, 15)  # a Thursday

_PROFIT = MetricSpec(metric="profit", op="sum")
_FLIPS = MetricSpec(metric="flips", op="count")


# ── 1. Shapes ────────────────────────────────────────────

def test_grouped_top_items():
    spec = QuerySpec(
        intent="top_items_by_profit",
        metrics=[_PROFIT, _FLIPS],
        dimensions=["item"],
        sort=[SortSpec(by="profit", order="desc")],
        limit=10,
    )
    assert render_sql(spec, TODAY) == (
        "SELECT item, SUM(profit) AS total_profit, COUNT(*) AS flip_count FROM flips "
        "GROUP BY item ORDER BY total_profit DESC LIMIT 10"
    )


def test_summary_row_has_no_order_or_limit():
    spec = QuerySpec(
        intent="profit_summary",
        metrics=[_PROFIT, MetricSpec(metric="roi", op="avg")],
        limit=5,
    )
    assert render_sql(spec, TODAY) == "SELECT SUM(profit) AS total_profit, AVG(roi) AS avg_roi_percent FROM flips"


def test_raw_listing_uses_include_columns():
    spec = QuerySpec(
        intent="expensive_flips",
        metrics=[_PROFIT],
        include_columns=["item", "profit"],
        filters=[SpecFilter(field="profit", op=">", value=5_000_000)],
    )
    assert render_sql(spec, TODAY) == "SELECT item, profit FROM flips WHERE profit > 5000000 ORDER BY profit DESC"


def test_raw_listing_adds_duration_column_when_filtered():
    spec = QuerySpec(
        intent="long_hold_flips",
        include_columns=["item", "profit"],
        filters=[SpecFilter(field="flip_duration_minutes", op=">", value=1440)],
    )
    assert render_sql(spec, TODAY).startswith("SELECT item, profit, flip_duration_minutes FROM flips")


def test_comparison_groups_by_day_type():
    spec = QuerySpec(
        intent="time_comparison",
        metrics=[_PROFIT],
        time_range=ComparisonRange(comparison="weekend_vs_weekday"),
    )
    sql = render_sql(spec, TODAY)
    assert "AS day_type" in sql
    assert sql.endswith("GROUP BY day_type")


def test_no_limit_renders_without_limit():
    spec = QuerySpec(intent="loss_analysis", include_columns=["item", "profit"], limit=None)
    assert "LIMIT" not in render_sql(spec, TODAY)


def test_grouped_sort_on_unselected_column_is_skipped():
    spec = QuerySpec(
        intent="top_items_by_profit",
        metrics=[_PROFIT],
        dimensions=["item"],
        sort=[SortSpec(by="roi", order="desc")],
    )
    assert "ORDER BY" not in render_sql(spec, TODAY)


def test_rendered_sql_passes_safety_gate():
    spec = QuerySpec(
        intent="daily_profit",
        metrics=[_PROFIT, _FLIPS],
        dimensions=["date"],
        time_range=PresetRange(preset="last_30d"),
        limit=30,
    )
    assert check_sql_safety(render_sql(spec, TODAY)) == []


# ── 2. Filters ───────────────────────────────────────────

def test_contains_is_case_insensitive_like():
    f = SpecFilter(field="item", op="contains", value="Dragon Scimitar")
    assert filter_clause(f) == "LOWER(item) LIKE '%dragon scimitar%'"


def test_quotes_are_escaped():
    f = SpecFilter(field="item", op="contains", value="zulrah's scales")
    assert filter_clause(f) == "LOWER(item) LIKE '%zulrah''s scales%'"


@pytest.mark.parametrize("f, clause", [
    (SpecFilter(field="profit", op="between", value=[100, 200]), "profit BETWEEN 100 AND 200"),
    (SpecFilter(field="account", op="in", value=["main", "alt"]), "account IN ('main', 'alt')"),
    (SpecFilter(field="item", op="!=", value="ammo"), "LOWER(item) NOT LIKE '%ammo%'"),
    (SpecFilter(field="roi", op=">=", value=12.5), "roi >= 12.5"),
])
def test_filter_clauses(f, clause):
    assert filter_clause(f) == clause


def test_unknown_filter_field_skipped():
    spec = QuerySpec(
        intent="recent_activity",
        include_columns=["item"],
        filters=[SpecFilter(field="colour", op="=", value="red")],
    )
    assert "WHERE" not in render_sql(spec, TODAY)


# ── 3. Time ranges ───────────────────────────────────────

@pytest.mark.parametrize("tr, clause", [
    (PresetRange(preset="last_7d"), "date > '2026-10-08'"),
    (PresetRange(preset="last_30d"), "date > '2026-09-15'"),
    (PresetRange(preset="this_week"), "date >= '2026-10-12'"),
    (PresetRange(preset="this_month"), "date >= '2026-10-01'"),
    (PresetRange(preset="last_month"), "date BETWEEN '2026-09-01' AND '2026-09-30'"),
    (PresetRange(preset="all_time"), None),
    (CustomRange(date_from=date(2026, 1, 1), date_to=date(2026, 1, 31)),
     "date BETWEEN '2026-01-01' AND '2026-01-31'"),
    (DayOfWeekRange(day_of_week="tuesday", specific=True), "date = '2026-10-13'"),
    (DayOfWeekRange(day_of_week="thursday", specific=True), "date = '2026-10-08'"),
    (DayOfWeekRange(day_of_week="tuesday", all_occurrences=True), "strftime('%w', date) = '2'"),
    (DayOfWeekRange(day_of_week="sunday", all_occurrences=True), "strftime('%w', date) = '0'"),
    (None, None),
])
def test_time_range_clause(tr, clause):
    assert time_range_clause(tr, TODAY) == clause


# ── 4. Metric columns ────────────────────────────────────

@pytest.mark.parametrize("m, rendered", [
    (MetricSpec(metric="profit", op="avg"), ("AVG(profit)", "avg_profit_per_flip")),
    (MetricSpec(metric="volume", op="sum"), ("SUM(quantity)", "total_quantity")),
    (MetricSpec(metric="roi", op="max"), ("MAX(roi)", "max_roi")),
    (MetricSpec(metric="profit", op="calculate"), ("profit", "profit")),
    (MetricSpec(metric="flips", op="calculate"), None),
])
def test_metric_select(m, rendered):
    assert metric_select(m) == rendered
