"""
Unit tests -- clarification triggers and answer handling.
"""
import pytest

from flipdash.assistant.clarify import apply_clarification, merge_answer, needs_clarification
from flipdash.assistant.spec import (
    ComparisonRange,
    MetricSpec,
    ParsedComponents,
    PresetRange,
    QuerySpec,
    SpecFilter,
)

_PROFIT = MetricSpec(metric="profit", op="sum")


@pytest.fixture
def spec() -> QuerySpec:
    return QuerySpec(intent="profit_analysis", metrics=[_PROFIT], confidence=0.6)


# ── 1. Triggers ──────────────────────────────────────────

def test_no_clarification_for_clear_query(spec):
    assert needs_clarification(spec, ParsedComponents(), "total profit per day") is None


def test_multiple_time_ranges(spec):
    rule = needs_clarification(spec, ParsedComponents(), "profit this week vs last month today")
    assert rule.trigger == "multiple_time_ranges"
    assert "last week" in rule.options


def test_ambiguous_item(spec):
    rule = needs_clarification(spec, ParsedComponents(), "how did that item do")
    assert rule.trigger == "ambiguous_item"
    assert rule.question == "Which item are you asking about?"


def test_item_indicator_with_ranking_is_not_ambiguous(spec):
    assert needs_clarification(spec, ParsedComponents(), "best item overall") is None


def test_item_indicator_with_known_item_is_not_ambiguous(spec):
    c = ParsedComponents(items=["abyssal whip"])
    assert needs_clarification(spec, c, "how did the whip item do") is None


def test_multiple_metrics():
    spec = QuerySpec(
        intent="profit_analysis",
        metrics=[
            _PROFIT,
            MetricSpec(metric="roi", op="avg"),
            MetricSpec(metric="flips", op="count"),
            MetricSpec(metric="volume", op="sum"),
        ],
    )
    assert needs_clarification(spec, ParsedComponents(), "show me everything").trigger == "multiple_metrics"


def test_unclear_comparison(spec):
    assert needs_clarification(spec, ParsedComponents(), "compare these two").trigger == "unclear_comparison"


def test_comparison_of_two_items_is_clear(spec):
    c = ParsedComponents(items=["abyssal whip", "dragon scimitar"])
    assert needs_clarification(spec, c, "compare whip vs dscim") is None


def test_weekend_comparison_is_clear():
    spec = QuerySpec(
        intent="time_comparison",
        metrics=[_PROFIT],
        dimensions=["time_period"],
        time_range=ComparisonRange(comparison="weekend_vs_weekday"),
    )
    assert needs_clarification(spec, ParsedComponents(), "weekend vs weekday profit") is None


# ── 2. Answers ───────────────────────────────────────────

def test_time_answer(spec):
    updated = apply_clarification(spec, "last week")
    assert updated.time_range == PresetRange(preset="last_7d")
    assert updated.requires_confirmation is True
    assert updated.confidence == pytest.approx(0.7)


def test_item_answer(spec):
    updated = apply_clarification(spec, "abyssal whip")
    assert updated.intent == "item_analysis"
    assert updated.dimensions == ["item"]
    assert SpecFilter(field="item", op="contains", value="abyssal whip") in updated.filters


def test_item_answer_replaces_previous_item_filter():
    spec = QuerySpec(
        intent="item_analysis",
        metrics=[_PROFIT],
        dimensions=["item"],
        filters=[SpecFilter(field="item", op="contains", value="coal")],
    )
    updated = apply_clarification(spec, "dscim")
    item_filters = [f for f in updated.filters if f.field == "item"]
    assert item_filters == [SpecFilter(field="item", op="contains", value="dragon scimitar")]


def test_grouping_answer(spec):
    assert apply_clarification(spec, "by account").dimensions == ["account"]


def test_metric_answer(spec):
    assert apply_clarification(spec, "ROI").metrics == [MetricSpec(metric="roi", op="avg")]


def test_comparison_answer(spec):
    updated = apply_clarification(spec, "weekend vs weekday")
    assert updated.time_range == ComparisonRange(comparison="weekend_vs_weekday")
    assert updated.dimensions == ["time_period"]


def test_confidence_boost_is_capped():
    spec = QuerySpec(intent="profit_analysis", metrics=[_PROFIT], confidence=0.95)
    assert apply_clarification(spec, "by item").confidence == 1.0


def test_merge_answer():
    assert merge_answer("  how did that item do ", " abyssal whip ") == "how did that item do abyssal whip"
