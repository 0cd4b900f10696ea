"""
Unit tests -- capability validation of built specs.
"""
from datetime import date

import pytest

from flipdash.assistant.spec import CustomRange, MetricSpec, QuerySpec, SpecFilter
from flipdash.governance.validator import validate_capabilities

_PROFIT = MetricSpec(metric="profit", op="sum")


def _spec(**overrides) -> QuerySpec:
    base = {"intent": "profit_analysis", "metrics": [_PROFIT], "confidence": 0.8}
    base.update(overrides)
    return QuerySpec(**base)


def test_valid_spec_passes():
    assert validate_capabilities(_spec(dimensions=["item"], limit=10)) == []


def test_raw_columns_count_as_a_request():
    assert validate_capabilities(_spec(metrics=[], include_columns=["item", "profit"])) == []


@pytest.mark.parametrize("overrides, fragment", [
    ({"confidence": 0.1}, "intent unclear"),
    ({"metrics": []}, "No metrics"),
    ({"dimensions": ["item", "date", "account"]}, "Too many grouping dimensions (3)"),
    ({"limit": 5000}, "Result limit too high (5000)"),
    ({"time_range": CustomRange(date_from=date(2024, 1, 1), date_to=date(2026, 1, 1))}, "Time range too large"),
])
def test_capability_violations(overrides, fragment):
    errors = validate_capabilities(_spec(**overrides))
    assert any(fragment in e for e in errors)


def test_too_many_filters():
    filters = [SpecFilter(field="profit", op=">", value=i) for i in range(7)]
    assert any("Too many filters (7)" in e for e in validate_capabilities(_spec(filters=filters)))


@pytest.mark.parametrize("f, fragment", [
    (SpecFilter(field="colour", op="=", value="red"), "Invalid filter field 'colour'"),
    (SpecFilter(field="profit", op=">", value="lots"), "Invalid numeric value for 'profit'"),
    (SpecFilter(field="profit", op=">", value=True), "Invalid numeric value"),
    (SpecFilter(field="item", op="contains", value=5), "Invalid text value for 'item'"),
    (SpecFilter(field="profit", op="between", value=[1]), "exactly two values"),
])
def test_filter_violations(f, fragment):
    errors = validate_capabilities(_spec(filters=[f]))
    assert any(fragment in e for e in errors)


@pytest.mark.parametrize("f", [
    SpecFilter(field="profit", op="between", value=[100, 200]),
    SpecFilter(field="account", op="in", value=["main", "alt"]),
    SpecFilter(field="roi", op=">=", value=12.5),
    SpecFilter(field="date", op=">=", value="2026-01-01"),
])
def test_valid_filters(f):
    assert validate_capabilities(_spec(filters=[f])) == []


def test_all_violations_reported():
    errors = validate_capabilities(_spec(confidence=0.0, metrics=[], limit=5000))
    assert len(errors) == 3
