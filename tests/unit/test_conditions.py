"""
Unit tests -- single-value predicate evaluation.
"""
import pytest

from flipdash.engine.conditions import OPERATORS, evaluate_condition


@pytest.mark.parametrize("value, operator, target, expected", [
    (10, ">", 5, True),
    (5, ">", 5, False),
    (5, ">=", 5, True),
    (4, "<", 5, True),
    (5, "<=", 5, True),
    ("Abyssal whip", "=", "abyssal WHIP", True),
    ("Abyssal whip", "==", "coal", False),
    ("Abyssal whip", "!=", "coal", True),
    ("Abyssal whip", "contains", "WHIP", True),
    ("Abyssal whip", "startsWith", "aby", True),
    ("Abyssal whip", "endsWith", "aby", False),
    ("main", "in", ["alt", "MAIN"], True),
    ("main", "in", "main", False),
])
def test_operators(value, operator, target, expected):
    assert evaluate_condition(value, operator, target) is expected


def test_between_with_second_bound():
    assert evaluate_condition(150, "between", 100, 200) is True
    assert evaluate_condition(250, "between", 100, 200) is False


def test_between_with_pair():
    assert evaluate_condition("2026-09-20", "between", ["2026-09-01", "2026-09-30"]) is True


def test_between_missing_bound():
    assert evaluate_condition(150, "between", 100) is False


def test_null_checks():
    assert evaluate_condition(None, "is_null") is True
    assert evaluate_condition(0, "is_not_null") is True


def test_none_value_fails_comparisons():
    assert evaluate_condition(None, ">", 0) is False
    assert evaluate_condition(None, "contains", "x") is False
    assert evaluate_condition(None, "=", None) is True


def test_booleans_are_not_ordered():
    assert evaluate_condition(True, ">", 0) is False


def test_mismatched_types_are_false():
    assert evaluate_condition("abc", ">", 5) is False
    assert evaluate_condition(5, "contains", "5") is False


def test_unknown_operator_returns_none():
    assert evaluate_condition(5, "approximately", 5) is None
    assert "approximately" not in OPERATORS
