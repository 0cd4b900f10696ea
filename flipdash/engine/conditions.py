"""
Single-value predicate evaluation, shared by the local query executor and
the blocklist rule evaluator.

``evaluate_condition`` returns ``None`` (not ``False``) for an operator it
does not know, so each caller decides its own policy for unknown operators.
"""
from __future__ import annotations

import operator as op
from typing import Any, Callable

_ORDERING: dict[str, Callable[[Any, Any], bool]] = {
    ">": op.gt,
    "<": op.lt,
    ">=": op.ge,
    "<=": op.le,
}

STRING_OPERATORS = frozenset({"contains", "startsWith", "endsWith"})
NULL_OPERATORS = frozenset({"is_null", "is_not_null"})
EQUALITY_OPERATORS = frozenset({"=", "==", "!="})
OPERATORS = frozenset(_ORDERING) | STRING_OPERATORS | NULL_OPERATORS | EQUALITY_OPERATORS | {"between", "in"}


def _equal(value: Any, target: Any) -> bool:
    if isinstance(value, str) and isinstance(target, str):
        return value.lower() == target.lower()
    return value == target


def _ordered(fn: Callable[[Any, Any], bool], value: Any, target: Any) -> bool:
    if isinstance(value, bool) or isinstance(target, bool):
        return False
    try:
        return bool(fn(value, target))
    except TypeError:
        return False


def _string_test(operator: str, value: Any, target: Any) -> bool:
    if not (isinstance(value, str) and isinstance(target, str)):
        return False
    v, t = value.lower(), target.lower()
    if operator == "contains":
        return t in v
    if operator == "startsWith":
        return v.startswith(t)
    return v.endswith(t)


def evaluate_condition(value: Any, operator: str, target: Any = None, target2: Any = None) -> bool | None:
    """Test *value* against *target* with *operator*.

    ``between`` takes its upper bound from *target2*, or from a two-item
    *target* list.  A ``None`` value fails every operator except the
    equality ones and the null checks.  Unknown operators return ``None``.
    """
    if operator == "is_null":
        return value is None
    if operator == "is_not_null":
        return value is not None
    if operator not in OPERATORS:
        return None

    if value is None and operator not in EQUALITY_OPERATORS:
        return False

    if operator in _ORDERING:
        return _ordered(_ORDERING[operator], value, target)
    if operator in ("=", "=="):
        return _equal(value, target)
    if operator == "!=":
        return not _equal(value, target)
    if operator in STRING_OPERATORS:
        return _string_test(operator, value, target)
    if operator == "between":
        low, high = target, target2
        if high is None and isinstance(target, (list, tuple)) and len(target) == 2:
            low, high = target
        if low is None or high is None:
            return False
        return _ordered(op.ge, value, low) and _ordered(op.le, value, high)
    # "in"
    if not isinstance(target, (list, tuple, set, frozenset)):
        return False
    return any(_equal(value, t) for t in target)
