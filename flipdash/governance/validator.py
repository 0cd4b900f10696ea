"""
Validates a built QuerySpec against the assistant's capability limits.

Checks performed:
  1. Confidence is above the catalog's floor
  2. The spec asks for something (metrics or raw columns)
  3. A custom date range is ordered and no longer than ``max_days``
  4. Dimension count is within ``max_dimensions``
  5. Filter count is within ``max_filters``
  6. Every filter field is a known column, and its value fits the column type
  7. The limit is within ``max_limit``

Enumerated values (metric names, ops, presets) are already enforced by the
QuerySpec model itself, so they are not re-checked here.
"""
from __future__ import annotations

from typing import Any

from flipdash.assistant.spec import CustomRange, QuerySpec, SpecFilter
from flipdash.governance.catalog_loader import CapabilitySettings, PatternCatalog, load_catalog

_MULTI_VALUE_OPS = ("between", "in")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_filter(f: SpecFilter, caps: CapabilitySettings) -> list[str]:
    kind = caps.field_type(f.field)
    if kind is None:
        known = sorted(name for fields in caps.filter_fields.values() for name in fields)
        return [f"Invalid filter field '{f.field}'. Allowed: {', '.join(known)}"]

    if f.op == "between" and not (isinstance(f.value, (list, tuple)) and len(f.value) == 2):
        return [f"Filter on '{f.field}' uses 'between' and needs exactly two values."]

    values = f.value if f.op in _MULTI_VALUE_OPS and isinstance(f.value, (list, tuple)) else [f.value]
    if kind == "numeric" and not all(_is_number(v) for v in values):
        return [f"Invalid numeric value for '{f.field}': {f.value!r}"]
    if kind == "text" and not all(isinstance(v, str) for v in values):
        return [f"Invalid text value for '{f.field}': {f.value!r}"]
    return []


def validate_capabilities(spec: QuerySpec, catalog: PatternCatalog | None = None) -> list[str]:
    """Return a list of capability violations (empty list = spec can run).

    Parameters
    ----------
    spec : QuerySpec
        A spec produced by the spec builder (or supplied by a client).
    catalog : PatternCatalog, optional
        If None, loads the default query catalog from disk.
    """
    caps = (catalog or load_catalog()).capabilities
    errors: list[str] = []

    if spec.confidence < caps.min_confidence:
        errors.append("Query intent unclear, please be more specific.")

    if not spec.metrics and not spec.include_columns:
        errors.append("No metrics specified for analysis.")

    if isinstance(spec.time_range, CustomRange):
        days = (spec.time_range.date_to - spec.time_range.date_from).days
        if days > caps.max_days:
            errors.append(f"Time range too large ({days} days). Maximum: {caps.max_days} days.")

    if len(spec.dimensions) > caps.max_dimensions:
        errors.append(
            f"Too many grouping dimensions ({len(spec.dimensions)}). Maximum: {caps.max_dimensions}."
        )

    if len(spec.filters) > caps.max_filters:
        errors.append(f"Too many filters ({len(spec.filters)}). Maximum: {caps.max_filters}.")
    for f in spec.filters:
        errors.extend(_check_filter(f, caps))

    if spec.limit is not None and spec.limit > caps.max_limit:
        errors.append(f"Result limit too high ({spec.limit}). Maximum: {caps.max_limit}.")

    return errors
