"""
Small shared utilities.
"""
from __future__ import annotations

import re
import time
from contextlib import contextmanager
from typing import Generator

_SHORTHAND_RE = re.compile(r"^(-?\d+(?:\.\d+)?)\s*([kmb])?$", re.IGNORECASE)

_MULTIPLIERS: dict[str, int] = {
    "k": 1_000,
    "m": 1_000_000,
    "b": 1_000_000_000,
}

_WHITESPACE_RE = re.compile(r"\s+")


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def normalize_query(text: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def as_number(value: float) -> int | float:
    """Return *value* as an int when it has no fractional part."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def parse_shorthand_number(value: str | int | float | None) -> int | float | None:
    """Parse GP shorthand such as ``"100k"``, ``"1.5m"`` or ``"2b"``.

    Commas, a trailing ``gp`` and surrounding whitespace are ignored.
    Returns ``None`` when the text is not a number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value

    cleaned = value.strip().lower().replace(",", "")
    if cleaned.endswith("gp"):
        cleaned = cleaned[:-2].strip()
    m = _SHORTHAND_RE.match(cleaned)
    if not m:
        return None

    number = float(m.group(1))
    suffix = m.group(2)
    if suffix:
        number *= _MULTIPLIERS[suffix.lower()]
    return as_number(number)


def format_shorthand(value: float) -> str:
    """Inverse of :func:`parse_shorthand_number` for display (``1500000`` -> ``"1.5m"``)."""
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    for suffix in ("b", "m", "k"):
        unit = _MULTIPLIERS[suffix]
        if magnitude >= unit:
            scaled = round(magnitude / unit, 1)
            text = f"{scaled:g}"
            return f"{sign}{text}{suffix}"
    return f"{sign}{as_number(float(magnitude))}"
