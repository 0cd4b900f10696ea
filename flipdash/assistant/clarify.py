"""
Clarification handling -- decides when a query is too vague to run and
folds the user's answer back into the spec.

Triggers are evaluated in catalog order; the first one that fires wins:

  multiple_time_ranges  more than two time words ("this week vs last month")
  ambiguous_item        "item"/"weapon"/"armor"/"thing" with no recognisable item
  multiple_metrics      more than three metrics requested
  unclear_comparison    "vs"/"compare" with nothing concrete to compare
"""
from __future__ import annotations

import re
from typing import Any, Callable

from flipdash.assistant.extractor import ComponentExtractor
from flipdash.assistant.item_matcher import ItemMatcher, get_item_matcher
from flipdash.assistant.spec import (
    ComparisonRange,
    MetricSpec,
    ParsedComponents,
    QuerySpec,
    SpecFilter,
)
from flipdash.core.utils import normalize_query
from flipdash.governance.catalog_loader import ClarificationRule, PatternCatalog, load_catalog
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

_TIME_TERM_RES = tuple(
    re.compile(rf"\b{term}\b")
    for term in (r"weeks?", r"months?", r"days?", "yesterday", "today", "last", "this")
)
_ITEM_INDICATOR_RE = re.compile(r"\b(?:items?|weapons?|armou?r|things?)\b")
_RANKING_RE = re.compile(r"\b(?:top|best|most)\b")
_COMPARE_RE = re.compile(r"\b(?:vs|versus|compare)\b")

MAX_TIME_TERMS = 2
MAX_METRICS = 3
CLARIFIED_CONFIDENCE_BOOST = 0.1

# Answer phrase -> metrics replacing the spec's metrics
METRIC_ANSWERS: dict[str, list[MetricSpec]] = {
    "total profit": [MetricSpec(metric="profit", op="sum")],
    "profit": [MetricSpec(metric="profit", op="sum")],
    "roi": [MetricSpec(metric="roi", op="avg")],
    "number of flips": [MetricSpec(metric="flips", op="count")],
    "flip count": [MetricSpec(metric="flips", op="count")],
    "flips": [MetricSpec(metric="flips", op="count")],
}

# Answer phrase -> grouping dimension
GROUPING_ANSWERS: dict[str, str] = {
    "by account": "account",
    "by item": "item",
    "by date": "date",
}

ITEM_ANALYSIS_METRICS = [
    MetricSpec(metric="profit", op="sum"),
    MetricSpec(metric="roi", op="avg"),
    MetricSpec(metric="flips", op="count"),
]


# ── Triggers ─────────────────────────────────────────────

def _multiple_time_ranges(q: str, spec: QuerySpec, c: ParsedComponents) -> bool:
    return sum(1 for r in _TIME_TERM_RES if r.search(q)) > MAX_TIME_TERMS


def _ambiguous_item(q: str, spec: QuerySpec, c: ParsedComponents) -> bool:
    if not _ITEM_INDICATOR_RE.search(q) or c.items:
        return False
    if _RANKING_RE.search(q) or "item" in c.dimensions:
        return False
    if c.modifiers.exclude or c.modifiers.include:
        return False
    return True


def _multiple_metrics(q: str, spec: QuerySpec, c: ParsedComponents) -> bool:
    return len(spec.metrics) > MAX_METRICS


def _unclear_comparison(q: str, spec: QuerySpec, c: ParsedComponents) -> bool:
    if not _COMPARE_RE.search(q):
        return False
    if isinstance(spec.time_range, ComparisonRange) or "account" in spec.dimensions:
        return False
    return len(c.items) < 2


TRIGGERS: dict[str, Callable[[str, QuerySpec, ParsedComponents], bool]] = {
    "multiple_time_ranges": _multiple_time_ranges,
    "ambiguous_item": _ambiguous_item,
    "multiple_metrics": _multiple_metrics,
    "unclear_comparison": _unclear_comparison,
}


def needs_clarification(
    spec: QuerySpec,
    components: ParsedComponents,
    query: str,
    catalog: PatternCatalog | None = None,
) -> ClarificationRule | None:
    """Return the first clarification rule that fires, or None."""
    catalog = catalog or load_catalog()
    q = normalize_query(query)
    for rule in catalog.clarifications:
        if TRIGGERS[rule.trigger](q, spec, components):
            logger.debug("Clarification trigger %s fired for %r", rule.trigger, query)
            return rule
    return None


# ── Answers ──────────────────────────────────────────────

def apply_clarification(
    spec: QuerySpec,
    answer: str,
    extractor: ComponentExtractor | None = None,
    matcher: ItemMatcher | None = None,
) -> QuerySpec:
    """Fold a clarification *answer* into *spec* and return the updated spec.

    The answer is tried, in order, as a time period, a metric choice, a
    comparison/grouping choice and finally as an item name.
    """
    extractor = extractor or ComponentExtractor()
    matcher = matcher or get_item_matcher()
    a = normalize_query(answer)
    update: dict[str, Any] = {}

    time_range = extractor.extract_time_range(a)
    if isinstance(time_range, ComparisonRange):
        update["time_range"] = time_range
        update["dimensions"] = ["time_period"]
    elif time_range is not None:
        update["time_range"] = time_range
    elif a in METRIC_ANSWERS:
        update["metrics"] = METRIC_ANSWERS[a]
    elif a in GROUPING_ANSWERS:
        update["dimensions"] = [GROUPING_ANSWERS[a]]
    elif a:
        item = next(iter(matcher.extract_items(a)), a)
        filters = [f for f in spec.filters if f.field != "item" or f.op != "contains"]
        filters.append(SpecFilter(field="item", op="contains", value=item))
        update.update(
            filters=filters,
            metrics=ITEM_ANALYSIS_METRICS,
            dimensions=["item"],
            include_columns=[],
            intent="item_analysis",
        )

    update["confidence"] = min(1.0, round(spec.confidence + CLARIFIED_CONFIDENCE_BOOST, 4))
    update["requires_confirmation"] = True
    # Re-validate so the grouped-metric rule holds after the merge.
    return QuerySpec.model_validate({**spec.model_dump(), **update})


def merge_answer(question: str, answer: str) -> str:
    """Resubmission form: the original question with the answer as added context."""
    return f"{question.strip()} {answer.strip()}".strip()
