"""
Spec builder -- assembles a QuerySpec from an intent and extracted components.

The catalog pattern for the intent supplies a default skeleton; extracted
components are layered on top by small pure functions, each returning a new
``SpecTemplate``.  Nothing mutates the catalog's templates.

Order of overlays:
  time range -> metrics -> dimensions -> filters -> item filters
  -> modifiers -> sort -> limit -> aggregate coercion
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from flipdash.assistant.item_matcher import ItemMatcher, get_item_matcher
from flipdash.assistant.preview import generate_preview
from flipdash.assistant.similarity import edit_similarity
from flipdash.assistant.spec import (
    AGGREGATE_OPS,
    DEFAULT_METRIC_OPS,
    FILTER_OPS,
    CustomRange,
    IntentResult,
    MetricSpec,
    Modifiers,
    ParsedComponents,
    ParsedFilter,
    QuerySpec,
    SortSpec,
    SpecFilter,
    SpecTemplate,
    TimeRange,
)
from flipdash.core.utils import parse_shorthand_number
from flipdash.governance.catalog_loader import BuilderSettings, PatternCatalog, load_catalog
from flipdash.core.logging import get_logger

logger = get_logger(__name__)


# ── Normalisation tables ─────────────────────────────────

OPERATOR_SYNONYMS: dict[str, str] = {
    "greater than": ">",
    "more than": ">",
    "over": ">",
    "above": ">",
    "less than": "<",
    "under": "<",
    "below": "<",
    "at least": ">=",
    "at most": "<=",
    "equals": "=",
    "is": "=",
    "==": "=",
    "like": "contains",
    "not": "!=",
    "is not": "!=",
}

FIELD_SYNONYMS: dict[str, str] = {
    "time": "flip_duration_minutes",
    "duration": "flip_duration_minutes",
    "hold_time": "flip_duration_minutes",
    "return": "roi",
    "percentage": "roi",
    "gp": "profit",
    "money": "profit",
    "earnings": "profit",
}

NUMERIC_FIELDS = frozenset({"profit", "buy_price", "sell_price", "roi", "quantity"})

# Free-text metric tag -> (metric, op)
METRIC_TAG_MAP: dict[str, tuple[str, str]] = {
    "profit": ("profit", "sum"),
    "roi": ("roi", "avg"),
    "flips": ("flips", "count"),
    "*": ("flips", "count"),
    "volume": ("volume", "sum"),
    "avg_hold_time": ("avg_hold_time", "avg"),
    "time": ("avg_hold_time", "avg"),
    "duration": ("avg_hold_time", "avg"),
    "hold": ("avg_hold_time", "avg"),
    "weighted_roi": ("weighted_roi", "avg"),
}

_COMPARISON_RE = re.compile(r"\bvs\b|compare")


# ── Generic skeletons for intents missing from the catalog ──

GENERIC_ANALYSIS = SpecTemplate(
    metrics=[MetricSpec(metric="profit", op="sum"), MetricSpec(metric="flips", op="count")],
    dimensions=["item"],
)
GENERIC_SUMMARY = SpecTemplate(
    metrics=[MetricSpec(metric="profit", op="sum"), MetricSpec(metric="roi", op="avg")],
)
ULTIMATE_DEFAULT = SpecTemplate(
    metrics=[MetricSpec(metric="profit", op="sum")],
    dimensions=["item"],
    limit=20,
)


@dataclass(frozen=True)
class TemplateMatch:
    key: str
    template: SpecTemplate
    requires_item_filter: bool = False


# ── Filter normalisation ─────────────────────────────────

def normalize_operator(operator: str) -> str | None:
    op = operator.strip().lower()
    op = OPERATOR_SYNONYMS.get(op, op)
    return op if op in FILTER_OPS else None


def normalize_field(field: str) -> str:
    f = field.strip().lower()
    return FIELD_SYNONYMS.get(f, f)


def normalize_value(value: Any, field: str) -> Any:
    if field in NUMERIC_FIELDS and isinstance(value, str):
        parsed = parse_shorthand_number(value)
        return parsed if parsed is not None else value
    return value


def normalize_filter(f: ParsedFilter) -> SpecFilter | None:
    """Map a raw extracted filter onto the QuerySpec operator/field vocabulary."""
    op = normalize_operator(f.operator)
    if op is None:
        logger.warning("Dropping filter with unknown operator: %s %s %r", f.field, f.operator, f.value)
        return None
    field = normalize_field(f.field)
    return SpecFilter(field=field, op=op, value=normalize_value(f.value, field))


# ── Immutable overlays ───────────────────────────────────

def with_time_range(draft: SpecTemplate, time_range: TimeRange | None) -> SpecTemplate:
    if time_range is None:
        return draft
    return draft.model_copy(update={"time_range": time_range})


def with_metrics(draft: SpecTemplate, tags: list[str]) -> SpecTemplate:
    if not tags:
        return draft
    metrics: list[MetricSpec] = []
    for tag in tags:
        mapped = METRIC_TAG_MAP.get(tag)
        if mapped is None:
            continue
        spec = MetricSpec(metric=mapped[0], op=mapped[1])
        if spec not in metrics:
            metrics.append(spec)
    return draft.model_copy(update={"metrics": metrics}) if metrics else draft


def with_dimensions(draft: SpecTemplate, dimensions: list[str]) -> SpecTemplate:
    if not dimensions:
        return draft
    return draft.model_copy(update={"dimensions": list(dimensions)})


def with_filters(draft: SpecTemplate, extra: list[SpecFilter]) -> SpecTemplate:
    if not extra:
        return draft
    merged = list(draft.filters)
    for f in extra:
        if f not in merged:
            merged.append(f)
    return draft.model_copy(update={"filters": merged})


def item_filters(items: list[str], matcher: ItemMatcher) -> list[SpecFilter]:
    """One ``contains`` filter per item, using only the best candidate pattern."""
    filters: list[SpecFilter] = []
    for item in items:
        patterns = matcher.like_patterns(item)
        if len(patterns) > 1:
            logger.debug("Item %r has %d candidate patterns; using the best one", item, len(patterns))
        filters.append(SpecFilter(field="item", op="contains", value=matcher.expand(item) or item))
    return filters


def modifier_filters(modifiers: Modifiers) -> list[SpecFilter]:
    filters = [SpecFilter(field="item", op="!=", value=term) for term in modifiers.exclude]
    if modifiers.only_profitable:
        filters.append(SpecFilter(field="profit", op=">", value=0))
    return filters


def with_sort(draft: SpecTemplate, sort_by: str | None, sort_order: str) -> SpecTemplate:
    if sort_by:
        return draft.model_copy(update={"sort": [SortSpec(by=sort_by, order=sort_order)]})
    if sort_order == "asc" and draft.sort:
        return draft.model_copy(update={"sort": [SortSpec(by=s.by, order="asc") for s in draft.sort]})
    return draft


def with_limit(draft: SpecTemplate, components: ParsedComponents, intent: str,
               settings: BuilderSettings) -> SpecTemplate:
    """Explicit "show all" beats everything; an explicit N beats any default."""
    if components.no_limit:
        limit = None
    elif components.limits is not None:
        limit = components.limits
    elif draft.limit is None and intent in settings.limited_intents:
        limit = settings.default_limits.get(intent)
    else:
        limit = draft.limit
    return draft.model_copy(update={"limit": limit})


def with_aggregate_metrics(draft: SpecTemplate) -> SpecTemplate:
    """Grouped specs may only carry aggregates; swap raw reads for the default aggregate."""
    if not draft.dimensions or all(m.op in AGGREGATE_OPS for m in draft.metrics):
        return draft
    metrics = [
        m if m.op in AGGREGATE_OPS else MetricSpec(metric=m.metric, op=DEFAULT_METRIC_OPS[m.metric])
        for m in draft.metrics
    ]
    return draft.model_copy(update={"metrics": metrics})


# ── Builder ──────────────────────────────────────────────

class SpecBuilder:
    def __init__(self, catalog: PatternCatalog | None = None, matcher: ItemMatcher | None = None):
        self.catalog = catalog or load_catalog()
        self.settings = self.catalog.builder
        self.matcher = matcher or get_item_matcher()

    def find_template(self, intent: str) -> TemplateMatch:
        """Exact intent match, then example similarity, then a generic skeleton."""
        pattern = self.catalog.pattern_for_intent(intent)
        if pattern is None:
            phrase = intent.replace("_", " ")
            best_sim = 0.0
            for candidate in self.catalog.patterns.values():
                sim = max(edit_similarity(phrase, ex) for ex in candidate.examples)
                if sim > self.settings.similarity_threshold and sim > best_sim:
                    pattern, best_sim = candidate, sim

        if pattern is not None:
            return TemplateMatch(pattern.key, pattern.default_spec, pattern.requires_item_filter)
        if "analysis" in intent or "performance" in intent:
            return TemplateMatch("generic_analysis", GENERIC_ANALYSIS)
        if "summary" in intent or "total" in intent:
            return TemplateMatch("generic_summary", GENERIC_SUMMARY)
        return TemplateMatch("default", ULTIMATE_DEFAULT)

    def requires_confirmation(self, draft: SpecTemplate, confidence: float, query: str) -> bool:
        s = self.settings
        return (
            confidence < s.confirmation_threshold
            or len(draft.filters) > s.max_filters_before_confirmation
            or isinstance(draft.time_range, CustomRange)
            or (draft.limit or 0) > s.max_limit_before_confirmation
            or bool(_COMPARISON_RE.search(query.lower()))
        )

    def build(
        self,
        intent: IntentResult | str,
        components: ParsedComponents,
        confidence: float,
        query: str,
    ) -> QuerySpec:
        intent_tag = intent.intent if isinstance(intent, IntentResult) else intent
        match = self.find_template(intent_tag)

        extracted = [f for f in (normalize_filter(pf) for pf in components.filters) if f is not None]

        draft = match.template
        draft = with_time_range(draft, components.time_range)
        draft = with_metrics(draft, components.metrics)
        draft = with_dimensions(draft, components.dimensions)
        draft = with_filters(draft, extracted)
        if match.requires_item_filter and components.items:
            draft = with_filters(draft, item_filters(components.items, self.matcher))
        draft = with_filters(draft, modifier_filters(components.modifiers))
        draft = with_sort(draft, components.sort_by, components.sort_order)
        draft = with_limit(draft, components, intent_tag, self.settings)
        draft = with_aggregate_metrics(draft)

        spec = QuerySpec.model_validate({
            **draft.model_dump(),
            "intent": intent_tag,
            "confidence": confidence,
            "requires_confirmation": self.requires_confirmation(draft, confidence, query),
        })
        logger.info("Built spec intent=%s template=%s metrics=%d filters=%d limit=%s confirm=%s",
                    intent_tag, match.key, len(spec.metrics), len(spec.filters),
                    spec.limit, spec.requires_confirmation)
        return spec

    @staticmethod
    def preview(spec: QuerySpec) -> str:
        return generate_preview(spec)
