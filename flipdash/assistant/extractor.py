"""
Component extractor -- pulls typed fragments out of a normalised query.

Catalog-driven tables (time ranges, thresholds, limits) come from the query
catalog; the small fixed keyword vocabularies live here as ordered
``(predicate, effect)`` tables.  Each table documents whether the first
match wins or every match accumulates.

Extraction never raises: a fragment that cannot be parsed leaves the
component at its neutral default.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from flipdash.assistant.item_matcher import ItemMatcher, get_item_matcher
from flipdash.assistant.spec import (
    ComparisonRange,
    CustomRange,
    DayOfWeekRange,
    Modifiers,
    ParsedComponents,
    ParsedFilter,
    PresetRange,
    TimeRange,
)
from flipdash.core.utils import as_number, normalize_query
from flipdash.governance.catalog_loader import (
    ExtractionPatterns,
    PatternCatalog,
    ThresholdPattern,
    load_catalog,
)
from flipdash.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    """A compiled predicate and the tag it contributes when it matches."""
    pattern: re.Pattern
    effect: str


def _rule(regex: str, effect: str) -> KeywordRule:
    return KeywordRule(re.compile(regex), effect)


# ── Keyword tables ───────────────────────────────────────

# All matches accumulate, in table order.
METRIC_RULES: tuple[KeywordRule, ...] = (
    _rule(r"\bprofit\w*|\bmoney\b|\bgp\b|\bearn(?:ings|ed)?\b|\bmade\b|\bmake\b", "profit"),
    _rule(r"\broi\b|\breturn\b|\bpercentage\b|%", "roi"),
    _rule(r"\bhow many\b|\bcount\b|\bnumber of\b|\bflip count\b", "flips"),
    _rule(r"\bvolume\b|\binvest(?:ed)?\b|\bspent\b|\btraded\b", "volume"),
    _rule(r"\bhold time\b|\bheld\b|\bholding\b|\bduration\b|\bhow long\b", "avg_hold_time"),
)

# All matches accumulate, in table order.
DIMENSION_RULES: tuple[KeywordRule, ...] = (
    _rule(r"\b(?:by|per|each) item\b|\bitem breakdown\b", "item"),
    _rule(r"\b(?:by|per|each) (?:date|day)\b|\bdaily\b", "date"),
    _rule(r"\b(?:by|per|each) account\b|\baccounts\b", "account"),
    _rule(r"\bvs\b|\bversus\b|\bcompare\b", "time_period"),
)

# First match wins.
SORT_RULES: tuple[KeywordRule, ...] = (
    _rule(r"\b(?:sort(?:ed)? )?by profit\b", "profit"),
    _rule(r"\b(?:sort(?:ed)? )?by roi\b", "roi"),
    _rule(r"\b(?:sort(?:ed)? )?by date\b", "date"),
    _rule(r"\bsort(?:ed)? by time\b|\bby duration\b", "flip_duration_minutes"),
    _rule(r"\b(?:sort(?:ed)? )?by count\b", "flip_count"),
)

# First match wins; no match leaves the default "desc".
SORT_ORDER_RULES: tuple[KeywordRule, ...] = (
    _rule(r"\bascending\b|\blowest\b|\bsmallest\b|\bworst\b|\bbottom\b", "asc"),
)

# All matches accumulate.  "most/least profitable" is a ranking, not a filter.
OUTCOME_FILTER_RULES: tuple[KeywordRule, ...] = (
    _rule(r"(?<!most )(?<!least )\bprofitable\b|\bpositive\b|\bsuccessful\b", "profit > 0"),
    _rule(r"\bloss(?:es)?\b|\bnegative\b|\blosing\b|\blost\b", "profit < 0"),
)

MODIFIER_CATEGORIES = ("ammo", "armor", "weapons")

# All matches accumulate.
EXCLUDE_RULES: tuple[KeywordRule, ...] = tuple(
    _rule(rf"\b(?:exclude|excluding|without|except|not|no)\s+(?:any\s+)?{cat}\b", cat)
    for cat in MODIFIER_CATEGORIES
)
INCLUDE_RULES: tuple[KeywordRule, ...] = tuple(
    _rule(rf"\b(?:only|just)\s+{cat}\b", cat) for cat in MODIFIER_CATEGORIES
)
ONLY_PROFITABLE_RULE = _rule(r"\bonly profitable\b|\bprofitable only\b", "only_profitable")

_OUTCOME_FILTERS: dict[str, ParsedFilter] = {
    "profit > 0": ParsedFilter(field="profit", operator=">", value=0),
    "profit < 0": ParsedFilter(field="profit", operator="<", value=0),
}


def _accumulate(rules: tuple[KeywordRule, ...], query: str) -> list[str]:
    found: list[str] = []
    for rule in rules:
        if rule.pattern.search(query) and rule.effect not in found:
            found.append(rule.effect)
    return found


def _first(rules: tuple[KeywordRule, ...], query: str) -> str | None:
    for rule in rules:
        if rule.pattern.search(query):
            return rule.effect
    return None


# ── Numeric helpers ──────────────────────────────────────

def parse_amount(text: str, multipliers: dict[str, float]) -> int | float | None:
    """Turn ``"5m"`` / ``"100k"`` / ``"2,500"`` into an absolute number."""
    cleaned = text.strip().lower().replace(",", "").replace(" ", "")
    if not cleaned:
        return None
    factor = 1.0
    suffix = cleaned[-1]
    if suffix in multipliers:
        factor = multipliers[suffix]
        cleaned = cleaned[:-1]
    try:
        return as_number(float(cleaned) * factor)
    except ValueError:
        return None


# ── Extractor ────────────────────────────────────────────

class ComponentExtractor:
    """Stateless extraction over a catalog's extraction tables."""

    def __init__(self, catalog: PatternCatalog | None = None, matcher: ItemMatcher | None = None):
        self.catalog = catalog or load_catalog()
        self.patterns: ExtractionPatterns = self.catalog.extraction
        self.matcher = matcher or get_item_matcher()
        self._weekday_res = self._compile_weekdays()

    def extract(self, query: str) -> ParsedComponents:
        q = normalize_query(query)
        limits = self.extract_limit(q)
        sort_by, sort_order = self.extract_sorting(q)
        return ParsedComponents(
            time_range=self.extract_time_range(q),
            items=self.matcher.extract_items(q),
            metrics=_accumulate(METRIC_RULES, q),
            dimensions=_accumulate(DIMENSION_RULES, q),
            filters=self.extract_filters(q),
            limits=limits,
            no_limit=bool(self.patterns.no_limit.search(q)),
            sort_by=sort_by,
            sort_order=sort_order,
            modifiers=self.extract_modifiers(q),
        )

    # ── Time range ───────────────────────────────────

    def _compile_weekdays(self) -> dict[str, tuple[re.Pattern, re.Pattern]]:
        compiled: dict[str, tuple[re.Pattern, re.Pattern]] = {}
        for day, keywords in self.patterns.day_of_week.items():
            alternatives = "|".join(re.escape(k) for k in keywords)
            specific = re.compile(rf"\blast (?:{alternatives})\b")
            every = re.compile(rf"\b(?:{alternatives})(?:s\b| flips\b)")
            compiled[day] = (specific, every)
        return compiled

    def extract_time_range(self, q: str) -> TimeRange | None:
        """Preset, then weekday, then named comparison, then literal date range."""
        for preset, regexes in self.patterns.time_ranges.items():
            if any(r.search(q) for r in regexes):
                return PresetRange(preset=preset)

        for day, (specific, every) in self._weekday_res.items():
            if specific.search(q):
                return DayOfWeekRange(day_of_week=day, specific=True)
            if every.search(q):
                return DayOfWeekRange(day_of_week=day, all_occurrences=True)

        for comparison, regexes in self.patterns.time_comparisons.items():
            if any(r.search(q) for r in regexes):
                return ComparisonRange(comparison=comparison)

        m = self.patterns.custom_range.search(q)
        if m:
            try:
                return CustomRange(date_from=date.fromisoformat(m.group(1)),
                                   date_to=date.fromisoformat(m.group(2)))
            except ValueError:
                logger.debug("Ignoring malformed date range %r", m.group(0))
        return None

    # ── Filters ──────────────────────────────────────

    def extract_filters(self, q: str) -> list[ParsedFilter]:
        filters: list[ParsedFilter] = []

        def _add(f: ParsedFilter) -> None:
            if f not in filters:
                filters.append(f)

        for tp in self.patterns.profit_thresholds:
            for m in tp.regex.finditer(q):
                value = parse_amount(m.group(tp.group), tp.multipliers)
                if value is not None:
                    _add(ParsedFilter(field="profit", operator=tp.operator, value=value))

        for tp in self.patterns.roi_thresholds:
            for m in tp.regex.finditer(q):
                value = parse_amount(m.group(tp.group), {})
                if value is not None:
                    _add(ParsedFilter(field="roi", operator=tp.operator, value=value))

        for tp in self.patterns.duration_thresholds:
            for m in tp.regex.finditer(q):
                minutes = self._duration_minutes(tp, m)
                if minutes is not None:
                    _add(ParsedFilter(field="flip_duration_minutes", operator=tp.operator, value=minutes))

        for effect in _accumulate(OUTCOME_FILTER_RULES, q):
            _add(_OUTCOME_FILTERS[effect])

        return filters

    @staticmethod
    def _duration_minutes(tp: ThresholdPattern, m: re.Match) -> int | float | None:
        unit = (m.group(tp.group + 1) or "").lower()
        factor = tp.conversions.get(unit)
        if factor is None:
            return None
        try:
            return as_number(float(m.group(tp.group)) * factor)
        except ValueError:
            return None

    # ── Limit / sort / modifiers ─────────────────────

    def extract_limit(self, q: str) -> int | None:
        for lp in self.patterns.limits:
            m = lp.regex.search(q)
            if m:
                value = int(m.group(lp.group))
                if value > 0:
                    return value
        return None

    @staticmethod
    def extract_sorting(q: str) -> tuple[str | None, str]:
        return _first(SORT_RULES, q), _first(SORT_ORDER_RULES, q) or "desc"

    @staticmethod
    def extract_modifiers(q: str) -> Modifiers:
        return Modifiers(
            exclude=_accumulate(EXCLUDE_RULES, q),
            include=_accumulate(INCLUDE_RULES, q),
            only_profitable=bool(ONLY_PROFITABLE_RULE.pattern.search(q)),
        )


_extractor: ComponentExtractor | None = None


def extract_components(query: str) -> ParsedComponents:
    """Extract with the shared, catalog-backed extractor."""
    global _extractor
    if _extractor is None:
        _extractor = ComponentExtractor()
    return _extractor.extract(query)
