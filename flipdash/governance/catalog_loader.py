"""
Loads, validates, and caches the query catalog YAML into strongly-typed objects.

The query catalog is the single source of truth for:
  - intent patterns   (examples, requirement flags, default spec skeletons)
  - extraction tables (time-range keywords, threshold / limit regexes)
  - classifier and spec-builder thresholds
  - capability limits (filter fields, max limit, max time span)
  - clarification triggers and unsupported-request rules

The item dictionary (canonical names, abbreviations) lives in a sibling file.

Everything is validated here: a bad regex, an unknown preset or a default
spec that breaks the QuerySpec rules raises ``CatalogError`` at load time
instead of surfacing as a silent ``None`` deep inside extraction.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml
from pydantic import ValidationError

from flipdash.assistant.spec import PRESETS, WEEKDAYS, FILTER_OPS, SpecTemplate
from flipdash.core.config import get_settings
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

CATALOG_FILE = "query_patterns.yml"
ITEMS_FILE = "items.yml"
SUPPORTED_VERSION = 1

CLARIFICATION_TRIGGERS = (
    "multiple_time_ranges",
    "ambiguous_item",
    "multiple_metrics",
    "unclear_comparison",
)
_COMPARISONS = ("weekend_vs_weekday", "weekday_vs_weekend")
_FIELD_TYPES = ("numeric", "text", "date")


class CatalogError(ValueError):
    """Raised when a catalog document is malformed."""


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class QueryPattern:
    key: str
    intent: str
    examples: tuple[str, ...]
    default_spec: SpecTemplate
    description: str = ""
    requires_item_filter: bool = False
    requires_time_comparison: bool = False
    requires_duration_filter: bool = False

    @property
    def requirement_flags(self) -> dict[str, bool]:
        return {
            "item_filter": self.requires_item_filter,
            "time_comparison": self.requires_time_comparison,
            "duration_filter": self.requires_duration_filter,
        }


@dataclass(frozen=True)
class ThresholdPattern:
    """A threshold regex plus how to turn its captures into a base-unit amount."""
    regex: re.Pattern
    operator: str
    group: int = 1
    multipliers: dict[str, float] = field(default_factory=dict)
    conversions: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LimitPattern:
    regex: re.Pattern
    group: int = 1


@dataclass(frozen=True)
class ExtractionPatterns:
    time_ranges: dict[str, tuple[re.Pattern, ...]]
    day_of_week: dict[str, tuple[str, ...]]
    time_comparisons: dict[str, tuple[re.Pattern, ...]]
    custom_range: re.Pattern
    profit_thresholds: tuple[ThresholdPattern, ...]
    roi_thresholds: tuple[ThresholdPattern, ...]
    duration_thresholds: tuple[ThresholdPattern, ...]
    limits: tuple[LimitPattern, ...]
    no_limit: re.Pattern


@dataclass(frozen=True)
class ClassifierSettings:
    example_match_threshold: float = 0.5
    fallback_threshold: float = 0.5


@dataclass(frozen=True)
class BuilderSettings:
    similarity_threshold: float = 0.7
    confirmation_threshold: float = 0.65
    max_filters_before_confirmation: int = 3
    max_limit_before_confirmation: int = 100
    limited_intents: frozenset[str] = frozenset()
    default_limits: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CapabilitySettings:
    """Hard limits a built spec must respect before execution."""
    min_confidence: float = 0.3
    max_dimensions: int = 2
    max_filters: int = 6
    max_limit: int = 1000
    max_days: int = 366
    filter_fields: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def field_type(self, name: str) -> str | None:
        for kind, fields in self.filter_fields.items():
            if name in fields:
                return kind
        return None


@dataclass(frozen=True)
class ClarificationRule:
    trigger: str
    question: str
    options: tuple[str, ...]


@dataclass(frozen=True)
class ImpossibleRule:
    regex: re.Pattern
    reason: str
    alternatives: tuple[str, ...]


@dataclass
class PatternCatalog:
    """Fully parsed query catalog."""

    version: int
    patterns: dict[str, QueryPattern]   # keyed by pattern key, catalog order kept
    extraction: ExtractionPatterns
    classifier: ClassifierSettings
    builder: BuilderSettings
    capabilities: CapabilitySettings = field(default_factory=CapabilitySettings)
    clarifications: tuple[ClarificationRule, ...] = ()
    impossible: tuple[ImpossibleRule, ...] = ()

    # ── Convenience look-ups ─────────────────────────

    def pattern_for_intent(self, intent: str) -> QueryPattern | None:
        for pattern in self.patterns.values():
            if pattern.intent == intent:
                return pattern
        return None

    def get_intents(self) -> list[str]:
        seen: list[str] = []
        for pattern in self.patterns.values():
            if pattern.intent not in seen:
                seen.append(pattern.intent)
        return seen

    def clarification(self, trigger: str) -> ClarificationRule | None:
        for rule in self.clarifications:
            if rule.trigger == trigger:
                return rule
        return None

    def get_patterns_list(self) -> list[dict[str, Any]]:
        """Return patterns as a list of dicts (for API responses)."""
        return [
            {
                "key": p.key,
                "intent": p.intent,
                "description": p.description,
                "examples": list(p.examples),
                "default_limit": p.default_spec.limit,
            }
            for p in self.patterns.values()
        ]


@dataclass(frozen=True)
class ItemDictionary:
    items: tuple[str, ...]
    abbreviations: dict[str, str]
    name_patterns: dict[str, str]


# ── Parsing ──────────────────────────────────────────────

def phrase_regex(phrase: str) -> re.Pattern:
    """Compile a keyword phrase so it only matches on word boundaries."""
    return re.compile(r"(?<!\w)" + re.escape(phrase.lower()) + r"(?!\w)")


def _compile(source: str, where: str, errors: list[str]) -> re.Pattern | None:
    try:
        return re.compile(source, re.IGNORECASE)
    except re.error as exc:
        errors.append(f"{where}: invalid regex {source!r} ({exc})")
        return None


def _parse_pattern(key: str, raw: dict[str, Any], errors: list[str]) -> QueryPattern | None:
    if not isinstance(raw, dict):
        errors.append(f"patterns.{key}: expected a mapping")
        return None
    intent = raw.get("intent")
    if not intent:
        errors.append(f"patterns.{key}: 'intent' is required")
        return None
    examples = tuple(str(e).lower() for e in raw.get("examples") or [])
    if not examples:
        errors.append(f"patterns.{key}: at least one example is required")
    try:
        default_spec = SpecTemplate.model_validate(raw.get("default_spec") or {})
    except ValidationError as exc:
        errors.append(f"patterns.{key}.default_spec: {exc.error_count()} error(s): {exc.errors()[0]['msg']}")
        return None
    return QueryPattern(
        key=key,
        intent=intent,
        examples=examples,
        default_spec=default_spec,
        description=raw.get("description", ""),
        requires_item_filter=bool(raw.get("requires_item_filter", False)),
        requires_time_comparison=bool(raw.get("requires_time_comparison", False)),
        requires_duration_filter=bool(raw.get("requires_duration_filter", False)),
    )


def _parse_keyword_table(
    raw: dict[str, Any] | None, allowed: tuple[str, ...], where: str, errors: list[str],
) -> dict[str, tuple[str, ...]]:
    table: dict[str, tuple[str, ...]] = {}
    for tag, phrases in (raw or {}).items():
        if tag not in allowed:
            errors.append(f"{where}: unknown key '{tag}' (expected one of {', '.join(allowed)})")
            continue
        table[tag] = tuple(str(p).lower() for p in phrases or [])
    return table


def _parse_thresholds(raw: list[dict[str, Any]] | None, where: str, errors: list[str]) -> tuple[ThresholdPattern, ...]:
    parsed: list[ThresholdPattern] = []
    for i, entry in enumerate(raw or []):
        regex = _compile(entry.get("pattern", ""), f"{where}[{i}]", errors)
        operator = entry.get("operator", ">")
        if operator not in FILTER_OPS:
            errors.append(f"{where}[{i}]: unknown operator '{operator}'")
            continue
        if regex is None:
            continue
        parsed.append(ThresholdPattern(
            regex=regex,
            operator=operator,
            group=int(entry.get("group", 1)),
            multipliers={k.lower(): float(v) for k, v in (entry.get("multipliers") or {}).items()},
            conversions={k.lower(): float(v) for k, v in (entry.get("conversions") or {}).items()},
        ))
    return tuple(parsed)


def _parse_extraction(raw: dict[str, Any], errors: list[str]) -> ExtractionPatterns | None:
    time_ranges = _parse_keyword_table(raw.get("time_ranges"), PRESETS, "extraction_patterns.time_ranges", errors)
    day_of_week = _parse_keyword_table(raw.get("day_of_week"), WEEKDAYS, "extraction_patterns.day_of_week", errors)
    comparisons = _parse_keyword_table(
        raw.get("time_comparisons"), _COMPARISONS, "extraction_patterns.time_comparisons", errors,
    )
    custom_range = _compile(
        raw.get("custom_range", r"(\d{4}-\d{2}-\d{2})\s*(?:to|through|until)\s*(\d{4}-\d{2}-\d{2})"),
        "extraction_patterns.custom_range", errors,
    )
    no_limit = _compile(
        raw.get("no_limit", r"\bshow all\b|\beverything\b"), "extraction_patterns.no_limit", errors,
    )

    limits: list[LimitPattern] = []
    for i, entry in enumerate(raw.get("limits") or []):
        regex = _compile(entry.get("pattern", ""), f"extraction_patterns.limits[{i}]", errors)
        if regex is not None:
            limits.append(LimitPattern(regex=regex, group=int(entry.get("group", 1))))

    extraction = ExtractionPatterns(
        time_ranges={k: tuple(phrase_regex(p) for p in v) for k, v in time_ranges.items()},
        day_of_week=day_of_week,
        time_comparisons={k: tuple(phrase_regex(p) for p in v) for k, v in comparisons.items()},
        custom_range=custom_range,
        profit_thresholds=_parse_thresholds(raw.get("profit_thresholds"), "extraction_patterns.profit_thresholds", errors),
        roi_thresholds=_parse_thresholds(raw.get("roi_thresholds"), "extraction_patterns.roi_thresholds", errors),
        duration_thresholds=_parse_thresholds(
            raw.get("duration_thresholds"), "extraction_patterns.duration_thresholds", errors,
        ),
        limits=tuple(limits),
        no_limit=no_limit,
    )
    return extraction


def _parse_builder(raw: dict[str, Any] | None, errors: list[str]) -> BuilderSettings:
    raw = raw or {}
    limited = frozenset(raw.get("limited_intents") or [])
    defaults = {k: int(v) for k, v in (raw.get("default_limits") or {}).items()}
    for intent in sorted(limited - set(defaults)):
        errors.append(f"builder.limited_intents: '{intent}' has no entry in default_limits")
    return BuilderSettings(
        similarity_threshold=float(raw.get("similarity_threshold", 0.7)),
        confirmation_threshold=float(raw.get("confirmation_threshold", 0.65)),
        max_filters_before_confirmation=int(raw.get("max_filters_before_confirmation", 3)),
        max_limit_before_confirmation=int(raw.get("max_limit_before_confirmation", 100)),
        limited_intents=limited,
        default_limits=defaults,
    )


def _parse_capabilities(raw: dict[str, Any] | None, errors: list[str]) -> CapabilitySettings:
    raw = raw or {}
    fields = {str(k): tuple(str(f) for f in v or []) for k, v in (raw.get("filter_fields") or {}).items()}
    for kind in fields:
        if kind not in _FIELD_TYPES:
            errors.append(f"capabilities.filter_fields: unknown type '{kind}' (expected one of {', '.join(_FIELD_TYPES)})")
    return CapabilitySettings(
        min_confidence=float(raw.get("min_confidence", 0.3)),
        max_dimensions=int(raw.get("max_dimensions", 2)),
        max_filters=int(raw.get("max_filters", 6)),
        max_limit=int(raw.get("max_limit", 1000)),
        max_days=int(raw.get("max_days", 366)),
        filter_fields=fields,
    )


def _parse_clarifications(raw: list[dict[str, Any]] | None, errors: list[str]) -> tuple[ClarificationRule, ...]:
    rules: list[ClarificationRule] = []
    for i, entry in enumerate(raw or []):
        trigger = entry.get("trigger")
        if trigger not in CLARIFICATION_TRIGGERS:
            errors.append(f"clarifications[{i}]: unknown trigger '{trigger}'")
            continue
        rules.append(ClarificationRule(
            trigger=trigger,
            question=entry.get("question", ""),
            options=tuple(entry.get("options") or []),
        ))
    return tuple(rules)


def _parse_impossible(raw: list[dict[str, Any]] | None, errors: list[str]) -> tuple[ImpossibleRule, ...]:
    rules: list[ImpossibleRule] = []
    for i, entry in enumerate(raw or []):
        regex = _compile(entry.get("pattern", ""), f"impossible[{i}]", errors)
        if regex is not None:
            rules.append(ImpossibleRule(
                regex=regex,
                reason=entry.get("reason", ""),
                alternatives=tuple(entry.get("alternatives") or []),
            ))
    return tuple(rules)


def parse_catalog(raw_yaml: dict[str, Any]) -> PatternCatalog:
    """Validate and convert a raw catalog mapping. Raises ``CatalogError``."""
    if not isinstance(raw_yaml, dict):
        raise CatalogError("Query catalog must be a mapping")

    errors: list[str] = []
    version = raw_yaml.get("version", SUPPORTED_VERSION)
    if version != SUPPORTED_VERSION:
        errors.append(f"version: unsupported catalog version {version!r}")

    patterns: dict[str, QueryPattern] = {}
    raw_patterns = raw_yaml.get("patterns") or {}
    if not raw_patterns:
        errors.append("patterns: at least one pattern is required")
    for key, raw in raw_patterns.items():
        pattern = _parse_pattern(key, raw, errors)
        if pattern is not None:
            patterns[key] = pattern

    extraction = _parse_extraction(raw_yaml.get("extraction_patterns") or {}, errors)
    raw_classifier = raw_yaml.get("classifier") or {}
    classifier = ClassifierSettings(
        example_match_threshold=float(raw_classifier.get("example_match_threshold", 0.5)),
        fallback_threshold=float(raw_classifier.get("fallback_threshold", 0.5)),
    )
    builder = _parse_builder(raw_yaml.get("builder"), errors)
    capabilities = _parse_capabilities(raw_yaml.get("capabilities"), errors)
    clarifications = _parse_clarifications(raw_yaml.get("clarifications"), errors)
    impossible = _parse_impossible(raw_yaml.get("impossible"), errors)

    if errors:
        raise CatalogError("Invalid query catalog:\n  - " + "\n  - ".join(errors))

    return PatternCatalog(
        version=version,
        patterns=patterns,
        extraction=extraction,
        classifier=classifier,
        builder=builder,
        capabilities=capabilities,
        clarifications=clarifications,
        impossible=impossible,
    )


def parse_item_dictionary(raw_yaml: dict[str, Any]) -> ItemDictionary:
    if not isinstance(raw_yaml, dict) or not raw_yaml.get("items"):
        raise CatalogError("Item dictionary must define a non-empty 'items' list")
    return ItemDictionary(
        items=tuple(str(i) for i in raw_yaml["items"]),
        abbreviations={str(k).lower(): str(v) for k, v in (raw_yaml.get("abbreviations") or {}).items()},
        name_patterns={str(k).lower(): str(v) for k, v in (raw_yaml.get("name_patterns") or {}).items()},
    )


# ── Public API ───────────────────────────────────────────

def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise CatalogError(f"{path.name}: not valid YAML ({exc})") from exc


@lru_cache
def load_catalog(path: Path | None = None) -> PatternCatalog:
    """Load and cache the query catalog from YAML."""
    path = path or get_settings().catalog_dir / CATALOG_FILE
    catalog = parse_catalog(_read_yaml(path))
    logger.info("Query catalog loaded: %d patterns from %s", len(catalog.patterns), path.name)
    return catalog


@lru_cache
def load_item_dictionary(path: Path | None = None) -> ItemDictionary:
    """Load and cache the item dictionary from YAML."""
    path = path or get_settings().catalog_dir / ITEMS_FILE
    return parse_item_dictionary(_read_yaml(path))
