"""
Intent classifier -- scores a query against the catalog's intent patterns.

Each pattern contributes a set of checks:
  - one fuzzy word-overlap check per example phrase
  - one check per requirement flag the pattern sets
    (item filter, time comparison, duration filter)

The pattern score is satisfied checks / total checks.  The highest score
wins; equal scores keep the earlier pattern, so catalog order matters.
Below the fallback threshold an ordered keyword heuristic decides instead.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from flipdash.assistant.similarity import word_overlap
from flipdash.assistant.spec import ComparisonRange, IntentResult, ParsedComponents
from flipdash.core.utils import normalize_query
from flipdash.governance.catalog_loader import PatternCatalog, QueryPattern, load_catalog
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

FALLBACK_PATTERN = "fallback"

_TOP_RE = re.compile(r"\btop\b")
_PROFIT_RE = re.compile(r"profit")
_BEST_RE = re.compile(r"\bbest\b")
_BEST_OR_MOST_RE = re.compile(r"\b(?:best|most)\b")
_RANKING_RE = re.compile(r"\b(?:top|best|most)\b")
_ROI_RE = re.compile(r"\broi\b")
_RECENT_RE = re.compile(r"\b(?:recent|latest|last)\b")
_COMPARE_RE = re.compile(r"\b(?:vs|compare|versus)\b")
_ACCOUNT_RE = re.compile(r"\baccounts?\b")


# ── Example matching ─────────────────────────────────────

def example_score(query: str, example: str) -> float:
    """Word-overlap score between a query and one example, with key-term boosts."""
    score = word_overlap(query, example)
    if _TOP_RE.search(example) and _TOP_RE.search(query):
        score += 0.3
    elif _PROFIT_RE.search(example) and _PROFIT_RE.search(query):
        score += 0.2
    elif _BEST_RE.search(example) and _BEST_OR_MOST_RE.search(query):
        score += 0.2
    return min(score, 1.0)


# ── Requirement predicates ───────────────────────────────

def _has_items(c: ParsedComponents) -> bool:
    return bool(c.items)


def _has_time_comparison(c: ParsedComponents) -> bool:
    return isinstance(c.time_range, ComparisonRange) or "time_period" in c.dimensions


def _has_duration_filter(c: ParsedComponents) -> bool:
    return any(f.field == "flip_duration_minutes" for f in c.filters)


_REQUIREMENTS: dict[str, Callable[[ParsedComponents], bool]] = {
    "item_filter": _has_items,
    "time_comparison": _has_time_comparison,
    "duration_filter": _has_duration_filter,
}


# ── Fallback heuristics (first match wins) ───────────────

@dataclass(frozen=True)
class FallbackRule:
    predicate: Callable[[str, ParsedComponents], bool]
    intent: str
    score: float


FALLBACK_RULES: tuple[FallbackRule, ...] = (
    FallbackRule(lambda q, c: bool(_RANKING_RE.search(q) and _PROFIT_RE.search(q)), "top_items_by_profit", 0.7),
    FallbackRule(lambda q, c: bool(_RANKING_RE.search(q) and _ROI_RE.search(q)), "roi_analysis", 0.7),
    FallbackRule(lambda q, c: bool(_RECENT_RE.search(q)), "recent_activity", 0.6),
    FallbackRule(lambda q, c: bool(_COMPARE_RE.search(q)), "time_comparison", 0.8),
    FallbackRule(lambda q, c: bool(_ACCOUNT_RE.search(q)), "account_comparison", 0.7),
    FallbackRule(lambda q, c: bool(c.items), "item_performance", 0.6),
)
DEFAULT_FALLBACK = ("profit_analysis", 0.5)


# ── Classifier ───────────────────────────────────────────

class IntentClassifier:
    def __init__(self, catalog: PatternCatalog | None = None):
        self.catalog = catalog or load_catalog()

    def pattern_score(self, query: str, pattern: QueryPattern, components: ParsedComponents) -> float:
        threshold = self.catalog.classifier.example_match_threshold
        satisfied = sum(1 for ex in pattern.examples if example_score(query, ex) >= threshold)
        total = len(pattern.examples)
        for flag, required in pattern.requirement_flags.items():
            if required:
                total += 1
                if _REQUIREMENTS[flag](components):
                    satisfied += 1
        return satisfied / total if total else 0.0

    def classify(self, query: str, components: ParsedComponents) -> IntentResult:
        q = normalize_query(query)
        best: QueryPattern | None = None
        best_score = 0.0
        for pattern in self.catalog.patterns.values():
            score = self.pattern_score(q, pattern, components)
            if score > best_score:
                best, best_score = pattern, score

        if best is None or best_score < self.catalog.classifier.fallback_threshold:
            result = self.fallback(q, components)
            logger.debug("Intent fallback -> %s (best pattern score %.2f)", result.intent, best_score)
            return result

        logger.debug("Intent %s via pattern %s score=%.2f", best.intent, best.key, best_score)
        return IntentResult(intent=best.intent, pattern=best.key, score=round(best_score, 4))

    @staticmethod
    def fallback(q: str, components: ParsedComponents) -> IntentResult:
        for rule in FALLBACK_RULES:
            if rule.predicate(q, components):
                return IntentResult(intent=rule.intent, pattern=FALLBACK_PATTERN, score=rule.score)
        intent, score = DEFAULT_FALLBACK
        return IntentResult(intent=intent, pattern=FALLBACK_PATTERN, score=score)
