"""
Planner -- turns a natural-language question into a plan outcome.

    question -> extract -> classify -> score -> build spec
             -> capability check -> clarification check -> confirmation gate

Outcomes
--------
parsed      high-confidence spec, safe to run straight away
confirm     spec plus preview; the user should confirm before it runs
clarify     a follow-up question with pick-list options
impossible  the request cannot be answered from flip history

Questions that are refinements of an earlier one, or too complex for the
rule-based path, are flagged for the SQL-generation service instead
(``should_use_remote``).
"""
from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field

from flipdash.assistant.clarify import apply_clarification, needs_clarification
from flipdash.assistant.classifier import IntentClassifier
from flipdash.assistant.confidence import score_confidence
from flipdash.assistant.extractor import ComponentExtractor
from flipdash.assistant.item_matcher import ItemMatcher, get_item_matcher
from flipdash.assistant.spec import IntentResult, ParsedComponents, QuerySpec
from flipdash.assistant.spec_builder import SpecBuilder
from flipdash.core.utils import normalize_query
from flipdash.governance.catalog_loader import ImpossibleRule, PatternCatalog, load_catalog
from flipdash.governance.validator import validate_capabilities
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

OutcomeType = Literal["parsed", "confirm", "clarify", "impossible"]

REFINEMENT_PHRASES = (
    "also include", "add to that", "include their", "show their", "with their",
    "can you also", "also show", "include the", "add the", "also add",
    "sort by", "order by", "exclude", "remove", "filter", "only show",
    "limit to", "top", "bottom", "first", "last",
)
_SHORT_MODIFIER_RE = re.compile(r"roi|count|sort|limit|exclude|include")
SHORT_REFINEMENT_CHARS = 50
MAX_LOCAL_QUERY_CHARS = 400
_CALCULATION_RE = re.compile(r"calculate|formula")


class ParseResult(BaseModel):
    query: str
    components: ParsedComponents
    intent: IntentResult
    confidence: float


class PlanOutcome(BaseModel):
    type: OutcomeType
    spec: QuerySpec | None = None
    preview: str = ""
    confidence: float = 0.0
    question: str = ""
    options: list[str] = Field(default_factory=list)
    reason: str = ""
    alternatives: list[str] = Field(default_factory=list)


# ── Routing heuristics ───────────────────────────────────

def is_refinement(query: str, previous_query: str | None) -> bool:
    """True when *query* reads as a follow-up that modifies the previous question."""
    if not previous_query:
        return False
    q = query.lower()
    if any(phrase in q for phrase in REFINEMENT_PHRASES):
        return True
    return len(query) < SHORT_REFINEMENT_CHARS and bool(_SHORT_MODIFIER_RE.search(q))


def should_use_remote(query: str, previous_query: str | None = None) -> bool:
    """True when the question should go to the SQL-generation service."""
    if is_refinement(query, previous_query):
        return True
    if len(query) > MAX_LOCAL_QUERY_CHARS:
        return True
    q = query.lower()
    if " and " in q and " or " in q:
        return True
    return bool(_CALCULATION_RE.search(q))


# ── Planner ──────────────────────────────────────────────

class QueryPlanner:
    def __init__(self, catalog: PatternCatalog | None = None, matcher: ItemMatcher | None = None):
        self.catalog = catalog or load_catalog()
        self.matcher = matcher or get_item_matcher()
        self.extractor = ComponentExtractor(self.catalog, self.matcher)
        self.classifier = IntentClassifier(self.catalog)
        self.builder = SpecBuilder(self.catalog, self.matcher)

    def parse(self, query: str) -> ParseResult:
        components = self.extractor.extract(query)
        intent = self.classifier.classify(query, components)
        confidence = score_confidence(intent, components, query)
        return ParseResult(query=query, components=components, intent=intent, confidence=confidence)

    def build_spec(self, query: str) -> QuerySpec:
        """Parse and build without the clarification or confirmation gates."""
        parsed = self.parse(query)
        return self.builder.build(parsed.intent, parsed.components, parsed.confidence, query)

    def check_impossible(self, query: str) -> ImpossibleRule | None:
        q = normalize_query(query)
        for rule in self.catalog.impossible:
            if rule.regex.search(q):
                return rule
        return None

    def _alternatives(self) -> list[str]:
        return [p.examples[0] for p in list(self.catalog.patterns.values())[:3]]

    def plan(self, query: str) -> PlanOutcome:
        rule = self.check_impossible(query)
        if rule is not None:
            logger.info("Impossible request: %s", rule.reason)
            return PlanOutcome(type="impossible", reason=rule.reason, alternatives=list(rule.alternatives))

        parsed = self.parse(query)
        spec = self.builder.build(parsed.intent, parsed.components, parsed.confidence, query)

        errors = validate_capabilities(spec, self.catalog)
        if errors:
            logger.info("Capability check failed: %s", errors)
            return PlanOutcome(type="impossible", spec=spec, reason=" ".join(errors),
                               alternatives=self._alternatives())

        clarification = needs_clarification(spec, parsed.components, query, self.catalog)
        if clarification is not None:
            return PlanOutcome(type="clarify", spec=spec, confidence=parsed.confidence,
                               question=clarification.question, options=list(clarification.options))

        outcome: OutcomeType = "parsed"
        if spec.requires_confirmation or parsed.confidence < self.catalog.builder.confirmation_threshold:
            outcome = "confirm"
        return PlanOutcome(type=outcome, spec=spec, preview=self.builder.preview(spec),
                           confidence=parsed.confidence)

    def clarify(self, spec: QuerySpec, answer: str) -> PlanOutcome:
        """Apply a clarification answer; the result always needs confirmation."""
        updated = apply_clarification(spec, answer, self.extractor, self.matcher)
        errors = validate_capabilities(updated, self.catalog)
        if errors:
            return PlanOutcome(type="impossible", spec=updated, reason=" ".join(errors),
                               alternatives=self._alternatives())
        return PlanOutcome(type="confirm", spec=updated, preview=self.builder.preview(updated),
                           confidence=updated.confidence)


_planner: QueryPlanner | None = None


def get_planner() -> QueryPlanner:
    """Return the shared planner built from the on-disk catalog."""
    global _planner
    if _planner is None:
        _planner = QueryPlanner()
    return _planner


def plan(question: str) -> PlanOutcome:
    """Plan *question* with the shared planner."""
    return get_planner().plan(question)
