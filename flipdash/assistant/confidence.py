"""
Confidence scorer -- turns the classifier score into a 0-1 confidence.

Additive adjustments on top of the intent score, then clamped:

  +0.10  an item was detected
  +0.10  a time range was detected
  +0.10  a metric was detected
  +0.10  an explicit limit was detected
  +0.05  the query is phrased as a question ("show me", "what", "how")
  -0.20  the query is shorter than 10 characters
  -0.10  the query has fewer than 3 words
"""
from __future__ import annotations

import re

from flipdash.assistant.spec import IntentResult, ParsedComponents

_QUESTION_RE = re.compile(r"\bshow me\b|\bwhat\b|\bhow\b")

COMPONENT_BONUS = 0.1
QUESTION_BONUS = 0.05
SHORT_QUERY_PENALTY = 0.2
FEW_WORDS_PENALTY = 0.1
MIN_QUERY_CHARS = 10
MIN_QUERY_WORDS = 3


def score_confidence(intent: IntentResult | float, components: ParsedComponents, query: str) -> float:
    base = intent.score if isinstance(intent, IntentResult) else float(intent)
    q = query.strip().lower()

    confidence = base
    if components.items:
        confidence += COMPONENT_BONUS
    if components.time_range is not None:
        confidence += COMPONENT_BONUS
    if components.metrics:
        confidence += COMPONENT_BONUS
    if components.limits is not None:
        confidence += COMPONENT_BONUS
    if _QUESTION_RE.search(q):
        confidence += QUESTION_BONUS

    if len(q) < MIN_QUERY_CHARS:
        confidence -= SHORT_QUERY_PENALTY
    if len(q.split()) < MIN_QUERY_WORDS:
        confidence -= FEW_WORDS_PENALTY

    return round(max(0.0, min(1.0, confidence)), 4)
