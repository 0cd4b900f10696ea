"""
Unit tests -- intent classifier and confidence scorer.
"""
import pytest

from flipdash.assistant.classifier import FALLBACK_PATTERN, IntentClassifier, example_score
from flipdash.assistant.confidence import score_confidence
from flipdash.assistant.extractor import ComponentExtractor
from flipdash.assistant.spec import IntentResult, ParsedComponents, PresetRange


@pytest.fixture(scope="module")
def extractor() -> ComponentExtractor:
    return ComponentExtractor()


@pytest.fixture(scope="module")
def classifier() -> IntentClassifier:
    return IntentClassifier()


def _classify(classifier, extractor, query):
    return classifier.classify(query, extractor.extract(query))


# ── 1. Example scoring ───────────────────────────────────

def test_example_score_exact_match_capped():
    assert example_score("top 10 most profitable flips", "top 10 most profitable flips") == 1.0


def test_example_score_top_boost():
    # 2/5 word overlap + 0.3 "top" boost
    assert example_score("top 10 most profitable flips", "top items by profit") == pytest.approx(0.7)


# ── 2. Pattern classification ────────────────────────────

@pytest.mark.parametrize("query, intent, pattern", [
    ("top 10 most profitable flips", "top_items_by_profit", "top_items"),
    ("weekend vs weekday profit", "time_comparison", "weekend_vs_weekday"),
    ("recent flips", "recent_activity", "recent_flips"),
])
def test_classify_patterns(classifier, extractor, query, intent, pattern):
    result = _classify(classifier, extractor, query)
    assert result.intent == intent
    assert result.pattern == pattern
    assert 0.5 <= result.score <= 1.0


def test_top_items_score(classifier, extractor):
    # 3 of the 4 top_items examples match
    assert _classify(classifier, extractor, "top 10 most profitable flips").score == pytest.approx(0.75)


def test_item_pattern_requires_an_item(classifier, extractor):
    result = _classify(classifier, extractor, "how are my whip flips doing")
    assert result.intent == "item_analysis"


def test_unrelated_query_falls_back(classifier, extractor):
    result = _classify(classifier, extractor, "banana smoothie recipe")
    assert result.pattern == FALLBACK_PATTERN
    assert result.intent == "profit_analysis"
    assert result.score == 0.5


# ── 3. Fallback heuristics (first match wins) ────────────

@pytest.mark.parametrize("query, components, intent, score", [
    ("best profit ever", ParsedComponents(), "top_items_by_profit", 0.7),
    ("most roi", ParsedComponents(), "roi_analysis", 0.7),
    ("latest stuff", ParsedComponents(), "recent_activity", 0.6),
    ("compare stuff", ParsedComponents(), "time_comparison", 0.8),
    ("my accounts", ParsedComponents(), "account_comparison", 0.7),
    ("xyz", ParsedComponents(items=["abyssal whip"]), "item_performance", 0.6),
    ("xyz", ParsedComponents(), "profit_analysis", 0.5),
])
def test_fallback_rules(query, components, intent, score):
    result = IntentClassifier.fallback(query, components)
    assert (result.intent, result.score, result.pattern) == (intent, score, FALLBACK_PATTERN)


# ── 4. Confidence ────────────────────────────────────────

def _intent(score: float) -> IntentResult:
    return IntentResult(intent="profit_analysis", pattern="fallback", score=score)


def test_confidence_question_bonus():
    assert score_confidence(_intent(0.5), ParsedComponents(), "show me my flips please") == pytest.approx(0.55)


def test_confidence_short_query_penalties():
    # -0.2 for < 10 chars and -0.1 for < 3 words
    assert score_confidence(_intent(0.5), ParsedComponents(), "flips") == pytest.approx(0.2)


def test_confidence_component_bonuses():
    c = ParsedComponents(
        items=["abyssal whip"],
        time_range=PresetRange(preset="last_7d"),
        metrics=["profit"],
        limits=10,
    )
    assert score_confidence(_intent(0.5), c, "whip profit last week top 10") == pytest.approx(0.9)


def test_confidence_clamped():
    c = ParsedComponents(items=["abyssal whip"], metrics=["profit"], limits=10)
    assert score_confidence(_intent(1.0), c, "show me whip profit top 10") == 1.0
    assert score_confidence(_intent(0.0), ParsedComponents(), "x") == 0.0


def test_confidence_accepts_plain_float():
    assert score_confidence(0.6, ParsedComponents(), "what are my flips") == pytest.approx(0.65)


@pytest.mark.parametrize("extra", [
    {"items": ["abyssal whip"]},
    {"time_range": PresetRange(preset="last_30d")},
    {"metrics": ["roi"]},
    {"limits": 5},
])
def test_confidence_monotonic_in_components(extra):
    query = "profit on my flips lately"
    base = score_confidence(_intent(0.6), ParsedComponents(), query)
    assert score_confidence(_intent(0.6), ParsedComponents(**extra), query) >= base


def test_confidence_short_query_never_scores_higher():
    c = ParsedComponents(metrics=["profit"])
    long_score = score_confidence(_intent(0.6), c, "profit on my flips lately")
    assert score_confidence(_intent(0.6), c, "profit") <= long_score
