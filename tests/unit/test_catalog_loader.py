"""
Unit tests -- query catalog and item dictionary loading/validation.
"""
import pytest
import yaml

from flipdash.governance.catalog_loader import (
    CatalogError,
    load_catalog,
    load_item_dictionary,
    parse_catalog,
    parse_item_dictionary,
    phrase_regex,
)


@pytest.fixture(scope="module")
def catalog():
    return load_catalog()


def _minimal(**overrides):
    raw = {"version": 1, "patterns": {"p": {"intent": "profit_analysis", "examples": ["Total Profit"]}}}
    raw.update(overrides)
    return raw


# ── 1. Shipped catalog ───────────────────────────────────

def test_catalog_loads(catalog):
    assert catalog.version == 1
    assert len(catalog.patterns) >= 10


def test_pattern_order_is_kept(catalog):
    assert list(catalog.patterns)[0] == "top_items"


def test_intents_are_unique(catalog):
    intents = catalog.get_intents()
    assert len(intents) == len(set(intents))
    assert "top_items_by_profit" in intents
    assert "time_comparison" in intents


def test_pattern_for_intent(catalog):
    pattern = catalog.pattern_for_intent("item_analysis")
    assert pattern.key == "item_breakdown"
    assert pattern.requirement_flags["item_filter"] is True
    assert catalog.pattern_for_intent("nope") is None


def test_limited_intents_have_defaults(catalog):
    for intent in catalog.builder.limited_intents:
        assert intent in catalog.builder.default_limits


def test_capability_field_types(catalog):
    caps = catalog.capabilities
    assert caps.field_type("profit") == "numeric"
    assert caps.field_type("item") == "text"
    assert caps.field_type("colour") is None


def test_clarification_lookup(catalog):
    assert catalog.clarification("ambiguous_item").question == "Which item are you asking about?"
    assert catalog.clarification("nope") is None


def test_patterns_list_for_api(catalog):
    listed = catalog.get_patterns_list()
    assert listed[0]["key"] == "top_items"
    assert listed[0]["default_limit"] == 10


def test_item_dictionary_loads():
    items = load_item_dictionary()
    assert "abyssal whip" in items.items
    assert items.abbreviations["dscim"] == "dragon scimitar"


def test_catalog_from_path(tmp_path):
    path = tmp_path / "patterns.yml"
    path.write_text(yaml.safe_dump(_minimal()))
    assert load_catalog(path).get_intents() == ["profit_analysis"]


# ── 2. Validation ────────────────────────────────────────

def test_minimal_catalog_uses_defaults():
    catalog = parse_catalog(_minimal())
    assert catalog.patterns["p"].examples == ("total profit",)
    assert catalog.builder.confirmation_threshold == 0.65
    assert catalog.extraction.no_limit.search("show all my flips")


@pytest.mark.parametrize("raw, fragment", [
    ([], "must be a mapping"),
    (_minimal(version=2), "unsupported catalog version"),
    ({"patterns": {}}, "at least one pattern"),
    ({"patterns": {"p": {"examples": ["x"]}}}, "'intent' is required"),
    ({"patterns": {"p": {"intent": "x"}}}, "at least one example"),
    ({"patterns": {"p": {"intent": "x", "examples": ["x"], "default_spec": {"limit": -1}}}}, "default_spec"),
    (_minimal(extraction_patterns={"time_ranges": {"last_decade": ["x"]}}), "unknown key 'last_decade'"),
    (_minimal(extraction_patterns={"limits": [{"pattern": "(unclosed"}]}), "invalid regex"),
    (_minimal(builder={"limited_intents": ["roi_analysis"]}), "no entry in default_limits"),
    (_minimal(capabilities={"filter_fields": {"blob": ["x"]}}), "unknown type 'blob'"),
    (_minimal(clarifications=[{"trigger": "vibes"}]), "unknown trigger 'vibes'"),
])
def test_invalid_catalogs(raw, fragment):
    with pytest.raises(CatalogError, match=fragment):
        parse_catalog(raw)


def test_all_errors_reported_together():
    raw = _minimal(version=3, clarifications=[{"trigger": "vibes"}])
    with pytest.raises(CatalogError) as exc:
        parse_catalog(raw)
    assert "version" in str(exc.value)
    assert "vibes" in str(exc.value)


def test_invalid_yaml_file(tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("patterns: [unclosed")
    with pytest.raises(CatalogError, match="not valid YAML"):
        load_catalog(path)


def test_item_dictionary_requires_items():
    with pytest.raises(CatalogError):
        parse_item_dictionary({"abbreviations": {"x": "y"}})


def test_item_dictionary_keys_lowercased():
    d = parse_item_dictionary({"items": ["Coal"], "abbreviations": {"DSCIM": "dragon scimitar"}})
    assert d.abbreviations == {"dscim": "dragon scimitar"}


# ── 3. Phrase matching ───────────────────────────────────

@pytest.mark.parametrize("text, matches", [
    ("best flips ever", True),
    ("everything", False),
    ("forever", False),
])
def test_phrase_regex_word_boundaries(text, matches):
    assert bool(phrase_regex("ever").search(text)) is matches
