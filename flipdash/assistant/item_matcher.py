"""
Fuzzy item matcher -- maps what players type to canonical item names.

Handles the ways items are actually written in questions:
  - full names, singular or plural ("dragon bone" / "dragon bones")
  - player abbreviations from the dictionary ("dscim", "bcp", "nats")
  - shortened or apostrophe-less forms ("blowpipe", "dharoks axe")
  - small typos ("dragon scimitr"), via windowed edit-distance similarity

Results come back in the order they appear in the text.  Nothing here
guarantees a single match; callers get zero, one or many candidates.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from flipdash.assistant.similarity import edit_similarity
from flipdash.governance.catalog_loader import ItemDictionary, load_item_dictionary
from flipdash.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FUZZY_THRESHOLD = 0.85
# Windows shorter than this are never fuzzy-matched ("coat" vs "coal").
_MIN_FUZZY_CHARS = 6

_APOSTROPHES_RE = re.compile(r"['‘’`]")
_SEPARATORS_RE = re.compile(r"[-_\u2013\u2014/]+")
_BRACKETS_RE = re.compile(r"[()\[\]]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")
_LEADING_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+")


@dataclass(frozen=True)
class ItemHint:
    """One item reference found in a query."""
    fragment: str      # text as it appeared (normalised)
    item: str          # canonical name
    source: str        # name | abbreviation | pattern | fuzzy
    confidence: float
    position: int      # character offset in the normalised query


@dataclass(frozen=True)
class ItemMatch:
    item: str
    score: float


def normalize_item_name(name: str) -> str:
    """Lower-case, drop apostrophes/brackets/punctuation, unify separators."""
    text = name.lower().strip()
    text = _APOSTROPHES_RE.sub("", text)
    text = _SEPARATORS_RE.sub(" ", text)
    text = _BRACKETS_RE.sub(" ", text)
    text = text.replace("&", " and ")
    text = _NON_WORD_RE.sub(" ", text)
    text = _SPACES_RE.sub(" ", text).strip()
    return _LEADING_ARTICLE_RE.sub("", text)


def _plural_tolerant(phrase: str) -> re.Pattern:
    """Regex for *phrase* that also accepts (or drops) a trailing plural 's'."""
    stem = phrase[:-1] if phrase.endswith("s") and not phrase.endswith("ss") else phrase
    return re.compile(r"(?<!\w)" + re.escape(stem) + r"(?:s|es)?(?!\w)")


class ItemMatcher:
    """Pure lookup over a static item dictionary."""

    def __init__(self, dictionary: ItemDictionary, fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD):
        self.fuzzy_threshold = fuzzy_threshold
        self._items: dict[str, str] = {normalize_item_name(i): i for i in dictionary.items}
        self._aliases: dict[str, str] = {
            normalize_item_name(k): v for k, v in dictionary.abbreviations.items()
        }
        self._patterns: dict[str, str] = {
            normalize_item_name(k): v for k, v in dictionary.name_patterns.items()
        }
        # Longest phrases first so "bandos legs" wins over "legs".
        self._name_res = [
            (norm, _plural_tolerant(norm))
            for norm in sorted(self._items, key=len, reverse=True)
        ]
        self._pattern_res = [
            (norm, _plural_tolerant(norm))
            for norm in sorted(self._patterns, key=len, reverse=True)
        ]
        self._max_alias_words = max((len(a.split()) for a in self._aliases), default=1)

    @property
    def items(self) -> list[str]:
        return list(self._items.values())

    # ── Single-fragment lookups ─────────────────────────

    def expand(self, fragment: str) -> str | None:
        """Resolve an abbreviation or name pattern to its canonical name."""
        norm = normalize_item_name(fragment)
        for candidate in (norm, norm[:-1] if norm.endswith("s") else None):
            if not candidate:
                continue
            if candidate in self._aliases:
                return self._aliases[candidate]
            if candidate in self._patterns:
                return self._patterns[candidate]
            if candidate in self._items:
                return self._items[candidate]
        return None

    def find_matches(self, fragment: str, max_results: int = 5, min_score: float = 0.5) -> list[ItemMatch]:
        """Rank dictionary items against *fragment* (containment, then edit similarity)."""
        norm = normalize_item_name(fragment)
        if not norm:
            return []
        expanded = self.expand(norm)
        scored: list[ItemMatch] = []
        for item_norm, display in self._items.items():
            if expanded and normalize_item_name(expanded) == item_norm:
                score = 1.0
            elif norm == item_norm:
                score = 1.0
            elif norm in item_norm or item_norm in norm:
                score = 0.9 * min(len(norm), len(item_norm)) / max(len(norm), len(item_norm)) + 0.1
            else:
                score = edit_similarity(norm, item_norm)
            if score >= min_score:
                scored.append(ItemMatch(item=display, score=round(score, 3)))
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:max_results]

    # ── Query-level extraction ──────────────────────────

    def extract_hints(self, query: str) -> list[ItemHint]:
        """Find every item reference in *query*, ordered by position."""
        text = normalize_item_name(query)
        if not text:
            return []

        hints: list[ItemHint] = []
        claimed: list[tuple[int, int]] = []

        def _free(start: int, end: int) -> bool:
            return all(end <= s or start >= e for s, e in claimed)

        def _claim(start: int, end: int, fragment: str, item: str, source: str, confidence: float) -> None:
            claimed.append((start, end))
            hints.append(ItemHint(fragment, item, source, confidence, start))

        # 1. Full item names (longest first), plural tolerant
        for norm, regex in self._name_res:
            for m in regex.finditer(text):
                if _free(m.start(), m.end()):
                    _claim(m.start(), m.end(), m.group(0), self._items[norm], "name", 1.0)

        # 2. Name patterns ("blowpipe" -> "toxic blowpipe")
        for norm, regex in self._pattern_res:
            for m in regex.finditer(text):
                if _free(m.start(), m.end()):
                    _claim(m.start(), m.end(), m.group(0), self._patterns[norm], "pattern", 0.95)

        # 3. Abbreviations over word n-grams, longest n-gram first
        tokens = [(m.group(0), m.start(), m.end()) for m in re.finditer(r"\S+", text)]
        for size in range(self._max_alias_words, 0, -1):
            for i in range(len(tokens) - size + 1):
                window = tokens[i:i + size]
                start, end = window[0][1], window[-1][2]
                if not _free(start, end):
                    continue
                phrase = " ".join(t[0] for t in window)
                item = self._lookup_alias(phrase)
                if item:
                    _claim(start, end, phrase, item, "abbreviation", 0.9)

        # 4. Typos: same-width word windows against each remaining item name
        for norm, display in self._items.items():
            if any(h.item == display for h in hints):
                continue
            size = len(norm.split())
            for i in range(len(tokens) - size + 1):
                window = tokens[i:i + size]
                start, end = window[0][1], window[-1][2]
                phrase = " ".join(t[0] for t in window)
                if len(phrase) < _MIN_FUZZY_CHARS or not _free(start, end):
                    continue
                sim = edit_similarity(phrase, norm)
                if sim >= self.fuzzy_threshold:
                    _claim(start, end, phrase, display, "fuzzy", round(sim, 3))
                    break

        hints.sort(key=lambda h: h.position)
        return hints

    def extract_items(self, query: str) -> list[str]:
        """Canonical item names mentioned in *query*, deduplicated, in order."""
        return list(dict.fromkeys(h.item for h in self.extract_hints(query)))

    def like_patterns(self, item: str) -> list[str]:
        """SQL ``LIKE`` predicates for *item*, best candidate first."""
        variants: Iterable[str] = (
            self.expand(item) or item,
            normalize_item_name(item),
            item.lower(),
            *(m.item for m in self.find_matches(item, max_results=3, min_score=0.8)),
        )
        patterns: list[str] = []
        for v in variants:
            escaped = v.lower().replace("'", "''")
            clause = f"item LIKE '%{escaped}%'"
            if clause not in patterns:
                patterns.append(clause)
        return patterns

    # ── Internals ───────────────────────────────────────

    def _lookup_alias(self, phrase: str) -> str | None:
        if phrase in self._aliases:
            return self._aliases[phrase]
        if phrase.endswith("s") and phrase[:-1] in self._aliases:
            return self._aliases[phrase[:-1]]
        return None


_matcher: ItemMatcher | None = None


def get_item_matcher() -> ItemMatcher:
    """Return the shared matcher built from the on-disk item dictionary."""
    global _matcher
    if _matcher is None:
        _matcher = ItemMatcher(load_item_dictionary())
        logger.info("Item matcher ready: %d items, %d abbreviations",
                    len(_matcher.items), len(_matcher._aliases))
    return _matcher
