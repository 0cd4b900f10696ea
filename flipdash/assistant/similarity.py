"""
String similarity helpers shared by the item matcher, the intent
classifier and the spec builder.

No external dependencies -- pure Python implementation.
"""
from __future__ import annotations

# Containment counts as a word match only when the shorter word is at least
# this long ("profit" in "profitable" yes, "a" in "flips" no).
_MIN_CONTAINMENT_LEN = 4
# Two-letter words are all one edit apart ("is"/"vs"), so they must match exactly.
_MIN_EDIT_LEN = 3


def levenshtein(a: str, b: str) -> int:
    """Compute Levenshtein edit distance between two strings."""
    if len(a) < len(b):
        return levenshtein(b, a)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a):
        curr = [i + 1]
        for j, cb in enumerate(b):
            cost = 0 if ca == cb else 1
            curr.append(min(curr[j] + 1, prev[j + 1] + 1, prev[j] + cost))
        prev = curr
    return prev[-1]


def edit_similarity(a: str, b: str) -> float:
    """Normalised similarity based on Levenshtein distance (1.0 = identical)."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / max_len


def tokenize(text: str) -> list[str]:
    """Split text into lowercase whitespace-separated words."""
    return [t for t in text.lower().replace("_", " ").split() if t]


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard similarity between two token sets."""
    if not a and not b:
        return 1.0
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def words_equivalent(a: str, b: str) -> bool:
    """Fuzzy word equality: identical, one edit apart, or long-enough containment."""
    if a == b:
        return True
    shorter = min(len(a), len(b))
    if shorter >= _MIN_CONTAINMENT_LEN and (a in b or b in a):
        return True
    if shorter < _MIN_EDIT_LEN:
        return False
    return levenshtein(a, b) <= 1


def word_overlap(query: str, example: str) -> float:
    """Fraction of query words with an equivalent word in *example*.

    The denominator is the longer of the two word counts, so a short
    example cannot score highly against a long query or vice versa.
    """
    q_words = tokenize(query)
    e_words = tokenize(example)
    if not q_words or not e_words:
        return 0.0
    matched = sum(
        1 for qw in q_words if any(words_equivalent(qw, ew) for ew in e_words)
    )
    return matched / max(len(q_words), len(e_words))
