"""
Term extraction and Jaccard similarity for market questions.

Two stop-word sets: grouping also drops comparison and outcome filler
("than", "more", "win", ...), arbitrage matching keeps those words.
"""

from __future__ import annotations

import re

from predicthub.config import MIN_TERM_LENGTH

GROUPING_STOP_WORDS: frozenset[str] = frozenset({
    "will", "the", "be", "to", "in", "on", "at", "by", "for", "of", "a", "an",
    "is", "are", "or", "and", "yes", "no", "before", "after", "during", "when",
    "what", "how", "who", "where", "which", "this", "that", "than", "more",
    "less", "if", "has", "have", "do", "does", "did", "win", "winning", "wins",
})

ARBITRAGE_STOP_WORDS: frozenset[str] = frozenset({
    "will", "the", "be", "to", "in", "on", "at", "by", "for", "of", "a", "an",
    "is", "are", "or", "and", "yes", "no", "before", "after", "during", "when",
    "what", "how", "who", "where", "which",
})

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, drop everything outside [a-z0-9 whitespace], collapse whitespace runs."""
    s = _NON_ALNUM.sub("", (text or "").lower())
    return _WHITESPACE.sub(" ", s).strip()


def extract_key_terms(text: str, stop_words: frozenset[str] = GROUPING_STOP_WORDS) -> list[str]:
    """
    Return the meaningful terms of *text* in source order.

    Duplicates are kept: group naming counts term occurrences.
    """
    normalized = normalize_text(text)
    return [
        word for word in normalized.split(" ")
        if len(word) >= MIN_TERM_LENGTH and word not in stop_words
    ]


def similarity(terms_a: list[str], terms_b: list[str]) -> float:
    """Jaccard index of the two term sets. 0.0 when either side is empty."""
    if not terms_a or not terms_b:
        return 0.0
    set_a = set(terms_a)
    set_b = set(terms_b)
    return len(set_a & set_b) / len(set_a | set_b)
