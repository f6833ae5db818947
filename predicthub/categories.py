"""
Keyword-based category inference for market questions.

The patterns are tried in a fixed priority order and the first hit wins:

  politics -> crypto -> sports -> technology -> science -> economics
  -> entertainment -> world -> other

A question mentioning both "election" and "bitcoin" is politics because the
politics test runs first. The order is part of the contract and must not be
reshuffled. Patterns match substrings, not whole words ("ai" hits "said").
"""

from __future__ import annotations

import re

from predicthub.models import Category

CATEGORY_PATTERNS: list[tuple[Category, re.Pattern[str]]] = [
    (Category.POLITICS, re.compile(
        r"trump|biden|election|president|congress|senate|governor|democrat|republican|vote|polling|political"
    )),
    (Category.CRYPTO, re.compile(
        r"bitcoin|ethereum|crypto|btc|eth|token|blockchain|defi|nft"
    )),
    (Category.SPORTS, re.compile(
        r"nfl|nba|mlb|soccer|football|basketball|baseball|tennis|olympics|championship|super bowl|world cup"
    )),
    (Category.TECHNOLOGY, re.compile(
        r"ai|artificial intelligence|gpt|openai|google|apple|microsoft|tech|software|startup"
    )),
    (Category.SCIENCE, re.compile(
        r"climate|science|research|study|nasa|space|physics|biology|medicine|vaccine|virus"
    )),
    (Category.ECONOMICS, re.compile(
        r"gdp|inflation|fed|interest rate|stock|market|economy|recession|unemployment|trade"
    )),
    (Category.ENTERTAINMENT, re.compile(
        r"movie|oscar|emmy|grammy|album|song|celebrity|netflix|disney|entertainment|tv|show"
    )),
    (Category.WORLD, re.compile(
        r"war|ukraine|russia|china|country|international|global|nation|treaty"
    )),
]


def infer_category(question: str, tags: list[str] | None = None) -> Category:
    """Map a question (plus optional free-text tags) to one of the nine categories. Never raises."""
    q = (question or "").lower()
    t = " ".join(str(tag).lower() for tag in (tags or []))
    combined = f"{q} {t}"

    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(combined):
            return category
    return Category.OTHER
