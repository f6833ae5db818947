"""Tests for keyword category inference and its fixed priority order."""

import pytest

from predicthub.categories import CATEGORY_PATTERNS, infer_category
from predicthub.models import Category


class TestInferCategory:
    @pytest.mark.parametrize("question,expected", [
        ("Will Trump win the election?", Category.POLITICS),
        ("Will Bitcoin hit $100k?", Category.CRYPTO),
        ("Who wins the Super Bowl?", Category.SPORTS),
        ("Will OpenAI release GPT-5?", Category.TECHNOLOGY),
        ("Will NASA land on Mars?", Category.SCIENCE),
        ("Will the Fed cut interest rates?", Category.ECONOMICS),
        ("Which movie will win the Oscar?", Category.ENTERTAINMENT),
        ("Will Russia invade Finland?", Category.WORLD),
        ("Will it snow in Denver?", Category.OTHER),
    ])
    def test_each_category(self, question, expected):
        assert infer_category(question) == expected

    def test_politics_beats_crypto(self):
        assert infer_category("Will Bitcoin price affect the election?") == Category.POLITICS

    def test_case_insensitive(self):
        assert infer_category("BITCOIN TO THE MOON") == Category.CRYPTO

    def test_substring_match_not_word_match(self):
        # "ai" inside "rain"
        assert infer_category("Will it rain tomorrow?") == Category.TECHNOLOGY

    def test_tags_participate(self):
        assert infer_category("Who will be the next CEO?") == Category.OTHER
        assert infer_category("Who will be the next CEO?", ["Elections"]) == Category.POLITICS

    def test_empty_and_none_never_raise(self):
        assert infer_category("") == Category.OTHER
        assert infer_category(None) == Category.OTHER
        assert infer_category("", []) == Category.OTHER

    def test_deterministic(self):
        q = "Will the NBA championship go to game 7?"
        assert infer_category(q) == infer_category(q)


class TestPriorityOrder:
    def test_pattern_order_is_pinned(self):
        assert [c for c, _ in CATEGORY_PATTERNS] == [
            Category.POLITICS,
            Category.CRYPTO,
            Category.SPORTS,
            Category.TECHNOLOGY,
            Category.SCIENCE,
            Category.ECONOMICS,
            Category.ENTERTAINMENT,
            Category.WORLD,
        ]

    def test_other_has_no_pattern(self):
        assert Category.OTHER not in [c for c, _ in CATEGORY_PATTERNS]
