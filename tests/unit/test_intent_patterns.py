"""
STRATEGY-NLP Tests: Intent Pattern Catalogue

Node ID: tests.unit.test_intent_patterns
Graph Link: tested_by → nlp.intent_patterns

Tests cover:
- Element lookup through the element keyword table
- Keyword / required / optional scoring
- Threshold and ordering of matches
"""

from __future__ import annotations

import pytest

from src.nlp.intent_patterns import (
    INTENT_PATTERNS,
    IntentPattern,
    IntentPatternMatcher,
    has_element,
)


@pytest.fixture
def matcher() -> IntentPatternMatcher:
    return IntentPatternMatcher()


class TestHasElement:
    def test_category_element(self):
        assert has_element("indicator:rsi", ["rsi"], "")
        assert has_element("condition:level", [], "price is below support")

    def test_bare_word(self):
        assert has_element("volume", [], "with volume confirmation")
        assert not has_element("volume", ["rsi"], "rsi")

    def test_unknown_kind(self):
        assert not has_element("indicator:ichimoku", ["rsi"], "rsi")

    def test_substring_of_token(self):
        # "buys" contains "buy"
        assert has_element("action:buy_sell", ["buys"], "")


class TestScoring:
    def test_rsi_request(self, matcher):
        matches = matcher.find_matches(["buy", "rsi", "below", "30"], "buy when rsi is below 30")
        best = matches[0]
        assert best.pattern.id == "rsi_oversold_overbought"
        # (0.6 × 2/6 + 0.4 × 3/3) × 0.95
        assert best.confidence == pytest.approx(0.57)
        assert best.matched_keywords == ["rsi", "30"]
        assert best.missing_elements == []

    def test_macd_beats_ma_crossover(self, matcher):
        text = "buy when macd crosses above signal line"
        matches = matcher.find_matches(["buy", "when", "macd", "crosses above"], text)
        ids = [m.pattern.id for m in matches]
        assert ids[0] == "macd_momentum"
        assert "ma_crossover" in ids

    def test_missing_elements_reported(self, matcher):
        pattern = next(p for p in INTENT_PATTERNS if p.id == "rsi_oversold_overbought")
        match = matcher.score(pattern, ["rsi"], "rsi")
        assert match.missing_elements == ["condition:level", "action:buy_sell"]

    def test_optional_bonus(self, matcher):
        pattern = next(p for p in INTENT_PATTERNS if p.id == "price_breakout")
        plain = matcher.score(pattern, ["buy", "breakout"], "buy breakout")
        with_volume = matcher.score(pattern, ["buy", "breakout"], "buy breakout volume")
        assert with_volume.confidence == pytest.approx(plain.confidence + 0.2 * 0.5 * 0.85)

    def test_confidence_capped(self):
        pattern = IntentPattern(
            id="x", name="X", strategy_type="custom", keywords=("a",),
            required_elements=("a",), optional_elements=("a",), confidence=1.0,
        )
        assert IntentPatternMatcher.score(pattern, ["a"], "a").confidence == 1.0


class TestFindMatches:
    def test_sorted_and_above_threshold(self, matcher):
        matches = matcher.find_matches(["buy", "rsi", "oversold", "bounce"], "buy rsi oversold bounce")
        confidences = [m.confidence for m in matches]
        assert confidences == sorted(confidences, reverse=True)
        assert all(c > 0.3 for c in confidences)

    def test_irrelevant_text(self, matcher):
        assert matcher.find_matches([], "hello there") == []

    def test_custom_threshold(self, matcher):
        tokens, text = ["buy", "rsi", "below", "30"], "buy when rsi is below 30"
        assert matcher.find_matches(tokens, text, min_confidence=0.6) == []

    def test_case_insensitive(self, matcher):
        upper = matcher.find_matches(["BUY", "RSI"], "BUY RSI BELOW 30")
        lower = matcher.find_matches(["buy", "rsi"], "buy rsi below 30")
        assert [m.confidence for m in upper] == [m.confidence for m in lower]


class TestCatalogue:
    def test_eleven_archetypes(self, matcher):
        assert len(matcher.get_all_patterns()) == 11

    def test_by_type(self, matcher):
        ids = [p.id for p in matcher.get_patterns_by_type("mean-reversion")]
        assert ids == ["rsi_oversold_overbought", "bollinger_bands_reversion", "mean_reversion_general"]

    def test_add_pattern(self, matcher):
        matcher.add_pattern(IntentPattern(
            id="pairs", name="Pairs", strategy_type="arbitrage", keywords=("spread",),
            required_elements=("action:buy_sell",), optional_elements=(), confidence=0.8,
        ))
        best = matcher.find_matches(["buy", "spread"], "buy the spread")[0]
        assert best.pattern.id == "pairs"
