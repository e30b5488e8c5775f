"""
STRATEGY-NLP Tests: Trading Pattern Library

Node ID: tests.unit.test_pattern_library
Graph Link: tested_by → knowledge.pattern_library

Tests cover:
- Keyword / indicator / condition overlap scoring
- Match threshold and ordering
- Order-insensitive, TTL-bounded memoisation
- Search filters and lookup helpers
- Recommendations by user preferences
"""

from __future__ import annotations

import pytest

from config.settings import CacheConfig
from src.knowledge.models import PatternPreferences, PatternSearchOptions
from src.knowledge.pattern_data import MEAN_REVERSION_PATTERNS
from src.knowledge.pattern_library import MATCH_THRESHOLD, PatternMatcher, TradingPatterns


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _make_library(clock: _FakeClock | None = None) -> TradingPatterns:
    return TradingPatterns(cache_config=CacheConfig(), clock=clock)


class TestPatternMatcher:
    def test_rsi_scoring(self):
        matcher = PatternMatcher(MEAN_REVERSION_PATTERNS, "mean-reversion")
        best = matcher.find_matches(["rsi", "oversold"], ["rsi"])[0]
        assert best.pattern.id == "rsi_oversold_overbought"
        # 0.4 × 2/7 keywords + 0.4 × 1/1 indicators
        assert best.confidence == pytest.approx(0.4 * 2 / 7 + 0.4)
        assert best.strategy_type == "mean-reversion"
        assert set(best.matched_keywords) == {"rsi", "oversold"}
        assert best.matched_indicators == ("rsi",)

    def test_conditions_contribute(self):
        matcher = PatternMatcher(MEAN_REVERSION_PATTERNS, "mean-reversion")
        without = matcher.find_matches(["rsi"], ["rsi"])[0].confidence
        with_cond = matcher.find_matches(["rsi"], ["rsi"], ["rsi_below_30"])[0].confidence
        assert with_cond == pytest.approx(without + 0.2 / 4)

    def test_below_threshold_excluded(self):
        matcher = PatternMatcher(MEAN_REVERSION_PATTERNS, "mean-reversion")
        assert matcher.find_matches(["pizza"]) == []


class TestFindMatches:
    def test_all_matches_above_threshold_and_sorted(self):
        matches = _make_library().find_matches(["breakout", "resistance", "volume"], ["volume", "atr"])
        assert matches
        assert all(m.confidence > MATCH_THRESHOLD for m in matches)
        confidences = [m.confidence for m in matches]
        assert confidences == sorted(confidences, reverse=True)
        assert matches[0].pattern.id == "resistance_breakout"

    def test_order_insensitive(self):
        library = _make_library()
        a = library.find_matches(["rsi", "oversold"], ["rsi"])
        b = _make_library().find_matches(["oversold", "RSI"], ["rsi"])
        assert [m.pattern.id for m in a] == [m.pattern.id for m in b]
        assert [m.confidence for m in a] == [m.confidence for m in b]

    def test_idempotent_and_cached(self):
        library = _make_library()
        first = library.find_matches(["rsi", "oversold"], ["rsi"])
        second = library.find_matches(["oversold", "rsi"], ["rsi"])
        assert first == second
        assert library.get_statistics()["cache_size"] == 1

    def test_cache_expires(self):
        clock = _FakeClock()
        library = _make_library(clock)
        library.find_matches(["rsi"], ["rsi"])
        clock.now = CacheConfig().pattern_ttl_seconds + 1
        assert library.get_statistics()["cache_size"] == 0

    def test_strategy_type_filter(self):
        options = PatternSearchOptions(strategy_types=("breakout",))
        matches = _make_library().find_matches(["breakout", "momentum", "volume"], ["volume", "atr"], options=options)
        assert matches
        assert {m.strategy_type for m in matches} == {"breakout"}

    def test_min_success_rate_filter(self):
        options = PatternSearchOptions(min_success_rate=0.7)
        matches = _make_library().find_matches(["breakout", "volume"], ["volume", "atr", "rsi"], options=options)
        assert all(m.pattern.success_rate >= 0.7 for m in matches)

    def test_clear_cache(self):
        library = _make_library()
        library.find_matches(["rsi"], ["rsi"])
        library.clear_cache()
        assert library.get_statistics()["cache_size"] == 0


class TestLookups:
    def test_family_sizes(self):
        library = _make_library()
        assert len(library.get_patterns_by_strategy_type("trend-following")) == 5
        assert len(library.get_patterns_by_strategy_type("mean-reversion")) == 6
        assert len(library.get_patterns_by_strategy_type("breakout")) == 6
        assert library.get_patterns_by_strategy_type("scalping") == []
        assert len(library.get_all_patterns()) == 17

    def test_by_difficulty(self):
        patterns = _make_library().get_patterns_by_difficulty("beginner")
        assert {p.id for p in patterns} == {
            "ma_crossover_basic", "rsi_oversold_overbought", "resistance_breakout", "range_breakout",
        }

    def test_by_timeframe(self):
        patterns = _make_library().get_patterns_by_timeframe("1w")
        assert [p.id for p in patterns] == ["contrarian_sentiment"]

    def test_by_volatility(self):
        library = _make_library()
        assert [p.id for p in library.get_patterns_by_volatility("high")] == ["gap_breakout"]
        assert {p.id for p in library.get_patterns_by_volatility("low")} == {
            "resistance_breakout", "triangle_breakout", "volatility_breakout",
        }

    def test_by_success_rate(self):
        patterns = _make_library().get_patterns_by_success_rate(0.75)
        assert patterns
        assert all(p.success_rate >= 0.75 for p in patterns)

    def test_statistics(self):
        stats = _make_library().get_statistics()
        assert stats["total_patterns"] == 17
        assert stats["by_strategy_type"]["mean-reversion"] == 6
        assert 0.0 < stats["average_success_rate"] < 1.0


class TestRecommendations:
    def test_beginner_medium_risk(self):
        picks = _make_library().get_recommendations(
            PatternPreferences(experience_level="beginner", risk_tolerance="medium")
        )
        assert {p.id for p in picks} == {
            "ma_crossover_basic", "rsi_oversold_overbought", "resistance_breakout", "range_breakout",
        }
        rates = [p.success_rate for p in picks]
        assert rates == sorted(rates, reverse=True)

    def test_favorite_indicator_filter(self):
        picks = _make_library().get_recommendations(
            PatternPreferences(experience_level="beginner", favorite_indicators=("rsi",))
        )
        assert {p.id for p in picks} == {"rsi_oversold_overbought", "resistance_breakout", "range_breakout"}

    def test_low_risk_tolerance_excludes_high_risk(self):
        picks = _make_library().get_recommendations(
            PatternPreferences(experience_level="advanced", risk_tolerance="low")
        )
        assert all(p.risk_level == "low" for p in picks)
        assert [p.id for p in picks] == ["mean_reversion_pullback"]
