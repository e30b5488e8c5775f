"""
STRATEGY-NLP Trading Pattern Library

### ARCHITECTURAL CONTEXT
Node ID: knowledge.pattern_library

Keyword/indicator overlap scoring against the curated pattern tables in
pattern_data. One PatternMatcher per strategy family; TradingPatterns fans
out over all three, filters, and memoises results.

Scoring per pattern:
    A = matched input keywords   / len(pattern.keywords)
    B = matched input indicators / len(pattern.indicators)
    C = matched input conditions / len(pattern.entry_conditions)
    confidence = min(0.4·A + 0.4·B + 0.2·C, 1.0)

A term matches when it contains, or is contained in, any pattern term
(case-insensitive).

### CRITICAL INVARIANTS
1. Only matches with confidence > 0.3 are returned, sorted descending.
2. find_matches is order-insensitive: inputs are normalised (lower-cased,
   deduplicated, sorted) before scoring and before keying the cache.
3. Cached results expire after CacheConfig.pattern_ttl_seconds (5 min).
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Iterable, Sequence

from config.settings import CacheConfig
from src.core.models import Difficulty, StrategyType
from src.knowledge.models import (
    PatternMatch,
    PatternPreferences,
    PatternRisk,
    PatternSearchOptions,
    TradingPattern,
)
from src.knowledge.pattern_data import (
    BREAKOUT_PATTERNS,
    BREAKOUT_VOLATILITY_CONDITIONS,
    MEAN_REVERSION_PATTERNS,
    TREND_FOLLOWING_PATTERNS,
)
from src.utils.ttl_cache import TTLCache, make_cache_key

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.3
KEYWORD_WEIGHT = 0.4
INDICATOR_WEIGHT = 0.4
CONDITION_WEIGHT = 0.2

_RISK_ORDER: dict[str, int] = {"low": 0, "medium": 1, "high": 2}
_MAX_RECOMMENDATIONS = 10


def _normalize(terms: Iterable[str] | None) -> list[str]:
    return sorted({t.strip().lower() for t in terms or () if t and t.strip()})


def _overlaps(term: str, candidates: Sequence[str]) -> bool:
    return any(term in c.lower() or c.lower() in term for c in candidates)


def _score(inputs: list[str], targets: Sequence[str]) -> tuple[float, list[str]]:
    if not targets:
        return 0.0, []
    hits = [t for t in inputs if _overlaps(t, targets)]
    return len(hits) / len(targets), hits


# ─── Matcher ─────────────────────────────────────────────────────────

class PatternMatcher:
    """
    Scores one strategy family's patterns against extracted terms.

    Args:
        patterns: Static pattern table.
        strategy_type: Strategy type stamped onto every match.
    """

    def __init__(
        self,
        patterns: Sequence[TradingPattern],
        strategy_type: StrategyType,
    ) -> None:
        self._patterns = tuple(patterns)
        self._strategy_type = strategy_type

    @property
    def strategy_type(self) -> StrategyType:
        return self._strategy_type

    @property
    def patterns(self) -> tuple[TradingPattern, ...]:
        return self._patterns

    def find_matches(
        self,
        keywords: Iterable[str],
        indicators: Iterable[str] = (),
        conditions: Iterable[str] = (),
    ) -> list[PatternMatch]:
        kw = _normalize(keywords)
        ind = _normalize(indicators)
        cond = _normalize(conditions)

        matches: list[PatternMatch] = []
        for pattern in self._patterns:
            a, kw_hits = _score(kw, pattern.keywords)
            b, ind_hits = _score(ind, pattern.indicators)
            c, _ = _score(cond, pattern.entry_conditions)
            confidence = min(KEYWORD_WEIGHT * a + INDICATOR_WEIGHT * b + CONDITION_WEIGHT * c, 1.0)
            if confidence <= MATCH_THRESHOLD:
                continue
            matches.append(PatternMatch(
                pattern=pattern,
                confidence=confidence,
                matched_keywords=tuple(kw_hits),
                matched_indicators=tuple(ind_hits),
                strategy_type=self._strategy_type,
            ))

        matches.sort(key=lambda m: (-m.confidence, m.pattern.id))
        return matches

    def get_by_difficulty(self, difficulty: Difficulty) -> list[TradingPattern]:
        return [p for p in self._patterns if p.difficulty == difficulty]

    def get_by_risk_level(self, risk_level: PatternRisk) -> list[TradingPattern]:
        return [p for p in self._patterns if p.risk_level == risk_level]

    def get_by_timeframe(self, timeframe: str) -> list[TradingPattern]:
        return [p for p in self._patterns if timeframe in p.timeframes]

    def get_by_market_condition(self, condition: str) -> list[TradingPattern]:
        needle = condition.lower()
        return [p for p in self._patterns if any(needle in mc.lower() for mc in p.market_conditions)]

    def get_by_success_rate(self, min_rate: float) -> list[TradingPattern]:
        return [p for p in self._patterns if p.success_rate >= min_rate]


# ─── Facade ──────────────────────────────────────────────────────────

class TradingPatterns:
    """
    Unified access to every pattern family.

    Args:
        cache_config: TTL and size of the match cache.
        clock: Monotonic time source for the cache (injectable for tests).
        logger: Injected logger (defaults to the module logger).

    Usage:
        library = TradingPatterns()
        matches = library.find_matches(["rsi", "oversold"], ["rsi"], [])
        best = matches[0].pattern.id  # "rsi_oversold_overbought"
    """

    def __init__(
        self,
        cache_config: CacheConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        cfg = cache_config or CacheConfig()
        self._log = logger or logging.getLogger(__name__)
        self._matchers: dict[StrategyType, PatternMatcher] = {
            "trend-following": PatternMatcher(TREND_FOLLOWING_PATTERNS, "trend-following"),
            "mean-reversion": PatternMatcher(MEAN_REVERSION_PATTERNS, "mean-reversion"),
            "breakout": PatternMatcher(BREAKOUT_PATTERNS, "breakout"),
        }
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self._cache: TTLCache[tuple[PatternMatch, ...]] = TTLCache(
            cfg.pattern_ttl_seconds, cfg.max_entries, **cache_kwargs
        )

    def find_matches(
        self,
        keywords: Iterable[str],
        indicators: Iterable[str] = (),
        conditions: Iterable[str] = (),
        options: PatternSearchOptions | None = None,
    ) -> list[PatternMatch]:
        """Match across all families, apply filters, sort by confidence."""
        kw = _normalize(keywords)
        ind = _normalize(indicators)
        cond = _normalize(conditions)
        key = make_cache_key(
            keywords=kw,
            indicators=ind,
            conditions=cond,
            options=options.model_dump() if options else None,
        )
        cached = self._cache.get(key)
        if cached is not None:
            self._log.debug("Pattern cache hit (%d matches)", len(cached))
            return list(cached)

        matches: list[PatternMatch] = []
        for matcher in self._matchers.values():
            matches.extend(matcher.find_matches(kw, ind, cond))
        if options is not None:
            matches = self._apply_filters(matches, options)
        matches.sort(key=lambda m: (-m.confidence, m.pattern.id))

        self._cache.set(key, tuple(matches))
        self._log.debug(
            "Pattern match: %d keywords, %d indicators → %d matches", len(kw), len(ind), len(matches)
        )
        return matches

    @staticmethod
    def _apply_filters(matches: list[PatternMatch], options: PatternSearchOptions) -> list[PatternMatch]:
        result = matches
        if options.strategy_types:
            result = [m for m in result if m.strategy_type in options.strategy_types]
        if options.difficulty:
            result = [m for m in result if m.pattern.difficulty in options.difficulty]
        if options.risk_level:
            result = [m for m in result if m.pattern.risk_level in options.risk_level]
        if options.timeframes:
            wanted = set(options.timeframes)
            result = [m for m in result if wanted.intersection(m.pattern.timeframes)]
        if options.market_conditions:
            needles = [c.lower() for c in options.market_conditions]
            result = [
                m for m in result
                if any(n in mc.lower() for n in needles for mc in m.pattern.market_conditions)
            ]
        if options.min_success_rate is not None:
            result = [m for m in result if m.pattern.success_rate >= options.min_success_rate]
        if options.min_confidence is not None:
            result = [m for m in result if m.confidence >= options.min_confidence]
        return result

    # ── Lookups ──

    def get_all_patterns(self) -> list[TradingPattern]:
        return [p for matcher in self._matchers.values() for p in matcher.patterns]

    def get_patterns_by_strategy_type(self, strategy_type: StrategyType) -> list[TradingPattern]:
        matcher = self._matchers.get(strategy_type)
        return list(matcher.patterns) if matcher else []

    def get_patterns_by_difficulty(self, difficulty: Difficulty) -> list[TradingPattern]:
        return [p for m in self._matchers.values() for p in m.get_by_difficulty(difficulty)]

    def get_patterns_by_risk_level(self, risk_level: PatternRisk) -> list[TradingPattern]:
        return [p for m in self._matchers.values() for p in m.get_by_risk_level(risk_level)]

    def get_patterns_by_timeframe(self, timeframe: str) -> list[TradingPattern]:
        return [p for m in self._matchers.values() for p in m.get_by_timeframe(timeframe)]

    def get_patterns_by_market_condition(self, condition: str) -> list[TradingPattern]:
        return [p for m in self._matchers.values() for p in m.get_by_market_condition(condition)]

    def get_patterns_by_success_rate(self, min_rate: float) -> list[TradingPattern]:
        return [p for m in self._matchers.values() for p in m.get_by_success_rate(min_rate)]

    def get_patterns_by_volatility(self, level: PatternRisk) -> list[TradingPattern]:
        """Breakout patterns suited to a volatility regime (low/medium/high)."""
        fragments = BREAKOUT_VOLATILITY_CONDITIONS.get(level, ())
        return [
            p for p in self._matchers["breakout"].patterns
            if any(f in mc for f in fragments for mc in p.market_conditions)
        ]

    def get_recommendations(self, preferences: PatternPreferences) -> list[TradingPattern]:
        """Patterns suited to a user's level, risk tolerance, timeframes and favourite indicators."""
        tolerance = _RISK_ORDER[preferences.risk_tolerance]
        timeframes = set(preferences.preferred_timeframes)
        favorites = [f.lower() for f in preferences.favorite_indicators]

        picks = []
        for pattern in self.get_all_patterns():
            if pattern.difficulty != preferences.experience_level:
                continue
            if _RISK_ORDER[pattern.risk_level] > tolerance:
                continue
            if timeframes and not timeframes.intersection(pattern.timeframes):
                continue
            if favorites and not any(f in ind.lower() for f in favorites for ind in pattern.indicators):
                continue
            picks.append(pattern)

        picks.sort(key=lambda p: -p.success_rate)
        return picks[:_MAX_RECOMMENDATIONS]

    # ── Housekeeping ──

    def get_statistics(self) -> dict:
        patterns = self.get_all_patterns()
        by_type = {st: len(m.patterns) for st, m in self._matchers.items()}
        return {
            "total_patterns": len(patterns),
            "by_strategy_type": by_type,
            "by_difficulty": dict(Counter(p.difficulty for p in patterns)),
            "by_risk_level": dict(Counter(p.risk_level for p in patterns)),
            "average_success_rate": (
                sum(p.success_rate for p in patterns) / len(patterns) if patterns else 0.0
            ),
            "cache_size": len(self._cache),
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        self._log.debug("Pattern cache cleared")
