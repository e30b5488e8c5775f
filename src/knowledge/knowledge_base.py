"""
STRATEGY-NLP Knowledge Base

### ARCHITECTURAL CONTEXT
Node ID: knowledge.knowledge_base

Single facade over the pattern library, indicator database and risk engine.
Adds curated indicator combinations, short educational notes, cross-source
search and ranked recommendations.

Query confidence:
    0.5 + 0.3·mean(pattern confidence) + min(0.1·len(indicators), 0.2)
        + 0.1 (strategy type) + 0.05 (difficulty) + 0.05 (timeframe)
    capped at 1.0

### CRITICAL INVARIANTS
1. query() results are cached for CacheConfig.knowledge_ttl_seconds keyed by
   canonical JSON of the query (order-insensitive).
2. Risk assessments are never cached; they are attached after the cache
   lookup whenever the query carries risk_parameters.
3. At most 5 recommendations per result.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

from config.settings import CacheConfig
from src.core.models import Difficulty, StrategyType
from src.knowledge.indicators import IndicatorDatabase
from src.knowledge.models import (
    CombinationFilters,
    CompatibilityAnalysis,
    EducationalContent,
    IndicatorAnalysis,
    IndicatorCombination,
    IndicatorKnowledge,
    IndicatorSuggestion,
    KnowledgeQuery,
    KnowledgeRecommendation,
    KnowledgeResult,
    ParameterGuidance,
    ParameterOptimization,
    PatternMatch,
    PatternPreferences,
    PatternSearchOptions,
    RiskAssessment,
    RiskParameters,
    RiskRecommendation,
    SearchResults,
    StrategyKnowledge,
    SuitabilityContext,
    TechnicalIndicator,
    UserProfile,
)
from src.knowledge.pattern_library import TradingPatterns
from src.knowledge.risk_rules import RiskManagementEngine
from src.utils.ttl_cache import TTLCache, make_cache_key

logger = logging.getLogger(__name__)

_MAX_RECOMMENDATIONS = 5
_MAX_QUERY_INDICATORS = 10


# ─── Curated Content ─────────────────────────────────────────────────

INDICATOR_COMBINATIONS: tuple[IndicatorCombination, ...] = (
    IndicatorCombination(
        id="rsi_bollinger",
        name="RSI + Bollinger Bands",
        indicators=("rsi", "bollinger_bands"),
        strategy_types=("mean-reversion",),
        description="Combine RSI oversold/overbought with Bollinger Band extremes",
        synergy="RSI provides momentum confirmation while BB shows volatility extremes",
        difficulty="beginner",
        effectiveness=0.75,
    ),
    IndicatorCombination(
        id="macd_ema",
        name="MACD + EMA",
        indicators=("macd", "ema"),
        strategy_types=("trend-following", "momentum"),
        description="Use MACD for momentum signals with EMA for trend confirmation",
        synergy="MACD provides momentum signals while EMA confirms trend direction",
        difficulty="intermediate",
        effectiveness=0.80,
    ),
    IndicatorCombination(
        id="stochastic_sma",
        name="Stochastic + SMA",
        indicators=("stochastic", "sma"),
        strategy_types=("mean-reversion", "scalping"),
        description="Stochastic for timing with SMA for trend filter",
        synergy="Stochastic provides precise entry timing while SMA filters trend",
        difficulty="intermediate",
        effectiveness=0.70,
    ),
    IndicatorCombination(
        id="triple_ma",
        name="Triple Moving Average",
        indicators=("sma", "ema"),
        strategy_types=("trend-following",),
        description="Use three different period moving averages for trend analysis",
        synergy="Multiple timeframes provide comprehensive trend analysis",
        difficulty="advanced",
        effectiveness=0.78,
    ),
)

_STRATEGY_PRIMERS: dict[str, tuple[str, tuple[str, ...], tuple[str, ...]]] = {
    "trend-following": (
        "Trend-following strategies buy strength and sell weakness, staying in a position "
        "while a moving-average or momentum filter confirms the trend.",
        ("Buy when the 20 EMA crosses above the 50 EMA", "Exit when price closes below the 50 EMA"),
        ("Let winners run", "Expect frequent small losses in ranges", "Use trailing stops"),
    ),
    "mean-reversion": (
        "Mean-reversion strategies fade stretched moves and bet on a return to an average, "
        "typically using oscillators or volatility bands to define the extremes.",
        ("Buy when RSI drops below 30", "Sell at the upper Bollinger Band"),
        ("Avoid strong trends", "Take profits near the mean", "Keep stops tight"),
    ),
    "breakout": (
        "Breakout strategies enter when price leaves a consolidation, expecting volatility "
        "expansion in the breakout direction.",
        ("Buy a close above resistance on high volume", "Trade a Bollinger squeeze release"),
        ("Confirm with volume", "Place stops back inside the range", "Beware false breakouts"),
    ),
    "momentum": (
        "Momentum strategies buy instruments that are accelerating and exit when momentum fades.",
        ("Buy when MACD crosses above its signal line", "Exit on bearish RSI divergence"),
        ("Enter early in the move", "Watch for divergence", "Scale out into strength"),
    ),
    "scalping": (
        "Scalping strategies take many small, fast trades on low timeframes where execution "
        "costs dominate the edge.",
        ("Buy stochastic crosses on the 1m chart", "Exit after a fixed 0.3% target"),
        ("Trade liquid sessions only", "Control spread and slippage", "Cut losers immediately"),
    ),
    "arbitrage": (
        "Arbitrage strategies exploit price differences between related instruments or venues.",
        ("Buy the cheaper exchange and sell the richer one",),
        ("Speed matters", "Fees can erase the edge"),
    ),
    "custom": (
        "Custom strategies combine indicators and rules freely; validate them thoroughly before use.",
        ("Combine an RSI filter with an EMA trend condition",),
        ("Backtest every rule", "Start with small size"),
    ),
}


def _educational_content(strategy_type: StrategyType) -> tuple[EducationalContent, ...]:
    content, examples, takeaways = _STRATEGY_PRIMERS[strategy_type]
    return (
        EducationalContent(
            id=f"education_{strategy_type}",
            title=f"{strategy_type} Strategy Basics",
            category="strategy",
            difficulty="beginner",
            content=content,
            examples=examples,
            related_topics=("risk management", "technical analysis"),
            key_takeaways=takeaways,
        ),
        EducationalContent(
            id="education_risk_basics",
            title="Risk Management Basics",
            category="risk",
            difficulty="beginner",
            content="Size every position so a stop-out costs a small, fixed fraction of the account.",
            examples=("Risk 1-2% of the account per trade", "Always place a stop loss"),
            related_topics=("position sizing", "stop loss"),
            key_takeaways=("Never risk more than 2% per trade", "Define the exit before the entry"),
        ),
    )


# ─── Facade ──────────────────────────────────────────────────────────

class KnowledgeBase:
    """
    Unified knowledge access for the NLP pipeline, CLI and external callers.

    Args:
        patterns: Pattern library (built from cache_config when omitted).
        indicators: Indicator database.
        risk_engine: Risk rule engine.
        cache_config: TTL and size for the query cache.
        clock: Monotonic time source for the caches (injectable for tests).
        logger: Injected logger (defaults to the module logger).
    """

    def __init__(
        self,
        patterns: TradingPatterns | None = None,
        indicators: IndicatorDatabase | None = None,
        risk_engine: RiskManagementEngine | None = None,
        cache_config: CacheConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        cfg = cache_config or CacheConfig()
        self._log = logger or logging.getLogger(__name__)
        self._patterns = patterns or TradingPatterns(cfg, clock=clock, logger=self._log)
        self._indicators = indicators or IndicatorDatabase(logger=self._log)
        self._risk = risk_engine or RiskManagementEngine(logger=self._log)
        cache_kwargs = {"clock": clock} if clock is not None else {}
        self._cache: TTLCache[KnowledgeResult] = TTLCache(
            cfg.knowledge_ttl_seconds, cfg.max_entries, **cache_kwargs
        )
        self._queries = 0

        self._log.info(
            "Knowledge base ready: %d patterns, %d indicators, %d risk rules, %d combinations",
            len(self._patterns.get_all_patterns()),
            len(self._indicators.get_all_indicators()),
            self._risk.get_statistics()["total_rules"],
            len(INDICATOR_COMBINATIONS),
        )

    @property
    def patterns(self) -> TradingPatterns:
        return self._patterns

    @property
    def indicators(self) -> IndicatorDatabase:
        return self._indicators

    @property
    def risk_engine(self) -> RiskManagementEngine:
        return self._risk

    # ─── Query ───────────────────────────────────────────────────

    def query(self, query: KnowledgeQuery) -> KnowledgeResult:
        """
        Search patterns and indicators and build ranked recommendations.

        Returns:
            KnowledgeResult; risk_assessment is set only when the query
            carries risk_parameters and a strategy type.
        """
        start = time.perf_counter()
        self._queries += 1
        key = make_cache_key(**query.model_dump(exclude={"risk_parameters"}))

        result = self._cache.get(key)
        if result is None:
            result = self._run_query(query, start)
            self._cache.set(key, result)
        else:
            self._log.debug("Knowledge cache hit")

        if query.risk_parameters is not None:
            assessment = self._risk.assess_risk(query.strategy_type or "custom", query.risk_parameters)
            result = result.model_copy(update={"risk_assessment": assessment})
        return result

    def _run_query(self, query: KnowledgeQuery, start: float) -> KnowledgeResult:
        options = PatternSearchOptions(
            strategy_types=(query.strategy_type,) if query.strategy_type else None,
            difficulty=(query.difficulty,) if query.difficulty else None,
            risk_level=(query.risk_level,) if query.risk_level else None,
            timeframes=(query.timeframe,) if query.timeframe else None,
            min_confidence=0.3,
        )
        patterns = self._patterns.find_matches(query.keywords, query.indicators, query.conditions, options)
        indicators = self._relevant_indicators(query)
        recommendations = self._recommendations(query, patterns, indicators)
        confidence = self._query_confidence(patterns, indicators, query)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        self._log.debug(
            "Knowledge query: %d patterns, %d indicators, confidence %.2f in %.2fms",
            len(patterns), len(indicators), confidence, elapsed_ms,
        )
        return KnowledgeResult(
            patterns=tuple(patterns),
            indicators=tuple(indicators),
            recommendations=tuple(recommendations[:_MAX_RECOMMENDATIONS]),
            confidence=confidence,
            processing_time=elapsed_ms,
        )

    def _relevant_indicators(self, query: KnowledgeQuery) -> list[TechnicalIndicator]:
        found: list[TechnicalIndicator] = []
        if query.keywords:
            found = self._indicators.search_indicators(query.keywords)
        for indicator_id in query.indicators:
            indicator = self._indicators.get_indicator(indicator_id)
            if indicator is not None and indicator not in found:
                found.append(indicator)
        if query.difficulty:
            found = [i for i in found if i.difficulty == query.difficulty]
        if query.timeframe:
            by_tf = self._indicators.get_indicators_by_timeframe(query.timeframe)
            found = [i for i in found if i in by_tf] if found else by_tf
        if query.market_condition:
            by_mc = self._indicators.get_indicators_by_market_condition(query.market_condition)
            found = [i for i in found if i in by_mc] if found else by_mc
        if not found:
            found = self._indicators.get_popular_indicators(7)[:5]
        return found[:_MAX_QUERY_INDICATORS]

    def _recommendations(
        self,
        query: KnowledgeQuery,
        patterns: list[PatternMatch],
        indicators: list[TechnicalIndicator],
    ) -> list[KnowledgeRecommendation]:
        recs: list[KnowledgeRecommendation] = []
        if patterns:
            top = patterns[0]
            recs.append(KnowledgeRecommendation(
                id=f"pattern_rec_{top.pattern.id}",
                type="pattern",
                priority="high" if top.confidence > 0.8 else "medium",
                title=f"Consider {top.pattern.name}",
                description=top.pattern.description,
                reasoning=f"{top.confidence * 100:.0f}% match with your criteria",
                implementation=f"Success rate: {top.pattern.success_rate * 100:.0f}%",
                related_concepts=top.pattern.variations,
            ))
        if indicators:
            top_ind = indicators[0]
            recs.append(KnowledgeRecommendation(
                id=f"indicator_rec_{top_ind.id}",
                type="indicator",
                priority="medium",
                title=f"Use {top_ind.name}",
                description=top_ind.description,
                reasoning="Highly relevant for your search criteria",
                implementation=f"Best for: {', '.join(top_ind.use_cases[:2])}",
                related_concepts=top_ind.combinations,
            ))

        ids = {i.id for i in indicators}
        combos = [
            c for c in INDICATOR_COMBINATIONS
            if ids.intersection(c.indicators)
            or (query.strategy_type is not None and query.strategy_type in c.strategy_types)
        ]
        if combos:
            combo = combos[0]
            recs.append(KnowledgeRecommendation(
                id=f"combo_rec_{combo.id}",
                type="combination",
                priority="medium",
                title=f"Try {combo.name}",
                description=combo.description,
                reasoning=combo.synergy,
                implementation=f"Effectiveness: {combo.effectiveness * 100:.0f}%",
            ))

        if query.difficulty == "beginner":
            recs.append(KnowledgeRecommendation(
                id="education_basics",
                type="education",
                priority="high",
                title="Learn Trading Basics",
                description="Start with fundamental concepts before advanced strategies",
                reasoning="Strong foundation is essential for trading success",
                implementation="Focus on risk management and simple indicators first",
            ))
        return recs

    @staticmethod
    def _query_confidence(
        patterns: list[PatternMatch],
        indicators: list[TechnicalIndicator],
        query: KnowledgeQuery,
    ) -> float:
        confidence = 0.5
        if patterns:
            confidence += 0.3 * sum(p.confidence for p in patterns) / len(patterns)
        if indicators:
            confidence += min(0.1 * len(indicators), 0.2)
        if query.strategy_type:
            confidence += 0.1
        if query.difficulty:
            confidence += 0.05
        if query.timeframe:
            confidence += 0.05
        return min(confidence, 1.0)

    # ─── Strategy Knowledge ──────────────────────────────────────

    def get_strategy_knowledge(self, strategy_type: StrategyType) -> StrategyKnowledge:
        return StrategyKnowledge(
            patterns=tuple(self._patterns.get_patterns_by_strategy_type(strategy_type)),
            indicators=tuple(self._indicators.get_indicators_for_strategy(strategy_type)),
            risk_rules=tuple(self._risk.get_rules_for_strategy(strategy_type)),
            combinations=tuple(c for c in INDICATOR_COMBINATIONS if strategy_type in c.strategy_types),
            educational_content=_educational_content(strategy_type),
        )

    def get_indicator_combinations(self, filters: CombinationFilters | None = None) -> list[IndicatorCombination]:
        combos = list(INDICATOR_COMBINATIONS)
        if filters is not None:
            if filters.strategy_type:
                combos = [c for c in combos if filters.strategy_type in c.strategy_types]
            if filters.difficulty:
                combos = [c for c in combos if c.difficulty == filters.difficulty]
            if filters.indicators:
                wanted = set(filters.indicators)
                combos = [c for c in combos if wanted.intersection(c.indicators)]
            if filters.min_effectiveness is not None:
                combos = [c for c in combos if c.effectiveness >= filters.min_effectiveness]
        return sorted(combos, key=lambda c: -c.effectiveness)

    def get_personalized_recommendations(self, profile: UserProfile) -> list[KnowledgeRecommendation]:
        """Pattern, indicator, combination and risk advice for a user's level and preferences."""
        recs: list[KnowledgeRecommendation] = []
        level = profile.experience_level

        patterns = self._patterns.get_recommendations(PatternPreferences(
            experience_level=level,
            risk_tolerance=profile.risk_tolerance,
            preferred_timeframes=profile.preferred_timeframes,
            favorite_indicators=profile.favorite_indicators,
        )) or self._patterns.get_patterns_by_difficulty(level)
        if patterns:
            top = patterns[0]
            recs.append(KnowledgeRecommendation(
                id=f"pattern_{top.id}",
                type="pattern",
                priority="high",
                title=f"Try {top.name}",
                description=top.description,
                reasoning=f"Matches your {level} experience level",
                implementation=f"Success rate: {top.success_rate * 100:.0f}%",
                related_concepts=top.variations,
            ))

        indicators = sorted(self._indicators.get_indicators_by_difficulty(level), key=lambda i: -i.popularity)
        if indicators:
            top_ind = indicators[0]
            recs.append(KnowledgeRecommendation(
                id=f"indicator_{top_ind.id}",
                type="indicator",
                priority="medium",
                title=f"Learn {top_ind.name}",
                description=top_ind.description,
                reasoning=f"Popular {level}-friendly indicator",
                implementation=f"Best timeframes: {', '.join(top_ind.best_timeframes)}",
                related_concepts=top_ind.combinations,
            ))

        combos = [c for c in INDICATOR_COMBINATIONS if c.difficulty == level]
        if combos:
            combo = combos[0]
            recs.append(KnowledgeRecommendation(
                id=f"combo_{combo.id}",
                type="combination",
                priority="medium",
                title=f"Try {combo.name} Combination",
                description=combo.description,
                reasoning=combo.synergy,
                implementation=f"Effectiveness: {combo.effectiveness * 100:.0f}%",
            ))

        recs.append(KnowledgeRecommendation(
            id="risk_management",
            type="risk",
            priority="high",
            title="Implement Risk Management",
            description="Always use proper risk management techniques",
            reasoning="Essential for long-term trading success",
            implementation="Never risk more than 2% per trade, always use stop losses",
        ))
        return recs[:_MAX_RECOMMENDATIONS]

    def search(self, term: str) -> SearchResults:
        """Free-text search across patterns, indicators and combinations."""
        keywords = [k for k in term.lower().split() if k]
        if not keywords:
            return SearchResults()
        matches = self._patterns.find_matches(keywords)
        combos = tuple(
            c for c in INDICATOR_COMBINATIONS
            if any(k in c.name.lower() or k in c.description.lower() for k in keywords)
        )
        return SearchResults(
            patterns=tuple(matches),
            indicators=tuple(self._indicators.search_indicators(keywords)),
            combinations=combos,
        )

    # ─── Delegation ──────────────────────────────────────────────

    def assess_risk(self, strategy_type: StrategyType, params: RiskParameters) -> RiskAssessment:
        return self._risk.assess_risk(strategy_type, params)

    def suggest_risk_components(
        self, strategy_type: StrategyType, existing_components: Iterable[str]
    ) -> list[RiskRecommendation]:
        return self._risk.suggest_risk_components(strategy_type, existing_components)

    def get_indicator_suggestions(
        self,
        strategy_type: StrategyType,
        existing_indicators: Iterable[str] = (),
        user_level: Difficulty = "beginner",
        market_condition: str | None = None,
        timeframe: str | None = None,
    ) -> list[IndicatorSuggestion]:
        return self._indicators.get_indicator_suggestions(
            strategy_type, existing_indicators, user_level, market_condition, timeframe
        )

    def analyze_indicator_compatibility(self, indicator_ids: list[str]) -> CompatibilityAnalysis:
        return self._indicators.get_compatibility_analysis(indicator_ids)

    def get_parameter_optimizations(
        self,
        indicator_id: str,
        strategy_type: StrategyType,
        market_condition: str | None = None,
        timeframe: str | None = None,
        current_parameters: dict[str, Any] | None = None,
    ) -> list[ParameterOptimization]:
        return self._indicators.get_parameter_optimizations(
            indicator_id, strategy_type, market_condition, timeframe, current_parameters
        )

    def analyze_indicator_suitability(self, indicator_id: str, context: SuitabilityContext) -> IndicatorAnalysis:
        return self._indicators.analyze_indicator_suitability(indicator_id, context)

    def get_indicator_knowledge(self, indicator_id: str) -> IndicatorKnowledge:
        indicator = self._indicators.get_indicator(indicator_id)
        if indicator is None:
            return IndicatorKnowledge()
        return IndicatorKnowledge(
            indicator=indicator,
            compatible_indicators=tuple(self._indicators.get_compatible_indicators(indicator_id)),
            use_cases=indicator.use_cases,
            parameter_guidance=tuple(
                ParameterGuidance(parameter=p.name, guidance=p.description, impact=p.impact)
                for p in indicator.parameters
            ),
        )

    # ─── Housekeeping ────────────────────────────────────────────

    def get_statistics(self) -> dict[str, Any]:
        return {
            "patterns": self._patterns.get_statistics(),
            "indicators": self._indicators.get_statistics(),
            "risk_rules": self._risk.get_statistics(),
            "combinations": len(INDICATOR_COMBINATIONS),
            "cache": self._cache.stats(),
            "total_queries": self._queries,
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        self._patterns.clear_cache()
        self._log.debug("Knowledge caches cleared")
