"""
STRATEGY-NLP Indicator Database

### ARCHITECTURAL CONTEXT
Node ID: knowledge.indicators

Lookup, search, suggestion and suitability scoring over the static indicator
tables (technical indicators plus the oscillator set). The knowledge base
and CLI consume it; the NLP pipeline only sees canonical ids.

### CRITICAL INVARIANTS
1. Every compatibility rule has a reverse rule (effectiveness × 0.9) unless
   the reverse direction is already declared.
2. Suitability is clamped to [0, 1]; unknown ids raise UnknownIndicatorError.
3. Parameter optimizations only touch numeric parameters and only report a
   change when |optimized - current| ≥ 0.1.

### DESIGN DECISIONS
- Optimization rules chain: strategy adjustment, then market adjustment,
  then the timeframe multiplier, each applied to the running value
- Suggestion parameters start from the defaults with their own scaling
  (trend-following period × 1.5, 15m × 0.8) and no ranging adjustment, so
  get_parameter_optimizations may still propose a change to a suggested value
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable

from src.core.errors import UnknownIndicatorError
from src.core.models import Difficulty, StrategyType
from src.knowledge.indicator_data import (
    ALL_INDICATORS,
    COMPATIBILITY_RULES,
    COMPLEMENTARY_PAIRS,
    OSCILLATOR_SENSITIVITY,
    STRATEGY_INDICATOR_MAP,
)
from src.knowledge.models import (
    CompatibilityAnalysis,
    CompatibilityRule,
    CompatiblePair,
    ComplementaryPair,
    IncompatiblePair,
    IndicatorAnalysis,
    IndicatorCategory,
    IndicatorParameter,
    IndicatorSuggestion,
    ParameterOptimization,
    Priority,
    SuitabilityContext,
    TechnicalIndicator,
)

logger = logging.getLogger(__name__)

_LEVEL_ORDER: dict[str, int] = {"beginner": 1, "intermediate": 2, "advanced": 3}
_PRIORITY_ORDER: dict[str, int] = {"high": 3, "medium": 2, "low": 1}

_TIMEFRAME_MULTIPLIERS: dict[str, float] = {
    "1m": 0.5, "5m": 0.7, "15m": 0.9, "1h": 1.0, "4h": 1.2, "1d": 1.5,
}
# Suggested defaults: 15m shortens to 0.8 instead of 0.9
_SUGGESTION_TIMEFRAME_MULTIPLIERS: dict[str, float] = {**_TIMEFRAME_MULTIPLIERS, "15m": 0.8}
_SUGGESTION_TREND_MULTIPLIER = 1.5
_OPTIMIZATION_TREND_MULTIPLIER = 1.3

_EXPECTED_OUTCOMES: dict[str, str] = {
    "trend-following": "Better trend identification and entry timing",
    "mean-reversion": "Improved overbought/oversold detection",
    "breakout": "Enhanced breakout confirmation and false signal reduction",
    "momentum": "Stronger momentum signal validation",
    "scalping": "More precise short-term entry and exit points",
}

_SUGGESTION_THRESHOLD = 0.5
_MAX_SUGGESTIONS = 5
_MAX_COMPATIBILITY_SUGGESTIONS = 3
_DEFAULT_CONFLICT = "Indicators may provide conflicting signals"


def level_match(indicator_level: Difficulty, user_level: Difficulty) -> tuple[bool, float]:
    """
    (suitable, confidence) for an indicator at indicator_level shown to a user.

    At or below the user's level → 1.0; one level above → 0.7;
    two levels above → unsuitable (0.3).
    """
    gap = _LEVEL_ORDER[indicator_level] - _LEVEL_ORDER[user_level]
    if gap <= 0:
        return True, 1.0
    if gap == 1:
        return True, 0.7
    return False, 0.3


def _optimize_value(
    param: IndicatorParameter,
    current: float,
    strategy_type: str,
    market_condition: str | None,
    timeframe: str | None,
) -> tuple[float, list[str], float]:
    """Chain the strategy, market and timeframe adjustments for one parameter."""
    value = current
    reasons: list[str] = []
    confidence = 0.7

    if param.name == "period":
        if strategy_type == "scalping":
            value = max(5, round(value * 0.7))
            reasons.append("Shorter period for faster signals in scalping strategy")
            confidence = 0.8
        elif strategy_type == "trend-following":
            value = min(50, round(value * _OPTIMIZATION_TREND_MULTIPLIER))
            reasons.append("Longer period for smoother trend identification")
            confidence = 0.8

    if market_condition == "volatile" and param.name == "stdDev":
        value = round(min(3.0, value * 1.2), 2)
        reasons.append("Wider standard deviation for volatile market conditions")
        confidence = 0.75
    elif market_condition == "ranging" and param.name == "period":
        value = max(10, round(value * 0.8))
        reasons.append("Shorter period for better responsiveness in ranging markets")
        confidence = 0.7

    if timeframe and param.name == "period":
        multiplier = _TIMEFRAME_MULTIPLIERS.get(timeframe)
        if multiplier and multiplier != 1.0:
            value = round(value * multiplier)
            reasons.append(f"Adjusted period for {timeframe} timeframe characteristics")
            confidence = 0.75

    if param.type == "int":
        value = int(round(value))
    return value, reasons, confidence


def _suggested_value(
    param: IndicatorParameter,
    strategy_type: str,
    market_condition: str | None,
    timeframe: str | None,
) -> float:
    """Starting value for a parameter of a freshly suggested indicator."""
    value = float(param.default)
    if param.name == "period":
        if strategy_type == "scalping":
            value = max(5, value * 0.7)
        elif strategy_type == "trend-following":
            value = min(50, value * _SUGGESTION_TREND_MULTIPLIER)
        if timeframe:
            value = round(value * _SUGGESTION_TIMEFRAME_MULTIPLIERS.get(timeframe, 1.0))
    if market_condition == "volatile" and param.name == "stdDev":
        value = round(min(3.0, value * 1.2), 2)
    if param.type == "int":
        value = int(round(value))
    return value


class IndicatorDatabase:
    """
    Query surface over technical indicators and their compatibility rules.

    Usage:
        db = IndicatorDatabase()
        db.get_indicator("rsi").name              # "Relative Strength Index"
        db.get_indicator_suggestions("momentum", ["macd"], "beginner")
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._indicators: dict[str, TechnicalIndicator] = {i.id: i for i in ALL_INDICATORS}
        self._rules: dict[str, list[CompatibilityRule]] = {}
        self._build_compatibility_rules()

    def _build_compatibility_rules(self) -> None:
        for rule in COMPATIBILITY_RULES:
            self._rules.setdefault(rule.primary_indicator, []).append(rule)
            for compatible_id in rule.compatible_indicators:
                existing = self._rules.setdefault(compatible_id, [])
                reverse_exists = any(
                    r.primary_indicator == compatible_id
                    and rule.primary_indicator in r.compatible_indicators
                    for r in existing
                )
                if reverse_exists:
                    continue
                existing.append(CompatibilityRule(
                    id=f"{rule.id}_reverse",
                    primary_indicator=compatible_id,
                    compatible_indicators=(rule.primary_indicator,),
                    synergy=f"Reverse synergy: {rule.synergy}",
                    effectiveness=rule.effectiveness * 0.9,
                    difficulty=rule.difficulty,
                    best_use_case=rule.best_use_case,
                ))

    # ── Lookups ──

    def get_indicator(self, indicator_id: str) -> TechnicalIndicator | None:
        return self._indicators.get(indicator_id)

    def get_all_indicators(self) -> list[TechnicalIndicator]:
        return list(self._indicators.values())

    def get_indicators_by_category(self, category: IndicatorCategory) -> list[TechnicalIndicator]:
        return [i for i in self._indicators.values() if i.category == category]

    def get_indicators_by_difficulty(self, difficulty: Difficulty) -> list[TechnicalIndicator]:
        return [i for i in self._indicators.values() if i.difficulty == difficulty]

    def get_indicators_by_timeframe(self, timeframe: str) -> list[TechnicalIndicator]:
        return [i for i in self._indicators.values() if timeframe in i.best_timeframes]

    def get_indicators_by_market_condition(self, condition: str) -> list[TechnicalIndicator]:
        return [
            i for i in self._indicators.values()
            if condition in i.market_conditions or "all" in i.market_conditions
        ]

    def get_popular_indicators(self, min_popularity: int = 7) -> list[TechnicalIndicator]:
        popular = [i for i in self._indicators.values() if i.popularity >= min_popularity]
        return sorted(popular, key=lambda i: -i.popularity)

    def get_compatible_indicators(self, indicator_id: str) -> list[TechnicalIndicator]:
        """Indicators listed in the indicator's own combinations (unknown ids skipped)."""
        indicator = self.get_indicator(indicator_id)
        if indicator is None:
            return []
        return [self._indicators[c] for c in indicator.combinations if c in self._indicators]

    def get_compatibility_rules(self, indicator_id: str) -> list[CompatibilityRule]:
        return list(self._rules.get(indicator_id, ()))

    def get_indicators_for_strategy(self, strategy_type: StrategyType) -> list[TechnicalIndicator]:
        ids = STRATEGY_INDICATOR_MAP.get(strategy_type, ())
        return [self._indicators[i] for i in ids if i in self._indicators]

    def search_indicators(self, keywords: Iterable[str]) -> list[TechnicalIndicator]:
        """
        Rank indicators by keyword hits.

        +1 when the keyword appears in name, description or use cases,
        +2 more when it appears in the name.
        """
        needles = [k.lower() for k in keywords if k]
        scored: list[tuple[int, TechnicalIndicator]] = []
        for indicator in self._indicators.values():
            name = indicator.name.lower()
            haystack = " ".join((name, indicator.description.lower(), *map(str.lower, indicator.use_cases)))
            score = 0
            for needle in needles:
                if needle in haystack:
                    score += 1
                if needle in name:
                    score += 2
            if score > 0:
                scored.append((score, indicator))
        scored.sort(key=lambda pair: -pair[0])
        return [indicator for _, indicator in scored]

    # ── Suggestions ──

    def get_indicator_suggestions(
        self,
        strategy_type: StrategyType,
        existing_indicators: Iterable[str] = (),
        user_level: Difficulty = "beginner",
        market_condition: str | None = None,
        timeframe: str | None = None,
    ) -> list[IndicatorSuggestion]:
        """
        Suggest indicators for a strategy type that the user does not already use.

        Returns:
            At most 5 suggestions, sorted by priority then confidence.
        """
        existing = set(existing_indicators)
        suggestions: list[IndicatorSuggestion] = []

        for indicator in self.get_indicators_for_strategy(strategy_type):
            if indicator.id in existing:
                continue
            suitable, level_confidence = level_match(indicator.difficulty, user_level)
            if not suitable:
                continue

            market_factor = 0.6 if market_condition and market_condition not in indicator.market_conditions else 1.0
            timeframe_factor = 0.7 if timeframe and timeframe not in indicator.best_timeframes else 1.0
            confidence = level_confidence * market_factor * timeframe_factor
            if confidence <= _SUGGESTION_THRESHOLD:
                continue

            suggestions.append(IndicatorSuggestion(
                indicator=indicator,
                reason=self._suggestion_reason(indicator, strategy_type, market_condition, timeframe),
                confidence=confidence,
                priority=_priority(confidence),
                parameters=self._optimized_parameters(indicator, strategy_type, market_condition, timeframe),
                implementation=f"Add {indicator.name} with {indicator.best_timeframes[0]} timeframe",
                expected_outcome=_EXPECTED_OUTCOMES.get(
                    strategy_type, f"Enhanced {indicator.use_cases[0] if indicator.use_cases else indicator.name}"
                ),
            ))

        suggestions.sort(key=lambda s: (-_PRIORITY_ORDER[s.priority], -s.confidence))
        return suggestions[:_MAX_SUGGESTIONS]

    @staticmethod
    def _suggestion_reason(
        indicator: TechnicalIndicator,
        strategy_type: str,
        market_condition: str | None,
        timeframe: str | None,
    ) -> str:
        reasons = [f"{indicator.name} is excellent for {strategy_type} strategies"]
        if market_condition and market_condition in indicator.market_conditions:
            reasons.append(f"performs well in {market_condition} markets")
        if timeframe and timeframe in indicator.best_timeframes:
            reasons.append(f"optimized for {timeframe} timeframe")
        reasons.append(f"popularity score: {indicator.popularity}/10")
        return ", ".join(reasons)

    @staticmethod
    def _optimized_parameters(
        indicator: TechnicalIndicator,
        strategy_type: str,
        market_condition: str | None,
        timeframe: str | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for param in indicator.parameters:
            if param.is_numeric:
                params[param.name] = _suggested_value(param, strategy_type, market_condition, timeframe)
            else:
                params[param.name] = param.default
        return params

    # ── Compatibility ──

    def get_compatibility_analysis(self, indicator_ids: list[str]) -> CompatibilityAnalysis:
        """Pairwise synergy/conflict report plus up to 3 extension suggestions."""
        compatible: list[CompatiblePair] = []
        incompatible: list[IncompatiblePair] = []

        for i, first in enumerate(indicator_ids):
            rules = self._rules.get(first, [])
            for second in indicator_ids[i + 1:]:
                synergy = next((r for r in rules if second in r.compatible_indicators), None)
                if synergy is not None:
                    compatible.append(CompatiblePair(
                        indicators=(first, second),
                        synergy=synergy.synergy,
                        effectiveness=synergy.effectiveness,
                    ))
                conflict = next((r for r in rules if second in r.incompatible_indicators), None)
                if conflict is not None:
                    incompatible.append(IncompatiblePair(
                        indicators=(first, second),
                        reason=conflict.conflict_reason or _DEFAULT_CONFLICT,
                    ))

        seen: set[str] = set()
        suggestions: list[IndicatorSuggestion] = []
        for indicator_id in indicator_ids:
            source = self.get_indicator(indicator_id)
            source_name = source.name if source else indicator_id
            for rule in self._rules.get(indicator_id, []):
                for candidate_id in rule.compatible_indicators:
                    candidate = self.get_indicator(candidate_id)
                    if candidate_id in indicator_ids or candidate_id in seen or candidate is None:
                        continue
                    seen.add(candidate_id)
                    suggestions.append(IndicatorSuggestion(
                        indicator=candidate,
                        reason=f"Highly compatible with {source_name}: {rule.synergy}",
                        confidence=rule.effectiveness,
                        priority="high" if rule.effectiveness > 0.8 else "medium",
                        implementation=f"Add {candidate.name} to enhance {rule.best_use_case}",
                        expected_outcome=f"Improved strategy effectiveness by {rule.effectiveness * 100:.0f}%",
                    ))

        suggestions.sort(key=lambda s: -s.confidence)
        return CompatibilityAnalysis(
            compatible=tuple(compatible),
            incompatible=tuple(incompatible),
            suggestions=tuple(suggestions[:_MAX_COMPATIBILITY_SUGGESTIONS]),
        )

    # ── Parameter Optimization ──

    def get_parameter_optimizations(
        self,
        indicator_id: str,
        strategy_type: StrategyType,
        market_condition: str | None = None,
        timeframe: str | None = None,
        current_parameters: dict[str, Any] | None = None,
    ) -> list[ParameterOptimization]:
        """Recommended numeric parameter changes, highest impact first."""
        indicator = self.get_indicator(indicator_id)
        if indicator is None:
            return []

        current_parameters = current_parameters or {}
        optimizations: list[ParameterOptimization] = []
        for param in indicator.parameters:
            if not param.is_numeric:
                continue
            current = current_parameters.get(param.name, param.default)
            try:
                current_num = float(current)
            except (TypeError, ValueError):
                self._log.warning("Non-numeric %s.%s=%r skipped", indicator_id, param.name, current)
                continue

            value, reasons, confidence = _optimize_value(
                param, current_num, strategy_type, market_condition, timeframe
            )
            if abs(value - current_num) < 0.1:
                continue
            optimizations.append(ParameterOptimization(
                parameter_id=param.name,
                parameter_name=param.name,
                current_value=current,
                optimized_value=value,
                reason="; ".join(reasons),
                impact=param.impact,
                market_condition=market_condition or "general",
                confidence=confidence,
            ))

        optimizations.sort(key=lambda o: -_PRIORITY_ORDER[o.impact])
        return optimizations

    # ── Suitability ──

    def analyze_indicator_suitability(
        self, indicator_id: str, context: SuitabilityContext
    ) -> IndicatorAnalysis:
        """
        Score how well an indicator fits a strategy context.

        Raises:
            UnknownIndicatorError: indicator_id is not in the database.
        """
        indicator = self.get_indicator(indicator_id)
        if indicator is None:
            raise UnknownIndicatorError(indicator_id)

        suitability = 0.5
        strengths = list(indicator.strengths)
        weaknesses = list(indicator.weaknesses)
        recommendations: list[str] = []

        if indicator_id in STRATEGY_INDICATOR_MAP.get(context.strategy_type, ()):
            suitability += 0.3
            strengths.append(f"Excellent for {context.strategy_type} strategies")
        else:
            suitability -= 0.1
            weaknesses.append(f"Not optimized for {context.strategy_type} strategies")

        if context.market_condition:
            if context.market_condition in indicator.market_conditions:
                suitability += 0.2
                strengths.append(f"Works well in {context.market_condition} markets")
            else:
                suitability -= 0.15
                weaknesses.append(f"May struggle in {context.market_condition} markets")
                recommendations.append(f"Consider additional confirmation in {context.market_condition} conditions")

        if context.timeframe:
            if context.timeframe in indicator.best_timeframes:
                suitability += 0.15
                strengths.append(f"Optimized for {context.timeframe} timeframe")
            else:
                suitability -= 0.1
                recommendations.append(f"Consider adjusting parameters for {context.timeframe} timeframe")

        if context.user_level:
            suitable, _ = level_match(indicator.difficulty, context.user_level)
            suitability += 0.1 if suitable else -0.2
            if not suitable:
                weaknesses.append("Complex indicator requiring advanced understanding")
                recommendations.append("Start with simpler indicators before using this one")

        if context.existing_indicators:
            analysis = self.get_compatibility_analysis([indicator_id, *context.existing_indicators])
            if analysis.compatible:
                suitability += 0.1
                strengths.append("Good synergy with existing indicators")
            if analysis.incompatible:
                suitability -= 0.2
                weaknesses.append("May conflict with existing indicators")
                recommendations.append("Consider removing conflicting indicators")

        suitability = max(0.0, min(1.0, suitability))
        self._log.debug("Suitability %s for %s: %.2f", indicator_id, context.strategy_type, suitability)

        return IndicatorAnalysis(
            indicator=indicator,
            suitability=suitability,
            strengths=tuple(dict.fromkeys(strengths)),
            weaknesses=tuple(dict.fromkeys(weaknesses)),
            recommendations=tuple(dict.fromkeys(recommendations)),
            parameter_optimizations=tuple(self.get_parameter_optimizations(
                indicator_id, context.strategy_type, context.market_condition, context.timeframe
            )),
        )

    # ── Oscillators ──

    def get_oscillators_by_sensitivity(self, sensitivity: Priority) -> list[TechnicalIndicator]:
        ids = OSCILLATOR_SENSITIVITY.get(sensitivity, ())
        return [self._indicators[i] for i in ids if i in self._indicators]

    def get_complementary_pairs(self) -> list[ComplementaryPair]:
        return [
            ComplementaryPair(
                primary=self._indicators[primary],
                secondary=self._indicators[secondary],
                synergy=synergy,
                effectiveness=effectiveness,
            )
            for primary, secondary, synergy, effectiveness in COMPLEMENTARY_PAIRS
        ]

    def get_statistics(self) -> dict[str, Any]:
        indicators = list(self._indicators.values())
        return {
            "total_indicators": len(indicators),
            "by_category": dict(Counter(i.category for i in indicators)),
            "by_difficulty": dict(Counter(i.difficulty for i in indicators)),
            "average_popularity": sum(i.popularity for i in indicators) / len(indicators),
            "compatibility_rules": sum(len(rules) for rules in self._rules.values()),
            "strategy_mappings": len(STRATEGY_INDICATOR_MAP),
        }


def _priority(confidence: float) -> Priority:
    if confidence > 0.8:
        return "high"
    if confidence > 0.6:
        return "medium"
    return "low"
