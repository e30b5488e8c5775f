"""
STRATEGY-NLP Intent Extractor

### ARCHITECTURAL CONTEXT
Node ID: nlp.intent_extractor

Second pipeline stage. Classifies a tokenized request into a TradingIntent:
scores the intent-pattern catalogue, consults the knowledge pattern library,
collects components from the tokens and infers what the user left implicit.

Confidence:
    no catalogue or library match → 0.1
    otherwise best match
        + min(component boost, 0.2)   indicators .1, conditions .1, actions .1,
                                      risk .05, timeframe .05
        + min(0.05 × trading tokens, 0.2)
        - 0.1 without indicators - 0.15 without actions
    clamped to [0, 1]

### CRITICAL INVARIANTS
1. With IntentConfig.enable_fallback (default) extract() never raises;
   failures yield a custom intent at 0.1.
2. Indicators, conditions and actions are canonical ids, deduplicated in
   order of first appearance.
3. Strategy type priority: best catalogue match, best library match, custom.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from config.settings import IntentConfig
from src.core.models import StrategyType, Token, TradingIntent
from src.knowledge.models import PatternMatch
from src.knowledge.pattern_library import TradingPatterns
from src.nlp.intent_patterns import IntentPatternMatch, IntentPatternMatcher

logger = logging.getLogger(__name__)

_TRADING_TYPES = frozenset({"indicator", "action", "condition"})
_MAX_COMPONENT_BOOST = 0.2

_DEFAULT_ACTIONS: dict[str, tuple[str, ...]] = {
    "trend-following": ("buy", "sell"),
    "breakout": ("buy", "sell"),
    "momentum": ("buy", "sell"),
    "mean-reversion": ("buy_oversold", "sell_overbought"),
    "scalping": ("quick_buy", "quick_sell"),
}

_DEFAULT_CONDITIONS: dict[str, tuple[str, ...]] = {
    "trend-following": ("crossover",),
    "mean-reversion": ("oversold", "overbought"),
    "breakout": ("breakout",),
    "momentum": ("momentum_change",),
}

# Nearest preceding comparison or level word names the number after it
_NAME_AFTER: dict[str, str] = {
    "less_than": "lowerThreshold",
    "greater_than": "upperThreshold",
    "oversold": "oversoldLevel",
    "overbought": "overboughtLevel",
}

FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Try rephrasing your request with specific indicators and conditions",
    "Include clear entry and exit criteria",
    "Specify what actions to take (buy, sell, etc.)",
)


@dataclass
class IntentExtraction:
    """Output of a single extract() call."""

    intent: TradingIntent
    matches: list[IntentPatternMatch] = field(default_factory=list)
    knowledge_matches: list[PatternMatch] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        return self.intent.confidence


@dataclass
class _Components:
    indicators: list[str] = field(default_factory=list)
    conditions: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    risk_management: list[str] = field(default_factory=list)
    timeframe: str | None = None
    symbol: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


def _append_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


class IntentExtractor:
    """
    Rule-based trading intent classifier.

    Args:
        config: Intent options (defaults to IntentConfig()).
        patterns: Knowledge pattern library consulted alongside the catalogue.
        matcher: Intent-pattern catalogue matcher.
        logger: Injected logger (defaults to the module logger).

    Usage:
        extractor = IntentExtractor()
        result = extractor.extract(tokens, "buy when rsi is below 30")
        result.intent.strategy_type  # "mean-reversion"
    """

    def __init__(
        self,
        config: IntentConfig | None = None,
        patterns: TradingPatterns | None = None,
        matcher: IntentPatternMatcher | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or IntentConfig()
        self._log = logger or logging.getLogger(__name__)
        self._matcher = matcher or IntentPatternMatcher()
        self._patterns = patterns
        if self._patterns is None and self._config.use_knowledge_patterns:
            self._patterns = TradingPatterns(logger=self._log)

    def extract(self, tokens: list[Token], text: str) -> IntentExtraction:
        start = time.perf_counter()
        try:
            result = self._extract(tokens, text)
        except Exception as e:
            self._log.error("Intent extraction failed: %s", e, exc_info=True)
            if not self._config.enable_fallback:
                raise
            return self.fallback()

        self._log.debug(
            "Intent %s (conf=%.2f, %d catalogue / %d library matches, %.2fms)",
            result.intent.strategy_type,
            result.intent.confidence,
            len(result.matches),
            len(result.knowledge_matches),
            (time.perf_counter() - start) * 1000,
        )
        return result

    def _extract(self, tokens: list[Token], text: str) -> IntentExtraction:
        lowered = text.lower()
        token_texts = [t.text for t in tokens]

        matches = self._matcher.find_matches(token_texts, lowered, self._config.min_confidence)
        matches = matches[: self._config.max_patterns]

        components = self._collect_components(tokens)
        knowledge_matches = self._knowledge_matches(token_texts, components)
        strategy_type = self._strategy_type(matches, knowledge_matches)
        self._infer_missing(components, strategy_type, lowered, matched=bool(matches or knowledge_matches))

        confidence = self._confidence(components, matches, knowledge_matches, tokens)
        intent = TradingIntent(
            strategy_type=strategy_type,
            indicators=components.indicators,
            conditions=components.conditions,
            actions=components.actions,
            risk_management=components.risk_management,
            timeframe=components.timeframe,
            symbol=components.symbol,
            confidence=confidence,
            parameters=components.parameters,
        )
        return IntentExtraction(
            intent=intent,
            matches=matches,
            knowledge_matches=knowledge_matches,
            reasoning=self._reasoning(matches, knowledge_matches, components),
            suggestions=self._suggestions(intent, matches),
        )

    # ── Components ──

    def _collect_components(self, tokens: list[Token]) -> _Components:
        components = _Components()
        for index, token in enumerate(tokens):
            if token.type == "indicator":
                _append_unique(components.indicators, token.canonical)
            elif token.type == "condition":
                _append_unique(components.conditions, token.canonical)
            elif token.type == "action":
                _append_unique(components.actions, token.canonical)
            elif token.type == "timeframe":
                if components.timeframe is None:
                    components.timeframe = token.canonical
            elif token.type == "symbol":
                if components.symbol is None:
                    components.symbol = str(token.metadata.get("symbol", token.text.upper()))
            elif token.type == "number":
                value = token.metadata.get("value")
                if value is not None:
                    components.parameters[self._parameter_name(tokens, index)] = value
            elif token.type == "parameter":
                if token.canonical == "stop_loss":
                    _append_unique(components.risk_management, "stop_loss")
                elif token.canonical == "take_profit":
                    _append_unique(components.risk_management, "take_profit")
        return components

    @staticmethod
    def _parameter_name(tokens: list[Token], index: int) -> str:
        """Name a number from the tokens within two positions of it."""
        window = tokens[max(0, index - 2): index + 3]
        context = " ".join(f"{t.text} {t.canonical}" for t in window)
        if "period" in context or "length" in context:
            return "period"
        if "threshold" in context or "level" in context:
            return "threshold"
        if "stop" in context or "sl" in context.split():
            return "stopLoss"
        if "profit" in context or "tp" in context.split():
            return "takeProfit"
        if "%" in context or tokens[index].metadata.get("unit") == "percentage":
            return "percentage"
        for prev in reversed(tokens[max(0, index - 2): index]):
            name = _NAME_AFTER.get(prev.canonical)
            if name:
                return name
            if prev.type == "indicator":
                return "period"
        ordinal = sum(1 for t in tokens[:index] if t.type == "number") + 1
        return f"value_{ordinal}"

    def _knowledge_matches(self, token_texts: list[str], components: _Components) -> list[PatternMatch]:
        if self._patterns is None:
            return []
        return self._patterns.find_matches(token_texts, components.indicators, components.conditions)

    @staticmethod
    def _strategy_type(
        matches: list[IntentPatternMatch],
        knowledge_matches: list[PatternMatch],
    ) -> StrategyType:
        if matches:
            return matches[0].pattern.strategy_type
        if knowledge_matches:
            return knowledge_matches[0].strategy_type
        return "custom"

    @staticmethod
    def _infer_missing(components: _Components, strategy_type: StrategyType, text: str, matched: bool) -> None:
        if not components.actions:
            if "buy" in text or "long" in text:
                components.actions.append("buy")
            if "sell" in text or "short" in text:
                components.actions.append("sell")
            if not components.actions and matched:
                components.actions.extend(_DEFAULT_ACTIONS.get(strategy_type, ()))

        if not components.conditions and matched:
            components.conditions.extend(_DEFAULT_CONDITIONS.get(strategy_type, ()))

        if "stop" in text or "risk" in text:
            _append_unique(components.risk_management, "stop_loss")
        if "profit" in text or "target" in text:
            _append_unique(components.risk_management, "take_profit")

    # ── Scoring ──

    @staticmethod
    def _confidence(
        components: _Components,
        matches: list[IntentPatternMatch],
        knowledge_matches: list[PatternMatch],
        tokens: list[Token],
    ) -> float:
        if matches:
            base = matches[0].confidence
        elif knowledge_matches:
            base = knowledge_matches[0].confidence
        else:
            return 0.1

        boost = 0.0
        if components.indicators:
            boost += 0.1
        if components.conditions:
            boost += 0.1
        if components.actions:
            boost += 0.1
        if components.risk_management:
            boost += 0.05
        if components.timeframe:
            boost += 0.05

        trading_tokens = sum(1 for t in tokens if t.type in _TRADING_TYPES)
        penalty = 0.0
        if not components.indicators:
            penalty += 0.1
        if not components.actions:
            penalty += 0.15

        score = base + min(boost, _MAX_COMPONENT_BOOST) + min(0.05 * trading_tokens, 0.2) - penalty
        return max(0.0, min(1.0, score))

    # ── Explanations ──

    @staticmethod
    def _reasoning(
        matches: list[IntentPatternMatch],
        knowledge_matches: list[PatternMatch],
        components: _Components,
    ) -> list[str]:
        reasoning: list[str] = []
        if matches:
            best = matches[0]
            reasoning.append(
                f"Identified as {best.pattern.name} strategy based on keywords: "
                f"{', '.join(best.matched_keywords) or 'structure'}"
            )
        if knowledge_matches:
            top = knowledge_matches[0]
            reasoning.append(f"Closest known pattern: {top.pattern.name} ({top.confidence * 100:.0f}% match)")
        if components.indicators:
            reasoning.append(f"Found indicators: {', '.join(components.indicators)}")
        if components.conditions:
            reasoning.append(f"Detected conditions: {', '.join(components.conditions)}")
        if components.actions:
            reasoning.append(f"Identified actions: {', '.join(components.actions)}")
        if components.parameters:
            reasoning.append(f"Extracted parameters: {', '.join(components.parameters)}")
        return reasoning

    @staticmethod
    def _suggestions(intent: TradingIntent, matches: list[IntentPatternMatch]) -> list[str]:
        suggestions: list[str] = []
        if not intent.indicators:
            suggestions.append("Consider specifying which indicators to use (RSI, MACD, Moving Averages, etc.)")
        if not intent.risk_management:
            suggestions.append("Add risk management parameters like stop loss and take profit")
        if not intent.timeframe:
            suggestions.append("Specify a timeframe for the strategy (1h, 4h, 1d, etc.)")
        if matches and matches[0].missing_elements:
            suggestions.append(f"Consider adding: {', '.join(matches[0].missing_elements)}")
        if not intent.conditions:
            suggestions.append("Specify entry/exit conditions more clearly")
        return suggestions

    def fallback(self) -> IntentExtraction:
        """Neutral result used when extraction fails."""
        return IntentExtraction(
            intent=TradingIntent(strategy_type="custom", confidence=0.1),
            reasoning=["Failed to extract clear trading intent from the request"],
            suggestions=list(FALLBACK_SUGGESTIONS),
        )

    def get_statistics(self) -> dict[str, Any]:
        return {
            "available_patterns": len(self._matcher.get_all_patterns()),
            "knowledge_patterns": len(self._patterns.get_all_patterns()) if self._patterns else 0,
            "min_confidence": self._config.min_confidence,
            "max_patterns": self._config.max_patterns,
        }
