"""
STRATEGY-NLP Trading Vocabulary

### ARCHITECTURAL CONTEXT
Node ID: nlp.vocabulary

Leaf of the pipeline. Maps raw words and phrases to canonical trading terms
(indicators, actions, conditions, parameters, timeframes, operators,
modifiers) with synonym resolution. The tokenizer classifies every raw token
through find_match() and uses multi_word_terms() for its merge pass.

### CRITICAL INVARIANTS
1. Lookup order: exact canonical term, exact synonym, containment fallback
   in either direction (key inside the term or term inside the key).
2. Fallback accepts only min(len)/max(len) > 0.7 and scales confidence by it.
3. find_match() never raises; unknown input returns None.

### DESIGN DECISIONS
- Inflected forms resolve through the key-in-term direction ("buys" → buy)
  and truncated ones through term-in-key ("stochasti" → stochastic). The
  term-in-key direction needs at least four characters so that "the" never
  becomes "then", and only reaches single-word keys so that a lone "hours"
  is not read as the 4h timeframe
- Canonical ids replace spaces with underscores ("bollinger bands" →
  bollinger_bands) to line up with indicator-database ids
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.core.models import EntityType, TokenType

logger = logging.getLogger(__name__)

_FUZZY_MIN_RATIO = 0.7
_FUZZY_MIN_PARTIAL_LENGTH = 4


@dataclass(frozen=True)
class VocabularyEntry:
    """A canonical trading term and its synonyms."""

    term: str
    token_type: TokenType
    category: str
    confidence: float
    synonyms: tuple[str, ...] = ()
    entity_type: EntityType | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def canonical_id(self) -> str:
        return canonical_id(self.term)


@dataclass(frozen=True)
class VocabularyMatch:
    """Result of a vocabulary lookup."""

    entry: VocabularyEntry
    confidence: float
    match_kind: str  # "exact", "synonym" or "fuzzy"
    matched_key: str

    @property
    def canonical_id(self) -> str:
        return self.entry.canonical_id

    @property
    def token_type(self) -> TokenType:
        return self.entry.token_type


def canonical_id(term: str) -> str:
    """Canonical identifier for a vocabulary term."""
    return "_".join(term.lower().split())


def _entry(
    term: str,
    token_type: TokenType,
    category: str,
    confidence: float,
    synonyms: list[str],
    entity_type: EntityType | None = None,
    **metadata: Any,
) -> VocabularyEntry:
    return VocabularyEntry(
        term=term,
        token_type=token_type,
        category=category,
        confidence=confidence,
        synonyms=tuple(synonyms),
        entity_type=entity_type,
        metadata=metadata,
    )


# ─── Vocabulary Tables ───────────────────────────────────────────────

TRADING_VOCABULARY: dict[str, list[VocabularyEntry]] = {
    "indicators": [
        _entry("rsi", "indicator", "oscillator", 0.95,
               ["relative strength index", "relative strength", "rsi indicator"],
               "indicator_name", default_period=14, range=[0, 100]),
        _entry("sma", "indicator", "trend", 0.9,
               ["simple moving average", "moving average", "ma", "average"],
               "indicator_name", default_period=20),
        _entry("ema", "indicator", "trend", 0.9,
               ["exponential moving average", "exponential average", "exp moving average"],
               "indicator_name", default_period=20),
        _entry("macd", "indicator", "momentum", 0.95,
               ["moving average convergence divergence", "macd indicator"],
               "indicator_name", fast_period=12, slow_period=26, signal_period=9),
        _entry("bollinger bands", "indicator", "volatility", 0.9,
               ["bb", "bollinger", "bands", "bollinger band"],
               "indicator_name", default_period=20, std_dev=2),
        _entry("stochastic", "indicator", "oscillator", 0.9,
               ["stoch", "stochastic oscillator", "stochastic indicator"],
               "indicator_name", k_period=14, d_period=3),
        _entry("atr", "indicator", "volatility", 0.9,
               ["average true range", "true range"],
               "indicator_name", default_period=14),
        _entry("cci", "indicator", "oscillator", 0.9,
               ["commodity channel index", "commodity channel"],
               "indicator_name", default_period=20),
        _entry("roc", "indicator", "momentum", 0.85,
               ["rate of change", "price rate of change"],
               "indicator_name", default_period=12),
        _entry("williams r", "indicator", "oscillator", 0.9,
               ["williams %r", "williams percent range", "williams"],
               "indicator_name", default_period=14, range=[-100, 0]),
    ],
    "actions": [
        _entry("buy", "action", "entry", 0.95,
               ["purchase", "long", "go long", "enter long", "buy signal"]),
        _entry("sell", "action", "entry", 0.95,
               ["short", "go short", "enter short", "sell signal"]),
        _entry("close", "action", "exit", 0.9,
               ["exit", "close position", "stop out"]),
        _entry("hold", "action", "neutral", 0.8,
               ["wait", "stay", "maintain position", "do nothing"]),
    ],
    "conditions": [
        _entry("oversold", "condition", "level", 0.9,
               ["below threshold", "undervalued"], typical_threshold=30),
        _entry("overbought", "condition", "level", 0.9,
               ["above threshold", "overvalued"], typical_threshold=70),
        _entry("crossover", "condition", "cross", 0.95,
               ["crosses above", "breaks above", "goes above", "cross"]),
        _entry("crossunder", "condition", "cross", 0.95,
               ["crosses below", "breaks below", "goes below"]),
        _entry("rising", "condition", "trend", 0.8,
               ["increasing", "going up", "upward", "bullish"]),
        _entry("falling", "condition", "trend", 0.8,
               ["decreasing", "going down", "downward", "bearish"]),
    ],
    "parameters": [
        _entry("period", "parameter", "numeric", 0.9,
               ["length", "window", "lookback"], "parameter_value"),
        _entry("threshold", "parameter", "numeric", 0.9,
               ["level", "limit", "boundary"], "threshold"),
        _entry("stop loss", "parameter", "risk", 0.95,
               ["sl", "stop", "stoploss", "max loss", "risk limit"]),
        _entry("take profit", "parameter", "risk", 0.95,
               ["tp", "profit target", "target", "profit limit"]),
    ],
    "timeframes": [
        _entry("1m", "timeframe", "timeframe", 0.95,
               ["1 minute", "1min", "one minute"], "timeframe"),
        _entry("5m", "timeframe", "timeframe", 0.95,
               ["5 minutes", "5min", "five minutes"], "timeframe"),
        _entry("15m", "timeframe", "timeframe", 0.95,
               ["15 minutes", "15min", "fifteen minutes"], "timeframe"),
        _entry("1h", "timeframe", "timeframe", 0.95,
               ["1 hour", "1hr", "hourly", "one hour"], "timeframe"),
        _entry("4h", "timeframe", "timeframe", 0.95,
               ["4 hours", "4hr", "four hours"], "timeframe"),
        _entry("1d", "timeframe", "timeframe", 0.95,
               ["1 day", "daily", "one day"], "timeframe"),
    ],
    "operators": [
        _entry("greater than", "operator", "comparison", 0.9,
               [">", ">=", "above", "higher than", "more than", "over"]),
        _entry("less than", "operator", "comparison", 0.9,
               ["<", "<=", "below", "lower than", "under", "beneath"]),
        _entry("equal to", "operator", "comparison", 0.9,
               ["=", "==", "equals", "is", "at"]),
        _entry("and", "operator", "logical", 0.95,
               ["&", "&&", "also", "plus"]),
        _entry("or", "operator", "logical", 0.95,
               ["|", "||", "either", "alternatively"]),
    ],
    "modifiers": [
        _entry("when", "modifier", "conditional", 0.9,
               ["if", "whenever", "once", "as soon as"]),
        _entry("then", "modifier", "action", 0.9,
               ["do", "execute", "perform", "trigger"]),
        _entry("with", "modifier", "parameter", 0.8,
               ["using", "having", "set to", "configured as"]),
        _entry("strategy", "modifier", "general", 0.8,
               ["system", "method", "approach", "plan"]),
        _entry("create", "modifier", "action", 0.9,
               ["build", "make", "generate", "develop", "design"]),
    ],
}


class VocabularyMatcher:
    """
    Case-insensitive lookup of trading terms.

    Args:
        vocabulary: Category → entries table (defaults to TRADING_VOCABULARY).
        enable_fuzzy_matching: Allow the containment fallback.
        logger: Injected logger (defaults to the module logger).
    """

    def __init__(
        self,
        vocabulary: dict[str, list[VocabularyEntry]] | None = None,
        enable_fuzzy_matching: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._vocabulary = vocabulary if vocabulary is not None else TRADING_VOCABULARY
        self._fuzzy = enable_fuzzy_matching
        self._log = logger or logging.getLogger(__name__)
        self._terms: dict[str, VocabularyEntry] = {}
        self._synonyms: dict[str, VocabularyEntry] = {}

        for entries in self._vocabulary.values():
            for entry in entries:
                self._terms[entry.term.lower()] = entry
                for synonym in entry.synonyms:
                    # First registration wins so a synonym never shadows an earlier entry
                    self._synonyms.setdefault(synonym.lower(), entry)

        self._log.debug(
            "Vocabulary loaded: %d terms, %d synonyms", len(self._terms), len(self._synonyms)
        )

    def find_match(self, term: str) -> VocabularyMatch | None:
        """
        Resolve a word or phrase to its vocabulary entry.

        Returns:
            VocabularyMatch with the (possibly scaled) confidence, or None.
        """
        normalized = " ".join(term.lower().split())
        if not normalized:
            return None

        entry = self._terms.get(normalized)
        if entry is not None:
            return VocabularyMatch(entry, entry.confidence, "exact", normalized)

        entry = self._synonyms.get(normalized)
        if entry is not None:
            return VocabularyMatch(entry, entry.confidence, "synonym", normalized)

        if not self._fuzzy:
            return None
        return self._fuzzy_match(normalized)

    def _fuzzy_match(self, normalized: str) -> VocabularyMatch | None:
        best: VocabularyMatch | None = None
        best_ratio = 0.0
        for key, entry in (*self._terms.items(), *self._synonyms.items()):
            if key in normalized:
                ratio = len(key) / len(normalized)
            elif len(normalized) >= _FUZZY_MIN_PARTIAL_LENGTH and " " not in key and normalized in key:
                ratio = len(normalized) / len(key)
            else:
                continue
            if ratio > _FUZZY_MIN_RATIO and ratio > best_ratio:
                best_ratio = ratio
                best = VocabularyMatch(entry, entry.confidence * ratio, "fuzzy", key)
        return best

    def find_by_category(self, category: str) -> list[VocabularyEntry]:
        return [e for entries in self._vocabulary.values() for e in entries if e.category == category]

    def find_by_token_type(self, token_type: TokenType) -> list[VocabularyEntry]:
        return [e for entries in self._vocabulary.values() for e in entries if e.token_type == token_type]

    def get_all_terms(self) -> list[str]:
        """All canonical terms and synonyms, deduplicated, in insertion order."""
        return list(dict.fromkeys([*self._terms, *self._synonyms]))

    def multi_word_terms(self) -> list[str]:
        """Every term or synonym containing a space, longest first."""
        phrases = [t for t in self.get_all_terms() if " " in t]
        return sorted(phrases, key=lambda t: (-len(t), t))
