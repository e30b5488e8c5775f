"""
STRATEGY-NLP Intent Pattern Catalogue

### ARCHITECTURAL CONTEXT
Node ID: nlp.intent_patterns

Keyword/element templates for the eleven strategy archetypes the intent
extractor recognises. Each template lists keywords, required elements
("category:type", e.g. "indicator:rsi") and optional elements.

Scoring per pattern:
    kw  = keyword hits / keyword count
    req = required elements present / required count
    opt = 0.2 × optional elements present / optional count
    score = min((0.6·kw + 0.4·req + opt) × pattern.confidence, 1)

### CRITICAL INVARIANTS
1. A keyword or element hits when any token contains it or the text does.
2. Only scores strictly above the minimum are returned, best first.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.core.models import StrategyType

_DEFAULT_MIN_CONFIDENCE = 0.3


@dataclass(frozen=True)
class IntentPattern:
    """Template describing one recognisable strategy archetype."""

    id: str
    name: str
    strategy_type: StrategyType
    keywords: tuple[str, ...]
    required_elements: tuple[str, ...]
    optional_elements: tuple[str, ...]
    confidence: float
    examples: tuple[str, ...] = ()
    description: str = ""


@dataclass
class IntentPatternMatch:
    pattern: IntentPattern
    confidence: float
    matched_keywords: list[str] = field(default_factory=list)
    missing_elements: list[str] = field(default_factory=list)


# ─── Catalogue ───────────────────────────────────────────────────────

INTENT_PATTERNS: tuple[IntentPattern, ...] = (
    # Trend following
    IntentPattern(
        id="ma_crossover",
        name="Moving Average Crossover",
        strategy_type="trend-following",
        keywords=("moving average", "ma", "sma", "ema", "crossover", "crosses above", "crosses below"),
        required_elements=("indicator:moving_average", "condition:crossover", "action:buy_sell"),
        optional_elements=("timeframe", "stop_loss", "take_profit"),
        confidence=0.9,
        examples=(
            "Create a strategy where fast MA crosses above slow MA",
            "Buy when 10 SMA crosses above 20 SMA",
            "Moving average crossover strategy",
        ),
        description="Strategy based on moving average crossovers for trend following",
    ),
    IntentPattern(
        id="trend_following_general",
        name="General Trend Following",
        strategy_type="trend-following",
        keywords=("trend", "trending", "breakout", "momentum", "follow", "direction"),
        required_elements=("indicator:trend", "action:buy_sell"),
        optional_elements=("timeframe", "confirmation"),
        confidence=0.7,
        examples=(
            "Create a trend following strategy",
            "Follow the trend with momentum indicators",
        ),
        description="General trend following strategies",
    ),
    # Mean reversion
    IntentPattern(
        id="rsi_oversold_overbought",
        name="RSI Oversold/Overbought",
        strategy_type="mean-reversion",
        keywords=("rsi", "oversold", "overbought", "relative strength", "30", "70"),
        required_elements=("indicator:rsi", "condition:level", "action:buy_sell"),
        optional_elements=("threshold", "timeframe"),
        confidence=0.95,
        examples=(
            "Buy when RSI is below 30",
            "RSI oversold overbought strategy",
            "Sell when RSI above 70, buy when RSI below 30",
        ),
        description="Mean reversion strategy using RSI overbought/oversold levels",
    ),
    IntentPattern(
        id="bollinger_bands_reversion",
        name="Bollinger Bands Mean Reversion",
        strategy_type="mean-reversion",
        keywords=("bollinger bands", "bb", "bands", "upper band", "lower band", "mean reversion"),
        required_elements=("indicator:bollinger_bands", "condition:touch_band", "action:buy_sell"),
        optional_elements=("period", "standard_deviation"),
        confidence=0.9,
        examples=(
            "Buy when price touches lower Bollinger Band",
            "Sell at upper band, buy at lower band",
        ),
        description="Mean reversion strategy using Bollinger Bands",
    ),
    IntentPattern(
        id="mean_reversion_general",
        name="General Mean Reversion",
        strategy_type="mean-reversion",
        keywords=("mean reversion", "revert", "bounce", "support", "resistance", "oversold", "overbought"),
        required_elements=("condition:level", "action:buy_sell"),
        optional_elements=("indicator", "threshold"),
        confidence=0.7,
        examples=("Create a mean reversion strategy", "Buy oversold, sell overbought"),
        description="General mean reversion strategies",
    ),
    # Breakout
    IntentPattern(
        id="price_breakout",
        name="Price Breakout",
        strategy_type="breakout",
        keywords=("breakout", "break above", "break below", "resistance", "support", "level"),
        required_elements=("condition:breakout", "action:buy_sell"),
        optional_elements=("volume", "confirmation"),
        confidence=0.85,
        examples=(
            "Buy when price breaks above resistance",
            "Trade breakouts with volume confirmation",
        ),
        description="Strategy based on price breakouts above/below key levels",
    ),
    IntentPattern(
        id="volatility_breakout",
        name="Volatility Breakout",
        strategy_type="breakout",
        keywords=("volatility", "atr", "range", "expansion", "squeeze"),
        required_elements=("indicator:volatility", "condition:expansion", "action:buy_sell"),
        optional_elements=("period", "multiplier"),
        confidence=0.8,
        examples=("Trade volatility breakouts using ATR", "Buy when volatility expands"),
        description="Strategy based on volatility expansion and breakouts",
    ),
    # Momentum
    IntentPattern(
        id="macd_momentum",
        name="MACD Momentum",
        strategy_type="momentum",
        keywords=("macd", "momentum", "signal line", "histogram", "divergence"),
        required_elements=("indicator:macd", "condition:crossover", "action:buy_sell"),
        optional_elements=("histogram", "zero_line"),
        confidence=0.9,
        examples=("Buy when MACD crosses above signal line", "MACD momentum strategy"),
        description="Momentum strategy using MACD indicator",
    ),
    IntentPattern(
        id="stochastic_momentum",
        name="Stochastic Momentum",
        strategy_type="momentum",
        keywords=("stochastic", "stoch", "%k", "%d", "momentum"),
        required_elements=("indicator:stochastic", "condition:crossover", "action:buy_sell"),
        optional_elements=("overbought", "oversold"),
        confidence=0.85,
        examples=("Buy when Stochastic %K crosses above %D", "Trade stochastic crossovers"),
        description="Momentum strategy using Stochastic oscillator",
    ),
    # Scalping
    IntentPattern(
        id="quick_scalp",
        name="Quick Scalping",
        strategy_type="scalping",
        keywords=("scalp", "scalping", "quick", "fast", "short term", "1m", "5m"),
        required_elements=("timeframe:short", "action:quick_entry_exit"),
        optional_elements=("tight_stops", "small_targets"),
        confidence=0.8,
        examples=("Quick scalping strategy on 1 minute chart", "Short term scalping with tight stops"),
        description="High-frequency scalping strategies",
    ),
    # Custom
    IntentPattern(
        id="multi_indicator",
        name="Multi-Indicator Strategy",
        strategy_type="custom",
        keywords=("multiple", "combine", "confirmation", "filter", "and", "with"),
        required_elements=("indicator:multiple", "condition:multiple", "action:buy_sell"),
        optional_elements=("timeframe", "risk_management"),
        confidence=0.7,
        examples=("Combine RSI and MACD for entries", "Use multiple indicators for confirmation"),
        description="Complex strategies using multiple indicators",
    ),
)


# ─── Element Keywords ────────────────────────────────────────────────

ELEMENT_KEYWORDS: dict[str, dict[str, tuple[str, ...]]] = {
    "indicator": {
        "moving_average": ("ma", "sma", "ema", "moving average", "average"),
        "rsi": ("rsi", "relative strength"),
        "macd": ("macd", "convergence", "divergence"),
        "bollinger_bands": ("bollinger", "bands", "bb"),
        "stochastic": ("stochastic", "stoch"),
        "trend": ("trend", "trending", "direction"),
        "volatility": ("volatility", "atr", "true range"),
        "multiple": ("and", "with", "plus", "combine"),
    },
    "condition": {
        "crossover": ("cross", "crosses", "above", "below"),
        "level": ("above", "below", "over", "under", "threshold"),
        "breakout": ("break", "breakout", "breakthrough"),
        "touch_band": ("touch", "reaches", "hits"),
        "expansion": ("expand", "expansion", "increase"),
        "multiple": ("and", "when", "if"),
    },
    "action": {
        "buy_sell": ("buy", "sell", "long", "short", "enter", "exit"),
        "quick_entry_exit": ("quick", "fast", "scalp", "short term"),
    },
    "timeframe": {
        "short": ("1m", "5m", "15m", "minute", "short", "quick"),
        "medium": ("1h", "4h", "hour", "hourly"),
        "long": ("1d", "daily", "day", "long term"),
    },
}


def _present(keyword: str, tokens: list[str], text: str) -> bool:
    return any(keyword in token for token in tokens) or keyword in text


def has_element(element: str, tokens: list[str], text: str) -> bool:
    """Whether a "category:type" element (or a bare word) appears in tokens or text."""
    category, _, kind = element.partition(":")
    table = ELEMENT_KEYWORDS.get(category)
    if table is None or not kind:
        return _present(element, tokens, text)
    return any(_present(k, tokens, text) for k in table.get(kind, ()))


class IntentPatternMatcher:
    """
    Scores the catalogue against a request.

    Usage:
        matcher = IntentPatternMatcher()
        best = matcher.find_matches(["buy", "rsi", "below", "30"], "buy when rsi is below 30")[0]
        best.pattern.id  # "rsi_oversold_overbought"
    """

    def __init__(self, patterns: tuple[IntentPattern, ...] = INTENT_PATTERNS) -> None:
        self._patterns = list(patterns)

    def find_matches(
        self,
        tokens: list[str],
        text: str,
        min_confidence: float = _DEFAULT_MIN_CONFIDENCE,
    ) -> list[IntentPatternMatch]:
        normalized_text = text.lower()
        normalized_tokens = [t.lower() for t in tokens]
        matches = []
        for pattern in self._patterns:
            match = self.score(pattern, normalized_tokens, normalized_text)
            if match.confidence > min_confidence:
                matches.append(match)
        matches.sort(key=lambda m: -m.confidence)
        return matches

    @staticmethod
    def score(pattern: IntentPattern, tokens: list[str], text: str) -> IntentPatternMatch:
        matched = [k for k in pattern.keywords if _present(k.lower(), tokens, text)]
        keyword_ratio = len(matched) / len(pattern.keywords) if pattern.keywords else 0.0

        missing = [e for e in pattern.required_elements if not has_element(e, tokens, text)]
        required = pattern.required_elements
        required_ratio = (len(required) - len(missing)) / len(required) if required else 0.0

        optional = pattern.optional_elements
        optional_bonus = 0.0
        if optional:
            present = sum(1 for e in optional if has_element(e, tokens, text))
            optional_bonus = 0.2 * present / len(optional)

        base = 0.6 * keyword_ratio + 0.4 * required_ratio
        confidence = min((base + optional_bonus) * pattern.confidence, 1.0)
        return IntentPatternMatch(pattern, confidence, matched, missing)

    def get_all_patterns(self) -> list[IntentPattern]:
        return list(self._patterns)

    def get_patterns_by_type(self, strategy_type: StrategyType) -> list[IntentPattern]:
        return [p for p in self._patterns if p.strategy_type == strategy_type]

    def add_pattern(self, pattern: IntentPattern) -> None:
        self._patterns.append(pattern)
