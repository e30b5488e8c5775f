"""
STRATEGY-NLP Indicator Tables

### ARCHITECTURAL CONTEXT
Node ID: knowledge.indicator_data

Static technical-indicator definitions, pairwise compatibility rules and the
strategy → indicator map consumed by IndicatorDatabase. Parameter names keep
the spelling used in strategy parameter maps (period, stdDev, fastPeriod ...).
"""

from __future__ import annotations

from src.core.models import StrategyType
from src.knowledge.models import (
    CompatibilityRule,
    IndicatorInterpretation as Interp,
    IndicatorOutput as Out,
    IndicatorParameter as Param,
    TechnicalIndicator,
)

_SOURCE = Param(name="source", type="source", default="close",
                description="Price series the indicator is computed on", impact="medium")


# ─── Technical Indicators ────────────────────────────────────────────

TECHNICAL_INDICATORS: tuple[TechnicalIndicator, ...] = (
    TechnicalIndicator(
        id="rsi",
        name="Relative Strength Index",
        category="oscillator",
        description="Momentum oscillator that measures the speed and magnitude of price changes",
        formula="RSI = 100 - (100 / (1 + RS)), RS = average gain / average loss",
        parameters=(
            Param(name="period", type="int", default=14, range=(2, 50),
                  description="Lookback period for average gain and loss", impact="high"),
            _SOURCE,
        ),
        outputs=(Out(name="rsi", type="line", description="RSI value", range=(0, 100)),),
        interpretation=Interp(
            bullish_signals=("RSI crosses above 30 from oversold", "Bullish divergence with price"),
            bearish_signals=("RSI crosses below 70 from overbought", "Bearish divergence with price"),
            neutral_signals=("RSI oscillating around 50",),
            divergence_signals=("Price makes a lower low while RSI makes a higher low",),
            overbought=70,
            oversold=30,
        ),
        use_cases=(
            "Identify overbought/oversold conditions", "Spot momentum divergences",
            "Confirm trend strength", "Generate entry/exit signals",
        ),
        best_timeframes=("15m", "1h", "4h", "1d"),
        market_conditions=("ranging", "trending", "volatile"),
        combinations=("bollinger_bands", "macd", "moving_averages", "stochastic"),
        strengths=("Clear overbought/oversold levels", "Works across markets", "Easy to read"),
        weaknesses=("Stays overbought in strong trends", "Lagging in fast reversals"),
        difficulty="beginner",
        popularity=9,
    ),
    TechnicalIndicator(
        id="sma",
        name="Simple Moving Average",
        category="trend",
        description="Arithmetic mean of price over a fixed period that smooths price action",
        formula="SMA = sum(close, n) / n",
        parameters=(
            Param(name="period", type="int", default=20, range=(1, 200),
                  description="Number of bars averaged", impact="high"),
            _SOURCE,
        ),
        outputs=(Out(name="sma", type="line", description="Moving average value"),),
        interpretation=Interp(
            bullish_signals=("Price crosses above the SMA", "Fast SMA crosses above slow SMA"),
            bearish_signals=("Price crosses below the SMA", "Fast SMA crosses below slow SMA"),
            neutral_signals=("Flat SMA with price oscillating around it",),
        ),
        use_cases=(
            "Identify trend direction", "Dynamic support/resistance levels",
            "Crossover strategies", "Trend confirmation",
        ),
        best_timeframes=("1h", "4h", "1d", "1w"),
        market_conditions=("trending", "stable"),
        combinations=("ema", "rsi", "macd", "bollinger_bands"),
        strengths=("Simple and widely followed", "Filters noise"),
        weaknesses=("Lags price", "Whipsaws in ranging markets"),
        difficulty="beginner",
        popularity=10,
    ),
    TechnicalIndicator(
        id="ema",
        name="Exponential Moving Average",
        category="trend",
        description="Moving average that weights recent prices more heavily",
        formula="EMA = close * k + EMA_prev * (1 - k), k = 2 / (n + 1)",
        parameters=(
            Param(name="period", type="int", default=20, range=(1, 200),
                  description="Smoothing period", impact="high"),
            _SOURCE,
        ),
        outputs=(Out(name="ema", type="line", description="Exponential moving average value"),),
        interpretation=Interp(
            bullish_signals=("Price holds above a rising EMA", "Fast EMA crosses above slow EMA"),
            bearish_signals=("Price breaks below a falling EMA", "Fast EMA crosses below slow EMA"),
            neutral_signals=("EMA flattening",),
        ),
        use_cases=(
            "Trend following strategies", "Dynamic support/resistance",
            "Crossover systems", "Pullback entries",
        ),
        best_timeframes=("15m", "1h", "4h", "1d"),
        market_conditions=("trending", "volatile"),
        combinations=("sma", "rsi", "macd", "stochastic"),
        strengths=("Reacts faster than the SMA", "Good for pullback entries"),
        weaknesses=("More false signals than the SMA", "Still lags at turning points"),
        difficulty="beginner",
        popularity=9,
    ),
    TechnicalIndicator(
        id="macd",
        name="Moving Average Convergence Divergence",
        category="momentum",
        description="Trend-following momentum indicator built from two EMAs and a signal line",
        formula="MACD = EMA(fast) - EMA(slow); Signal = EMA(MACD, signal); Histogram = MACD - Signal",
        parameters=(
            Param(name="fastPeriod", type="int", default=12, range=(5, 50),
                  description="Fast EMA period", impact="high"),
            Param(name="slowPeriod", type="int", default=26, range=(10, 100),
                  description="Slow EMA period", impact="high"),
            Param(name="signalPeriod", type="int", default=9, range=(3, 30),
                  description="Signal line EMA period", impact="medium"),
        ),
        outputs=(
            Out(name="macd", type="line", description="MACD line"),
            Out(name="signal", type="line", description="Signal line"),
            Out(name="histogram", type="histogram", description="MACD minus signal"),
        ),
        interpretation=Interp(
            bullish_signals=("MACD crosses above signal", "Histogram turns positive"),
            bearish_signals=("MACD crosses below signal", "Histogram turns negative"),
            neutral_signals=("MACD hugging the zero line",),
            divergence_signals=("Histogram peaks diverge from price peaks",),
        ),
        use_cases=(
            "Trend change identification", "Momentum analysis",
            "Divergence detection", "Entry/exit timing",
        ),
        best_timeframes=("1h", "4h", "1d"),
        market_conditions=("trending", "momentum"),
        combinations=("rsi", "stochastic", "bollinger_bands", "moving_averages"),
        strengths=("Combines trend and momentum", "Clear crossover signals"),
        weaknesses=("Lags in choppy markets", "No fixed overbought/oversold levels"),
        difficulty="intermediate",
        popularity=8,
    ),
    TechnicalIndicator(
        id="bollinger_bands",
        name="Bollinger Bands",
        category="volatility",
        description="Volatility bands placed standard deviations above and below a moving average",
        formula="Middle = SMA(n); Upper/Lower = Middle ± k * StdDev(n)",
        parameters=(
            Param(name="period", type="int", default=20, range=(5, 50),
                  description="Moving average period", impact="high"),
            Param(name="stdDev", type="float", default=2.0, range=(1, 3),
                  description="Band width in standard deviations", impact="high"),
            _SOURCE,
        ),
        outputs=(
            Out(name="upper", type="line", description="Upper band"),
            Out(name="middle", type="line", description="Middle band (SMA)"),
            Out(name="lower", type="line", description="Lower band"),
        ),
        interpretation=Interp(
            bullish_signals=("Price bounces off the lower band", "Squeeze resolves upward"),
            bearish_signals=("Price rejects the upper band", "Squeeze resolves downward"),
            neutral_signals=("Price walking the middle band",),
        ),
        use_cases=(
            "Volatility analysis", "Mean reversion strategies",
            "Breakout identification", "Overbought/oversold conditions",
        ),
        best_timeframes=("15m", "1h", "4h", "1d"),
        market_conditions=("ranging", "volatile", "trending"),
        combinations=("rsi", "stochastic", "volume", "macd"),
        strengths=("Adapts to volatility", "Highlights squeezes"),
        weaknesses=("Band touches are not signals by themselves", "Price can walk the band in trends"),
        difficulty="intermediate",
        popularity=8,
    ),
    TechnicalIndicator(
        id="stochastic",
        name="Stochastic Oscillator",
        category="oscillator",
        description="Compares the close to the recent high-low range to gauge momentum",
        formula="%K = (close - lowest low) / (highest high - lowest low) * 100; %D = SMA(%K)",
        parameters=(
            Param(name="kPeriod", type="int", default=14, range=(5, 50),
                  description="%K lookback", impact="high"),
            Param(name="dPeriod", type="int", default=3, range=(1, 10),
                  description="%D smoothing", impact="medium"),
            Param(name="smooth", type="int", default=3, range=(1, 10),
                  description="%K smoothing", impact="low"),
        ),
        outputs=(
            Out(name="k", type="line", description="%K line", range=(0, 100)),
            Out(name="d", type="line", description="%D line", range=(0, 100)),
        ),
        interpretation=Interp(
            bullish_signals=("%K crosses above %D below 20",),
            bearish_signals=("%K crosses below %D above 80",),
            neutral_signals=("Both lines near 50",),
            divergence_signals=("Stochastic higher low against a price lower low",),
            overbought=80,
            oversold=20,
        ),
        use_cases=(
            "Momentum analysis", "Overbought/oversold identification",
            "Divergence detection", "Short-term timing",
        ),
        best_timeframes=("5m", "15m", "1h", "4h"),
        market_conditions=("ranging", "volatile", "sideways"),
        combinations=("rsi", "macd", "moving_averages", "bollinger_bands"),
        strengths=("Sensitive to turning points", "Good in ranges"),
        weaknesses=("Noisy on low timeframes", "Frequent false signals in trends"),
        difficulty="intermediate",
        popularity=7,
    ),
    TechnicalIndicator(
        id="atr",
        name="Average True Range",
        category="volatility",
        description="Average of the true range that measures market volatility",
        formula="TR = max(high - low, |high - prev close|, |low - prev close|); ATR = EMA(TR, n)",
        parameters=(
            Param(name="period", type="int", default=14, range=(5, 50),
                  description="Averaging period", impact="high"),
        ),
        outputs=(Out(name="atr", type="line", description="Average true range"),),
        interpretation=Interp(
            bullish_signals=("Rising ATR on an upside breakout",),
            bearish_signals=("Rising ATR on a downside breakout",),
            neutral_signals=("Falling ATR during consolidation",),
        ),
        use_cases=(
            "Stop loss placement", "Position sizing",
            "Volatility analysis", "Breakout confirmation",
        ),
        best_timeframes=("1h", "4h", "1d"),
        market_conditions=("all",),
        combinations=("bollinger_bands", "rsi", "macd", "moving_averages"),
        strengths=("Objective volatility measure", "Ideal for stop placement"),
        weaknesses=("No directional information",),
        difficulty="intermediate",
        popularity=6,
    ),
)


# ─── Oscillators ─────────────────────────────────────────────────────

OSCILLATOR_INDICATORS: tuple[TechnicalIndicator, ...] = (
    TechnicalIndicator(
        id="williams_r",
        name="Williams %R",
        category="oscillator",
        description="Momentum oscillator that measures overbought and oversold levels against the recent range",
        formula="%R = (highest high - close) / (highest high - lowest low) * -100",
        parameters=(
            Param(name="period", type="int", default=14, range=(5, 50),
                  description="Lookback period", impact="high"),
        ),
        outputs=(Out(name="williams_r", type="line", description="Williams %R", range=(-100, 0)),),
        interpretation=Interp(
            bullish_signals=("%R rises back above -80",),
            bearish_signals=("%R falls back below -20",),
            neutral_signals=("%R around -50",),
            overbought=-20,
            oversold=-80,
        ),
        use_cases=(
            "Overbought/oversold identification", "Short-term reversal timing",
            "Momentum confirmation",
        ),
        best_timeframes=("5m", "15m", "1h", "4h"),
        market_conditions=("ranging", "volatile", "sideways"),
        combinations=("rsi", "stochastic", "bollinger_bands"),
        strengths=("Very responsive", "Clear extremes"),
        weaknesses=("Whipsaws in trends", "Noisy"),
        difficulty="intermediate",
        popularity=6,
    ),
    TechnicalIndicator(
        id="cci",
        name="Commodity Channel Index",
        category="oscillator",
        description="Momentum oscillator that identifies cyclical trends and overbought/oversold conditions",
        formula="CCI = (Typical Price - SMA) / (0.015 * Mean Deviation)",
        parameters=(
            Param(name="period", type="int", default=20, range=(10, 50),
                  description="Lookback period", impact="high"),
        ),
        outputs=(Out(name="cci", type="line", description="Commodity Channel Index"),),
        interpretation=Interp(
            bullish_signals=("CCI crosses above -100", "CCI breaks above +100 in a new trend"),
            bearish_signals=("CCI crosses below +100", "CCI breaks below -100 in a new trend"),
            neutral_signals=("CCI between -100 and +100",),
            overbought=100,
            oversold=-100,
        ),
        use_cases=(
            "Identify cyclical turning points", "Overbought/oversold analysis",
            "Trend strength measurement", "Divergence detection",
        ),
        best_timeframes=("15m", "1h", "4h", "1d"),
        market_conditions=("trending", "cyclical", "volatile"),
        combinations=("rsi", "macd", "bollinger_bands"),
        strengths=("Unbounded, shows trend strength", "Works on any market"),
        weaknesses=("No fixed range", "Requires experience to read"),
        difficulty="advanced",
        popularity=5,
    ),
    TechnicalIndicator(
        id="roc",
        name="Rate of Change",
        category="momentum",
        description="Momentum oscillator that measures the percentage change in price over a specified period",
        formula="ROC = ((Close - Close_n) / Close_n) * 100",
        parameters=(
            Param(name="period", type="int", default=12, range=(5, 50),
                  description="Lookback period", impact="high"),
        ),
        outputs=(Out(name="roc", type="line", description="Percent change"),),
        interpretation=Interp(
            bullish_signals=("ROC crosses above zero",),
            bearish_signals=("ROC crosses below zero",),
            neutral_signals=("ROC near zero",),
        ),
        use_cases=(
            "Momentum analysis", "Trend strength measurement",
            "Identify momentum shifts", "Compare relative performance",
        ),
        best_timeframes=("1h", "4h", "1d", "1w"),
        market_conditions=("trending", "momentum"),
        combinations=("macd", "rsi", "moving_averages"),
        strengths=("Simple to compute", "Good for ranking instruments"),
        weaknesses=("Sensitive to the reference bar", "No fixed extremes"),
        difficulty="beginner",
        popularity=6,
    ),
)

ALL_INDICATORS: tuple[TechnicalIndicator, ...] = TECHNICAL_INDICATORS + OSCILLATOR_INDICATORS

OSCILLATOR_SENSITIVITY: dict[str, tuple[str, ...]] = {
    "high": ("williams_r", "stochastic"),
    "medium": ("rsi", "cci"),
    "low": ("roc", "macd"),
}

# (primary, secondary, synergy, effectiveness)
COMPLEMENTARY_PAIRS: tuple[tuple[str, str, str, float], ...] = (
    ("rsi", "williams_r", "Dual oscillator confirmation of overbought/oversold extremes", 0.75),
    ("cci", "roc", "Cyclical turning points confirmed by raw momentum", 0.70),
)


# ─── Compatibility ───────────────────────────────────────────────────

COMPATIBILITY_RULES: tuple[CompatibilityRule, ...] = (
    CompatibilityRule(
        id="rsi_bollinger_synergy",
        primary_indicator="rsi",
        compatible_indicators=("bollinger_bands", "stochastic"),
        incompatible_indicators=("macd",),
        synergy="RSI confirms band touches as true overbought/oversold extremes",
        conflict_reason="RSI and MACD both measure momentum and duplicate signals",
        effectiveness=0.85,
        difficulty="beginner",
        best_use_case="Mean reversion in ranging markets",
    ),
    CompatibilityRule(
        id="macd_ema_synergy",
        primary_indicator="macd",
        compatible_indicators=("ema", "sma", "atr"),
        incompatible_indicators=("rsi", "stochastic"),
        synergy="Moving averages define the trend, MACD times entries within it",
        conflict_reason="Oscillators contradict MACD in strong trends",
        effectiveness=0.80,
        difficulty="intermediate",
        best_use_case="Trend following with momentum timing",
    ),
    CompatibilityRule(
        id="bollinger_atr_synergy",
        primary_indicator="bollinger_bands",
        compatible_indicators=("atr", "rsi"),
        incompatible_indicators=("macd",),
        synergy="ATR sizes stops around band-based entries",
        conflict_reason="MACD lags band signals in ranges",
        effectiveness=0.75,
        difficulty="intermediate",
        best_use_case="Volatility breakouts and squeezes",
    ),
    CompatibilityRule(
        id="stochastic_sma_synergy",
        primary_indicator="stochastic",
        compatible_indicators=("sma", "ema", "rsi"),
        incompatible_indicators=("macd",),
        synergy="A moving-average trend filter keeps stochastic entries with the trend",
        conflict_reason="MACD crossovers lag stochastic timing",
        effectiveness=0.70,
        difficulty="intermediate",
        best_use_case="Pullback timing within a trend",
    ),
    CompatibilityRule(
        id="ema_sma_synergy",
        primary_indicator="ema",
        compatible_indicators=("sma", "macd", "atr"),
        synergy="Fast EMA against slow SMA gives robust crossover signals",
        effectiveness=0.78,
        difficulty="beginner",
        best_use_case="Moving average crossover systems",
    ),
    CompatibilityRule(
        id="atr_universal_synergy",
        primary_indicator="atr",
        compatible_indicators=("rsi", "macd", "bollinger_bands", "ema", "sma", "stochastic"),
        synergy="ATR adds volatility-aware stops and sizing to any signal",
        effectiveness=0.90,
        difficulty="intermediate",
        best_use_case="Risk management for any strategy",
    ),
)


STRATEGY_INDICATOR_MAP: dict[StrategyType, tuple[str, ...]] = {
    "trend-following": ("ema", "sma", "macd", "atr"),
    "mean-reversion": ("rsi", "bollinger_bands", "stochastic"),
    "breakout": ("bollinger_bands", "atr", "ema"),
    "momentum": ("macd", "rsi", "stochastic"),
    "scalping": ("stochastic", "ema", "atr"),
    "custom": ("rsi", "ema", "macd", "bollinger_bands"),
}
