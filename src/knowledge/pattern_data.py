"""
STRATEGY-NLP Trading Pattern Tables

### ARCHITECTURAL CONTEXT
Node ID: knowledge.pattern_data

Static catalogue of trend-following, mean-reversion and breakout archetypes
consumed by PatternMatcher. Keywords are lower-case; indicator names use the
same ids the tokenizer emits (rsi, ema, bollinger_bands, ...) or a suffixed
variant (sma_fast, ema_20) that still contains them.
"""

from __future__ import annotations

from src.knowledge.models import TradingPattern


def _pattern(**kwargs) -> TradingPattern:
    for key, value in kwargs.items():
        if isinstance(value, list):
            kwargs[key] = tuple(value)
    return TradingPattern(**kwargs)


# ─── Trend Following ─────────────────────────────────────────────────

TREND_FOLLOWING_PATTERNS: tuple[TradingPattern, ...] = (
    _pattern(
        id="ma_crossover_basic",
        name="Simple Moving Average Crossover",
        description="Buy when the fast moving average crosses above the slow one, sell on the reverse cross",
        strategy_type="trend-following",
        keywords=["moving average", "ma", "sma", "crossover", "cross above", "cross below", "trend"],
        indicators=["sma_fast", "sma_slow"],
        entry_conditions=["fast_ma_crosses_above_slow_ma", "price_above_both_mas", "volume_confirmation"],
        exit_conditions=["fast_ma_crosses_below_slow_ma", "price_below_fast_ma", "stop_loss_hit"],
        risk_management=["stop_loss", "position_sizing", "trend_filter"],
        timeframes=["1h", "4h", "1d"],
        market_conditions=["trending", "volatile"],
        difficulty="beginner",
        success_rate=0.65,
        risk_level="medium",
        examples=[
            "Buy when 20 SMA crosses above 50 SMA",
            "Golden cross strategy with 50 and 200 day moving averages",
        ],
        variations=["EMA crossover", "Triple moving average", "MA crossover with volume filter"],
    ),
    _pattern(
        id="ema_pullback",
        name="EMA Pullback Strategy",
        description="Enter on pullbacks to a rising EMA in an established trend",
        strategy_type="trend-following",
        keywords=["ema", "pullback", "retracement", "bounce", "support", "trend continuation"],
        indicators=["ema_20", "ema_50", "rsi"],
        entry_conditions=[
            "price_pulls_back_to_ema", "ema_acting_as_support",
            "rsi_oversold_in_uptrend", "volume_drying_up_on_pullback",
        ],
        exit_conditions=["price_breaks_below_ema", "trend_reversal_signal", "profit_target_reached"],
        risk_management=["tight_stop_below_ema", "position_sizing", "trend_confirmation"],
        timeframes=["15m", "1h", "4h"],
        market_conditions=["trending", "low_volatility"],
        difficulty="intermediate",
        success_rate=0.72,
        risk_level="medium",
        examples=["Buy pullbacks to the 20 EMA while price holds above the 50 EMA"],
        variations=["Fibonacci pullback", "Multi-timeframe pullback"],
    ),
    _pattern(
        id="breakout_momentum",
        name="Breakout Momentum",
        description="Trade breakouts from consolidation confirmed by momentum and volume",
        strategy_type="trend-following",
        keywords=["breakout", "momentum", "resistance", "support", "volume", "consolidation"],
        indicators=["atr", "volume", "rsi", "macd"],
        entry_conditions=[
            "price_breaks_resistance", "volume_surge_on_breakout",
            "momentum_confirmation", "no_false_breakout",
        ],
        exit_conditions=["momentum_divergence", "volume_dries_up", "pullback_to_breakout_level"],
        risk_management=["stop_below_breakout_level", "position_sizing", "false_breakout_filter"],
        timeframes=["5m", "15m", "1h", "4h"],
        market_conditions=["consolidating", "high_volatility"],
        difficulty="intermediate",
        success_rate=0.68,
        risk_level="high",
        examples=["Buy the break of a multi-week range on twice average volume"],
        variations=["Opening range breakout", "ATR channel breakout"],
    ),
    _pattern(
        id="trend_channel",
        name="Trend Channel Trading",
        description="Buy at channel support and take profit at channel resistance within a trend",
        strategy_type="trend-following",
        keywords=["channel", "trend line", "support", "resistance", "parallel", "bounce"],
        indicators=["trend_lines", "rsi", "stochastic"],
        entry_conditions=[
            "price_bounces_off_channel_support", "oscillator_oversold",
            "trend_still_intact", "volume_confirmation",
        ],
        exit_conditions=["price_reaches_channel_resistance", "channel_break", "trend_reversal"],
        risk_management=["stop_below_channel", "partial_profits", "trend_monitoring"],
        timeframes=["1h", "4h", "1d"],
        market_conditions=["trending", "channeling"],
        difficulty="advanced",
        success_rate=0.75,
        risk_level="medium",
        examples=["Buy at the lower channel line when stochastic is oversold"],
        variations=["Regression channel", "Donchian channel"],
    ),
    _pattern(
        id="momentum_surge",
        name="Momentum Surge",
        description="Ride sharp accelerations confirmed by MACD, RSI and volume",
        strategy_type="trend-following",
        keywords=["momentum", "surge", "acceleration", "macd", "rsi", "volume"],
        indicators=["macd", "rsi", "volume", "atr"],
        entry_conditions=[
            "macd_histogram_expanding", "rsi_breaking_50",
            "volume_above_average", "price_acceleration",
        ],
        exit_conditions=["momentum_divergence", "macd_histogram_contracting", "rsi_overbought"],
        risk_management=["trailing_stop", "momentum_stop", "position_scaling"],
        timeframes=["5m", "15m", "1h"],
        market_conditions=["trending", "high_momentum"],
        difficulty="advanced",
        success_rate=0.70,
        risk_level="high",
        examples=["Buy when the MACD histogram expands and RSI crosses 50 on rising volume"],
        variations=["Relative strength momentum", "Sector rotation momentum"],
    ),
)


# ─── Mean Reversion ──────────────────────────────────────────────────

MEAN_REVERSION_PATTERNS: tuple[TradingPattern, ...] = (
    _pattern(
        id="rsi_oversold_overbought",
        name="RSI Oversold/Overbought",
        description="Buy when RSI is oversold and sell when it is overbought",
        strategy_type="mean-reversion",
        keywords=["rsi", "oversold", "overbought", "mean reversion", "30", "70", "relative strength"],
        indicators=["rsi"],
        entry_conditions=["rsi_below_30", "rsi_above_70", "price_at_support_resistance", "volume_confirmation"],
        exit_conditions=["rsi_returns_to_50", "rsi_opposite_extreme", "price_target_reached"],
        risk_management=["tight_stop_loss", "position_sizing", "market_regime_filter"],
        timeframes=["15m", "1h", "4h", "1d"],
        market_conditions=["ranging", "low_volatility", "sideways"],
        difficulty="beginner",
        success_rate=0.68,
        risk_level="medium",
        examples=["Buy when RSI drops below 30, sell when it rises above 70"],
        variations=["RSI divergence", "RSI with trend filter", "Connors RSI"],
    ),
    _pattern(
        id="bollinger_band_bounce",
        name="Bollinger Band Bounce",
        description="Fade moves to the outer bands back toward the middle band",
        strategy_type="mean-reversion",
        keywords=["bollinger bands", "bb", "bounce", "upper band", "lower band", "squeeze", "expansion"],
        indicators=["bollinger_bands", "rsi"],
        entry_conditions=[
            "price_touches_lower_band", "price_touches_upper_band",
            "band_squeeze_ending", "rsi_confirmation",
        ],
        exit_conditions=["price_reaches_middle_band", "price_reaches_opposite_band", "band_expansion_ends"],
        risk_management=["stop_outside_bands", "partial_profits", "volatility_filter"],
        timeframes=["5m", "15m", "1h", "4h"],
        market_conditions=["ranging", "low_volatility", "mean_reverting"],
        difficulty="intermediate",
        success_rate=0.72,
        risk_level="medium",
        examples=["Buy at the lower Bollinger Band when RSI confirms oversold"],
        variations=["Bollinger squeeze", "Double Bollinger Bands"],
    ),
    _pattern(
        id="stochastic_extremes",
        name="Stochastic Extremes",
        description="Trade %K/%D crosses at stochastic extremes",
        strategy_type="mean-reversion",
        keywords=["stochastic", "stoch", "oversold", "overbought", "%k", "%d", "crossover"],
        indicators=["stochastic", "moving_average"],
        entry_conditions=["stoch_below_20", "stoch_above_80", "stoch_k_crosses_d", "price_near_support_resistance"],
        exit_conditions=["stoch_returns_to_50", "stoch_opposite_extreme", "stoch_divergence"],
        risk_management=["quick_stops", "small_position_size", "trend_filter"],
        timeframes=["5m", "15m", "1h"],
        market_conditions=["ranging", "choppy", "sideways"],
        difficulty="intermediate",
        success_rate=0.65,
        risk_level="medium",
        examples=["Buy when %K crosses above %D below 20"],
        variations=["Slow stochastic", "Stochastic RSI"],
    ),
    _pattern(
        id="support_resistance_bounce",
        name="Support/Resistance Bounce",
        description="Fade tests of well established horizontal levels",
        strategy_type="mean-reversion",
        keywords=["support", "resistance", "bounce", "level", "horizontal", "key level"],
        indicators=["support_resistance_levels", "volume", "rsi"],
        entry_conditions=[
            "price_bounces_off_support", "price_bounces_off_resistance",
            "volume_confirmation", "multiple_touches",
        ],
        exit_conditions=["price_reaches_opposite_level", "level_breaks", "momentum_fades"],
        risk_management=["stop_beyond_level", "position_sizing", "level_strength_filter"],
        timeframes=["1h", "4h", "1d"],
        market_conditions=["ranging", "established_levels", "sideways"],
        difficulty="intermediate",
        success_rate=0.70,
        risk_level="medium",
        examples=["Buy the third test of support with a stop just below the level"],
        variations=["Pivot point bounce", "Round number bounce"],
    ),
    _pattern(
        id="mean_reversion_pullback",
        name="Mean Reversion Pullback",
        description="Buy stretched moves back toward a moving-average mean",
        strategy_type="mean-reversion",
        keywords=["pullback", "retracement", "moving average", "mean", "regression"],
        indicators=["sma_20", "ema_50", "rsi", "macd"],
        entry_conditions=[
            "price_pulls_back_to_ma", "ma_acting_as_support_resistance",
            "oscillator_extreme", "volume_drying_up",
        ],
        exit_conditions=["price_returns_to_range_extreme", "ma_breaks", "oscillator_normalizes"],
        risk_management=["tight_stop_beyond_ma", "quick_profits", "range_filter"],
        timeframes=["15m", "1h", "4h"],
        market_conditions=["ranging", "sideways", "consolidating"],
        difficulty="advanced",
        success_rate=0.73,
        risk_level="low",
        examples=["Buy when price is two ATRs below the 20 SMA and RSI is oversold"],
        variations=["Z-score reversion", "Keltner channel reversion"],
    ),
    _pattern(
        id="contrarian_sentiment",
        name="Contrarian Sentiment",
        description="Trade against extreme fear or greed readings",
        strategy_type="mean-reversion",
        keywords=["contrarian", "sentiment", "extreme", "vix", "put_call_ratio", "fear_greed"],
        indicators=["vix", "put_call_ratio", "rsi", "bollinger_bands"],
        entry_conditions=[
            "extreme_fear_reading", "extreme_greed_reading",
            "high_vix_with_oversold", "sentiment_divergence",
        ],
        exit_conditions=["sentiment_normalizes", "technical_resistance", "momentum_shifts"],
        risk_management=["wide_stops", "small_size", "time_stops"],
        timeframes=["1d", "1w"],
        market_conditions=["extreme_sentiment", "market_stress", "capitulation"],
        difficulty="advanced",
        success_rate=0.75,
        risk_level="high",
        examples=["Buy the index when VIX spikes above 40 and RSI is deeply oversold"],
        variations=["Put/call ratio extremes", "Fear and greed index"],
    ),
)


# ─── Breakout ────────────────────────────────────────────────────────

BREAKOUT_PATTERNS: tuple[TradingPattern, ...] = (
    _pattern(
        id="resistance_breakout",
        name="Resistance Breakout",
        description="Buy a decisive close above a horizontal resistance level",
        strategy_type="breakout",
        keywords=["breakout", "resistance", "break above", "volume", "level", "breakthrough"],
        indicators=["volume", "atr", "rsi"],
        entry_conditions=["price_breaks_resistance", "volume_surge", "strong_momentum", "no_immediate_rejection"],
        exit_conditions=[
            "momentum_fades", "volume_dries_up",
            "pullback_to_breakout_level", "next_resistance_reached",
        ],
        risk_management=["stop_below_breakout_level", "position_sizing", "false_breakout_filter"],
        timeframes=["15m", "1h", "4h", "1d"],
        market_conditions=["consolidating", "range_bound", "accumulation"],
        difficulty="beginner",
        success_rate=0.65,
        risk_level="medium",
        examples=["Buy when price closes above resistance on 1.5x average volume"],
        variations=["Retest entry", "Multiple timeframe breakout"],
    ),
    _pattern(
        id="triangle_breakout",
        name="Triangle Breakout",
        description="Trade the break of a converging triangle or wedge",
        strategy_type="breakout",
        keywords=["triangle", "wedge", "pennant", "consolidation", "compression", "apex"],
        indicators=["volume", "bollinger_bands", "atr"],
        entry_conditions=[
            "triangle_pattern_complete", "breakout_direction_clear",
            "volume_expansion", "volatility_contraction_ending",
        ],
        exit_conditions=["measured_move_complete", "momentum_divergence", "return_to_pattern"],
        risk_management=["stop_inside_triangle", "measured_move_target", "pattern_invalidation"],
        timeframes=["1h", "4h", "1d"],
        market_conditions=["consolidating", "low_volatility", "indecision"],
        difficulty="intermediate",
        success_rate=0.70,
        risk_level="medium",
        examples=["Buy the upside break of an ascending triangle"],
        variations=["Symmetrical triangle", "Falling wedge"],
    ),
    _pattern(
        id="range_breakout",
        name="Range Breakout",
        description="Trade the exit from a well defined horizontal range",
        strategy_type="breakout",
        keywords=["range", "box", "rectangle", "sideways", "horizontal", "channel"],
        indicators=["volume", "rsi", "bollinger_bands"],
        entry_conditions=[
            "clear_range_established", "multiple_touches_of_levels",
            "breakout_with_volume", "momentum_confirmation",
        ],
        exit_conditions=["range_height_measured_move", "momentum_exhaustion", "false_breakout_reversal"],
        risk_management=["stop_back_in_range", "position_sizing", "time_stop"],
        timeframes=["30m", "1h", "4h"],
        market_conditions=["sideways", "range_bound", "consolidation"],
        difficulty="beginner",
        success_rate=0.68,
        risk_level="medium",
        examples=["Buy a break above the range high targeting the range height"],
        variations=["Opening range breakout", "Darvas box"],
    ),
    _pattern(
        id="volatility_breakout",
        name="Volatility Breakout",
        description="Enter when volatility expands out of a compression",
        strategy_type="breakout",
        keywords=["volatility", "expansion", "compression", "atr", "squeeze", "explosion"],
        indicators=["atr", "bollinger_bands", "volume"],
        entry_conditions=[
            "volatility_compression", "atr_at_low_levels",
            "bollinger_band_squeeze", "volume_surge_on_breakout",
        ],
        exit_conditions=["volatility_returns_to_normal", "atr_expansion_complete", "momentum_fades"],
        risk_management=["atr_based_stops", "volatility_position_sizing", "time_based_exits"],
        timeframes=["5m", "15m", "1h", "4h"],
        market_conditions=["low_volatility", "compression", "coiling"],
        difficulty="advanced",
        success_rate=0.72,
        risk_level="high",
        examples=["Buy when price moves more than 1.5 ATR from the open after a squeeze"],
        variations=["Keltner squeeze", "NR7 breakout"],
    ),
    _pattern(
        id="flag_pennant_breakout",
        name="Flag and Pennant Breakout",
        description="Trade continuation breakouts after a brief pause in a strong move",
        strategy_type="breakout",
        keywords=["flag", "pennant", "continuation", "pole", "consolidation", "pause"],
        indicators=["volume", "trend_lines", "momentum"],
        entry_conditions=[
            "strong_initial_move", "flag_pennant_formation",
            "volume_dries_up_in_pattern", "breakout_in_trend_direction",
        ],
        exit_conditions=["flagpole_measured_move", "trend_exhaustion", "volume_climax"],
        risk_management=["stop_below_flag", "trend_following_stops", "momentum_stops"],
        timeframes=["5m", "15m", "1h"],
        market_conditions=["trending", "strong_momentum", "continuation"],
        difficulty="intermediate",
        success_rate=0.75,
        risk_level="medium",
        examples=["Buy the break of a bull flag targeting the flagpole length"],
        variations=["Bear flag", "High tight flag"],
    ),
    _pattern(
        id="gap_breakout",
        name="Gap Breakout",
        description="Trade large opening gaps that hold on heavy volume",
        strategy_type="breakout",
        keywords=["gap", "gap up", "gap down", "opening gap", "breakaway gap"],
        indicators=["volume", "gap_size", "pre_market_volume"],
        entry_conditions=["significant_gap", "gap_in_trend_direction", "high_volume_on_gap", "no_immediate_fill"],
        exit_conditions=["gap_fill_threat", "momentum_exhaustion", "end_of_day_profit_taking"],
        risk_management=["gap_fill_stops", "intraday_exits", "size_based_on_gap"],
        timeframes=["1m", "5m", "15m"],
        market_conditions=["news_driven", "earnings", "high_volatility"],
        difficulty="advanced",
        success_rate=0.60,
        risk_level="high",
        examples=["Buy an earnings gap up that holds the first 15 minute low"],
        variations=["Gap and go", "Gap fill fade"],
    ),
)


# Market-condition fragments used by the volatility filter on breakout patterns
BREAKOUT_VOLATILITY_CONDITIONS: dict[str, tuple[str, ...]] = {
    "low": ("consolidating", "low_volatility", "compression"),
    "medium": ("range_bound", "sideways"),
    "high": ("high_volatility", "news_driven", "earnings"),
}
