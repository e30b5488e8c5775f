"""
STRATEGY-NLP Risk Rule Tables

### ARCHITECTURAL CONTEXT
Node ID: knowledge.risk_data

Built-in risk rules and per-strategy risk profiles consumed by
RiskManagementEngine. Percent metrics are whole percents of the account
balance:
  - position_size: proposed position / balance × 100
  - position_risk: position_size × stop distance / 100 (position_size when
    no stop is given, i.e. the whole position is at risk)
  - stop_loss_distance: stop distance in percent, 0 when no stop is set
"""

from __future__ import annotations

from typing import Any

from src.core.models import StrategyType
from src.knowledge.models import (
    BlockTradesAction,
    LimitPositionSizeAction,
    MarketConditionCondition,
    NumericCondition,
    ReduceExposureAction,
    RiskRecommendation,
    RiskRule,
    SetStopLossAction,
    StrategyRiskProfile,
    TimeWindowCondition,
)

_ALL_DIRECTIONAL: tuple[StrategyType, ...] = (
    "trend-following", "mean-reversion", "breakout", "momentum", "scalping",
)


RISK_MANAGEMENT_RULES: tuple[RiskRule, ...] = (
    RiskRule(
        id="max_risk_per_trade",
        name="Maximum Risk Per Trade",
        description="Limit risk per trade to 2% of account balance",
        category="position_sizing",
        applicable_strategies=_ALL_DIRECTIONAL,
        risk_level="conservative",
        conditions=(NumericCondition(
            metric="position_risk", operator="greater_than", value=2,
            description="Position risk exceeds 2% of account",
        ),),
        actions=(LimitPositionSizeAction(
            max_risk_percent=2, description="Reduce position size to limit risk to 2%",
        ),),
        priority=10,
    ),
    RiskRule(
        id="stop_loss_mandatory",
        name="Mandatory Stop Loss",
        description="Ensure all positions have stop loss orders",
        category="stop_loss",
        applicable_strategies=_ALL_DIRECTIONAL,
        risk_level="conservative",
        conditions=(
            NumericCondition(
                metric="position_size", operator="greater_than", value=0,
                description="Any open position",
            ),
            NumericCondition(
                metric="stop_loss_distance", operator="equal_to", value=0,
                description="No stop loss defined",
            ),
        ),
        actions=(SetStopLossAction(
            method="atr_based", atr_multiplier=2, max_loss_percent=3,
            description="Set stop loss based on ATR or 3% max loss",
        ),),
        priority=9,
    ),
    RiskRule(
        id="max_portfolio_exposure",
        name="Maximum Portfolio Exposure",
        description="Limit total portfolio exposure to prevent overleverage",
        category="exposure",
        applicable_strategies=("trend-following", "mean-reversion", "breakout", "momentum"),
        risk_level="moderate",
        conditions=(NumericCondition(
            metric="position_size", operator="greater_than", value=50,
            description="Total portfolio exposure exceeds 50%",
        ),),
        actions=(ReduceExposureAction(
            target_exposure_percent=50, description="Reduce total exposure to 50% of account",
        ),),
        priority=8,
    ),
    RiskRule(
        id="correlation_limit",
        name="Correlation Limit",
        description="Prevent excessive correlation between positions",
        category="correlation",
        applicable_strategies=("trend-following", "mean-reversion", "breakout"),
        risk_level="moderate",
        conditions=(NumericCondition(
            metric="correlation", operator="greater_than", value=0.7,
            description="Position correlation exceeds 70%",
        ),),
        actions=(LimitPositionSizeAction(
            size_multiplier=0.5, description="Reduce position sizes for highly correlated trades",
        ),),
        priority=7,
    ),
    RiskRule(
        id="drawdown_protection",
        name="Drawdown Protection",
        description="Reduce risk during periods of high drawdown",
        category="drawdown",
        applicable_strategies=_ALL_DIRECTIONAL,
        risk_level="conservative",
        conditions=(NumericCondition(
            metric="drawdown", operator="greater_than", value=10,
            description="Account drawdown exceeds 10%",
        ),),
        actions=(LimitPositionSizeAction(
            size_multiplier=0.5, description="Reduce position sizes by 50% during drawdown",
        ),),
        priority=9,
    ),
    RiskRule(
        id="volatility_adjustment",
        name="Volatility-Based Position Sizing",
        description="Adjust position sizes based on market volatility",
        category="position_sizing",
        applicable_strategies=("trend-following", "breakout", "momentum"),
        risk_level="moderate",
        conditions=(NumericCondition(
            metric="volatility", operator="greater_than", value=1.5,
            description="Market volatility is elevated",
        ),),
        actions=(LimitPositionSizeAction(
            description="Reduce position size based on volatility",
        ),),
        priority=6,
    ),
    RiskRule(
        id="scalping_time_limit",
        name="Scalping Time Limit",
        description="Limit scalping trades to specific time windows",
        category="time",
        applicable_strategies=("scalping",),
        risk_level="moderate",
        conditions=(TimeWindowCondition(
            start="09:30", end="16:00", inside=False,
            description="Outside of optimal scalping hours",
        ),),
        actions=(BlockTradesAction(
            reason="outside_optimal_hours", description="Block scalping trades outside market hours",
        ),),
        priority=5,
    ),
    RiskRule(
        id="mean_reversion_trend_filter",
        name="Mean Reversion Trend Filter",
        description="Reduce mean reversion position sizes in strong trends",
        category="position_sizing",
        applicable_strategies=("mean-reversion",),
        risk_level="moderate",
        conditions=(MarketConditionCondition(
            operator="equal_to", value="strong_trend",
            description="Market is in a strong trending phase",
        ),),
        actions=(LimitPositionSizeAction(
            size_multiplier=0.7, description="Reduce mean reversion positions by 30% in trends",
        ),),
        priority=6,
    ),
)


def _profile(strategy_type: StrategyType, base: str, required: list[str], recommended: list[str],
             factors: list[str], mitigations: list[str], optimal_rr: float) -> StrategyRiskProfile:
    return StrategyRiskProfile(
        strategy_type=strategy_type,
        base_risk_level=base,
        required_components=tuple(required),
        recommended_components=tuple(recommended),
        risk_factors=tuple(factors),
        mitigation_strategies=tuple(mitigations),
        optimal_risk_reward=optimal_rr,
    )


STRATEGY_RISK_PROFILES: dict[StrategyType, StrategyRiskProfile] = {
    "trend-following": _profile(
        "trend-following", "medium",
        ["data_source", "trend_indicator", "entry_condition", "exit_condition", "stop_loss"],
        ["take_profit", "position_sizing", "trend_filter", "volume_confirmation"],
        ["trend_reversal", "whipsaws", "late_entries", "extended_drawdowns"],
        ["multiple_timeframe_confirmation", "volume_validation", "proper_stop_placement", "position_sizing"],
        2.5,
    ),
    "mean-reversion": _profile(
        "mean-reversion", "high",
        ["data_source", "oscillator", "overbought_condition", "oversold_condition", "stop_loss"],
        ["take_profit", "trend_filter", "volume_confirmation", "time_filter"],
        ["trending_markets", "false_reversals", "extended_moves", "low_liquidity"],
        ["trend_filtering", "multiple_confirmation", "tight_stops", "time_based_exits"],
        1.8,
    ),
    "breakout": _profile(
        "breakout", "high",
        ["data_source", "support_resistance", "breakout_condition", "volume_confirmation", "stop_loss"],
        ["take_profit", "false_breakout_filter", "momentum_confirmation", "time_filter"],
        ["false_breakouts", "low_volume_breaks", "immediate_reversals", "gap_risk"],
        ["volume_confirmation", "momentum_validation", "proper_stop_placement", "position_scaling"],
        3.0,
    ),
    "momentum": _profile(
        "momentum", "medium",
        ["data_source", "momentum_indicator", "entry_condition", "exit_condition", "stop_loss"],
        ["take_profit", "trend_confirmation", "volume_validation", "overbought_protection"],
        ["momentum_exhaustion", "sudden_reversals", "overextension", "news_events"],
        ["momentum_divergence_check", "profit_taking_levels", "trailing_stops", "position_scaling"],
        2.2,
    ),
    "scalping": _profile(
        "scalping", "very_high",
        ["data_source", "fast_indicator", "entry_condition", "quick_exit", "tight_stop"],
        ["spread_filter", "time_filter", "volume_filter", "news_filter"],
        ["spread_widening", "slippage", "execution_delays", "overtrading"],
        ["tight_risk_control", "execution_optimization", "spread_monitoring", "session_filtering"],
        1.2,
    ),
    "arbitrage": _profile(
        "arbitrage", "low",
        ["data_source", "price_comparison", "execution_speed", "risk_limits"],
        ["latency_monitoring", "spread_filter", "position_sizing", "execution_optimization"],
        ["execution_delays", "spread_compression", "liquidity_gaps", "technology_failures"],
        ["fast_execution", "spread_monitoring", "redundant_systems", "position_limits"],
        1.1,
    ),
    "custom": _profile(
        "custom", "medium",
        ["data_source", "entry_condition", "exit_condition", "stop_loss"],
        ["take_profit", "position_sizing", "risk_management", "validation"],
        ["unknown_behavior", "untested_logic", "parameter_sensitivity", "market_regime_changes"],
        ["thorough_backtesting", "gradual_position_sizing", "continuous_monitoring", "regular_review"],
        2.0,
    ),
}


def component_defaults(component: str, strategy_type: StrategyType) -> dict[str, Any]:
    """Default node parameters for a suggested risk component."""
    scalping = strategy_type == "scalping"
    if component == "stop_loss":
        return {"type": "percentage", "value": 0.5 if scalping else 2.0, "method": "atr_based"}
    if component == "take_profit":
        return {
            "type": "risk_reward",
            "ratio": STRATEGY_RISK_PROFILES[strategy_type].optimal_risk_reward,
            "method": "fixed_ratio",
        }
    if component == "position_sizing":
        return {"method": "fixed_percentage", "riskPerTrade": 0.5 if scalping else 2.0, "maxPositionSize": 10}
    if component == "trend_filter":
        return {"indicator": "sma", "period": 200, "method": "price_above_below"}
    if component == "volume_confirmation":
        return {"indicator": "volume_sma", "period": 20, "threshold": 1.5}
    if component == "time_filter":
        return {"startTime": "09:30", "endTime": "16:00", "timezone": "America/New_York"}
    return {}


# (strategy, component that must be absent, recommendation)
STRATEGY_ADJUSTMENTS: tuple[tuple[StrategyType, str, RiskRecommendation], ...] = (
    ("trend-following", "trend_filter", RiskRecommendation(
        id="trend_multiple_timeframe",
        type="strategy_adjustment",
        priority="high",
        description="Add multiple timeframe trend confirmation",
        implementation="Use higher timeframe trend filter to avoid counter-trend trades",
        expected_impact="Reduces false signals and improves win rate",
        node_type="trend_filter",
    )),
    ("mean-reversion", "trend_filter", RiskRecommendation(
        id="mean_reversion_trend_avoid",
        type="strategy_adjustment",
        priority="critical",
        description="Add trend filter to avoid mean reversion in strong trends",
        implementation="Disable mean reversion signals when price is far from major moving average",
        expected_impact="Prevents trading against strong trends, reducing losses",
        node_type="trend_filter",
    )),
    ("breakout", "volume_confirmation", RiskRecommendation(
        id="breakout_volume_confirm",
        type="strategy_adjustment",
        priority="high",
        description="Add volume confirmation for breakouts",
        implementation="Require above-average volume for valid breakout signals",
        expected_impact="Filters out false breakouts, improving signal quality",
        node_type="volume_confirmation",
    )),
    ("scalping", "spread_filter", RiskRecommendation(
        id="scalping_spread_filter",
        type="strategy_adjustment",
        priority="critical",
        description="Add spread filter for scalping",
        implementation="Block trades when spread is too wide relative to profit target",
        expected_impact="Prevents trades with poor risk-reward due to execution costs",
        node_type="spread_filter",
    )),
)
