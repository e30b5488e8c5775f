"""
STRATEGY-NLP Knowledge Models

### ARCHITECTURAL CONTEXT
Node ID: knowledge.models

Data contracts for the knowledge base: trading patterns, technical
indicators, risk rules and the results the three engines compute from them.
Static knowledge is frozen and built once at import time; assessments are
computed per call.

### DESIGN DECISIONS
- Risk conditions and actions are discriminated unions keyed by `kind`, so a
  malformed rule fails at construction instead of at evaluation
- Static tables use tuples so frozen models are immutable all the way down
- Parameter names inside indicator tables keep the wire spelling used by the
  parameter extractor (fastPeriod, stdDev, ...)
"""

from __future__ import annotations

import re
from datetime import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.models import Difficulty, RiskLevel, StrategyType


# ─── Shared Literals ─────────────────────────────────────────────────

PatternRisk = Literal["low", "medium", "high"]
Priority = Literal["low", "medium", "high"]
Severity = Literal["low", "medium", "high", "critical"]

IndicatorCategory = Literal["trend", "momentum", "volatility", "volume", "oscillator"]
ParameterType = Literal["int", "float", "source", "string"]
OutputType = Literal["line", "histogram", "cloud", "level"]

RiskCategory = Literal[
    "position_sizing", "stop_loss", "take_profit", "exposure",
    "correlation", "drawdown", "time",
]
RuleRiskLevel = Literal["conservative", "moderate", "aggressive"]
RiskMetric = Literal[
    "account_balance", "position_size", "position_risk", "stop_loss_distance",
    "drawdown", "volatility", "correlation",
]
RecommendationType = Literal[
    "position_sizing", "stop_loss", "take_profit", "exposure", "correlation",
    "drawdown", "time", "diversification", "timing", "strategy_adjustment",
    "risk_reward", "component_addition",
]
RiskRewardGrade = Literal["excellent", "good", "acceptable", "poor", "unacceptable"]


# ─── Patterns ────────────────────────────────────────────────────────

class TradingPattern(BaseModel, frozen=True):
    """Curated strategy archetype used for keyword/indicator overlap scoring."""

    id: str
    name: str
    description: str
    strategy_type: StrategyType
    keywords: tuple[str, ...]
    indicators: tuple[str, ...]
    entry_conditions: tuple[str, ...]
    exit_conditions: tuple[str, ...]
    risk_management: tuple[str, ...]
    timeframes: tuple[str, ...]
    market_conditions: tuple[str, ...]
    difficulty: Difficulty
    success_rate: float = Field(ge=0.0, le=1.0)
    risk_level: PatternRisk
    examples: tuple[str, ...] = ()
    variations: tuple[str, ...] = ()


class PatternMatch(BaseModel, frozen=True):
    pattern: TradingPattern
    confidence: float = Field(ge=0.0, le=1.0)
    matched_keywords: tuple[str, ...] = ()
    matched_indicators: tuple[str, ...] = ()
    strategy_type: StrategyType


class PatternSearchOptions(BaseModel, frozen=True):
    """Optional filters applied after matching. None means 'no filter'."""

    strategy_types: tuple[StrategyType, ...] | None = None
    difficulty: tuple[Difficulty, ...] | None = None
    risk_level: tuple[PatternRisk, ...] | None = None
    timeframes: tuple[str, ...] | None = None
    market_conditions: tuple[str, ...] | None = None
    min_success_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class PatternPreferences(BaseModel, frozen=True):
    experience_level: Difficulty = "beginner"
    risk_tolerance: PatternRisk = "medium"
    preferred_timeframes: tuple[str, ...] = ()
    favorite_indicators: tuple[str, ...] = ()


# ─── Indicators ──────────────────────────────────────────────────────

class IndicatorParameter(BaseModel, frozen=True):
    name: str
    type: ParameterType
    default: Any
    range: tuple[float, float] | None = None
    description: str = ""
    impact: Priority = "medium"

    @property
    def is_numeric(self) -> bool:
        return self.type in ("int", "float")


class IndicatorOutput(BaseModel, frozen=True):
    name: str
    type: OutputType
    description: str = ""
    range: tuple[float, float] | None = None


class IndicatorInterpretation(BaseModel, frozen=True):
    bullish_signals: tuple[str, ...] = ()
    bearish_signals: tuple[str, ...] = ()
    neutral_signals: tuple[str, ...] = ()
    divergence_signals: tuple[str, ...] = ()
    overbought: float | None = None
    oversold: float | None = None


class TechnicalIndicator(BaseModel, frozen=True):
    id: str
    name: str
    category: IndicatorCategory
    description: str
    formula: str | None = None
    parameters: tuple[IndicatorParameter, ...] = ()
    outputs: tuple[IndicatorOutput, ...] = ()
    interpretation: IndicatorInterpretation = Field(default_factory=IndicatorInterpretation)
    use_cases: tuple[str, ...] = ()
    best_timeframes: tuple[str, ...] = ()
    market_conditions: tuple[str, ...] = ()
    combinations: tuple[str, ...] = ()
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    difficulty: Difficulty
    popularity: int = Field(ge=1, le=10)


class CompatibilityRule(BaseModel, frozen=True):
    id: str
    primary_indicator: str
    compatible_indicators: tuple[str, ...]
    incompatible_indicators: tuple[str, ...] = ()
    synergy: str
    conflict_reason: str | None = None
    effectiveness: float = Field(ge=0.0, le=1.0)
    difficulty: Difficulty
    best_use_case: str


class IndicatorSuggestion(BaseModel, frozen=True):
    indicator: TechnicalIndicator
    reason: str
    confidence: float = Field(ge=0.0, le=1.0)
    priority: Priority
    parameters: dict[str, Any] = Field(default_factory=dict)
    implementation: str
    expected_outcome: str


class ParameterOptimization(BaseModel, frozen=True):
    parameter_id: str
    parameter_name: str
    current_value: Any
    optimized_value: Any
    reason: str
    impact: Priority
    market_condition: str = "general"
    confidence: float = Field(ge=0.0, le=1.0)


class CompatiblePair(BaseModel, frozen=True):
    indicators: tuple[str, str]
    synergy: str
    effectiveness: float


class IncompatiblePair(BaseModel, frozen=True):
    indicators: tuple[str, str]
    reason: str


class CompatibilityAnalysis(BaseModel, frozen=True):
    compatible: tuple[CompatiblePair, ...] = ()
    incompatible: tuple[IncompatiblePair, ...] = ()
    suggestions: tuple[IndicatorSuggestion, ...] = ()


class SuitabilityContext(BaseModel, frozen=True):
    strategy_type: StrategyType
    market_condition: str | None = None
    timeframe: str | None = None
    user_level: Difficulty | None = None
    existing_indicators: tuple[str, ...] = ()


class IndicatorAnalysis(BaseModel, frozen=True):
    indicator: TechnicalIndicator
    suitability: float = Field(ge=0.0, le=1.0)
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    parameter_optimizations: tuple[ParameterOptimization, ...] = ()


class ComplementaryPair(BaseModel, frozen=True):
    primary: TechnicalIndicator
    secondary: TechnicalIndicator
    synergy: str
    effectiveness: float


# ─── Risk Rules ──────────────────────────────────────────────────────

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class NumericCondition(BaseModel, frozen=True):
    """Compare a numeric risk metric against a constant."""

    kind: Literal["numeric"] = "numeric"
    metric: RiskMetric
    operator: Literal["greater_than", "less_than", "equal_to", "not_equal_to"]
    value: float
    description: str = ""


class RangeCondition(BaseModel, frozen=True):
    """Inclusive range check on a numeric risk metric."""

    kind: Literal["range"] = "range"
    metric: RiskMetric
    operator: Literal["between"] = "between"
    low: float
    high: float
    description: str = ""

    @model_validator(mode="after")
    def _check_bounds(self) -> RangeCondition:
        if self.low > self.high:
            raise ValueError(f"range low {self.low} exceeds high {self.high}")
        return self


class MarketConditionCondition(BaseModel, frozen=True):
    """Categorical comparison on the reported market regime."""

    kind: Literal["market_condition"] = "market_condition"
    operator: Literal["equal_to", "not_equal_to"]
    value: str
    description: str = ""


class TimeWindowCondition(BaseModel, frozen=True):
    """
    Time-of-day window (HH:MM, local exchange time).

    inside=True triggers within [start, end]; inside=False triggers outside it.
    """

    kind: Literal["time"] = "time"
    operator: Literal["between"] = "between"
    start: str
    end: str
    inside: bool = True
    description: str = ""

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError(f"expected HH:MM, got {v!r}")
        return v

    @property
    def start_time(self) -> time:
        return time.fromisoformat(self.start)

    @property
    def end_time(self) -> time:
        return time.fromisoformat(self.end)


RiskCondition = Annotated[
    Union[NumericCondition, RangeCondition, MarketConditionCondition, TimeWindowCondition],
    Field(discriminator="kind"),
]


class LimitPositionSizeAction(BaseModel, frozen=True):
    kind: Literal["limit_position_size"] = "limit_position_size"
    max_risk_percent: float | None = Field(default=None, gt=0)
    size_multiplier: float | None = Field(default=None, gt=0, le=1)
    description: str


class SetStopLossAction(BaseModel, frozen=True):
    kind: Literal["set_stop_loss"] = "set_stop_loss"
    method: Literal["atr_based", "percentage", "fixed"] = "atr_based"
    atr_multiplier: float = Field(default=2.0, gt=0)
    max_loss_percent: float = Field(default=3.0, gt=0)
    description: str


class SetTakeProfitAction(BaseModel, frozen=True):
    kind: Literal["set_take_profit"] = "set_take_profit"
    risk_reward_ratio: float = Field(default=2.0, gt=0)
    description: str


class ReduceExposureAction(BaseModel, frozen=True):
    kind: Literal["reduce_exposure"] = "reduce_exposure"
    target_exposure_percent: float = Field(gt=0, le=100)
    description: str


class ClosePositionsAction(BaseModel, frozen=True):
    kind: Literal["close_positions"] = "close_positions"
    scope: Literal["all", "losing", "correlated"] = "all"
    description: str


class AlertAction(BaseModel, frozen=True):
    kind: Literal["alert"] = "alert"
    message: str
    description: str


class BlockTradesAction(BaseModel, frozen=True):
    kind: Literal["block_trades"] = "block_trades"
    reason: str
    description: str


RiskAction = Annotated[
    Union[
        LimitPositionSizeAction, SetStopLossAction, SetTakeProfitAction,
        ReduceExposureAction, ClosePositionsAction, AlertAction, BlockTradesAction,
    ],
    Field(discriminator="kind"),
]


class RiskRule(BaseModel, frozen=True):
    """
    Condition → action risk rule. Triggers when every condition holds.
    Toggled through RiskManagementEngine.set_rule_enabled (which swaps in a copy).
    """

    id: str
    name: str
    description: str
    category: RiskCategory
    applicable_strategies: tuple[StrategyType, ...]
    risk_level: RuleRiskLevel
    conditions: tuple[RiskCondition, ...] = Field(min_length=1)
    actions: tuple[RiskAction, ...] = Field(min_length=1)
    priority: int = Field(ge=1, le=10)
    enabled: bool = True


class RiskParameters(BaseModel, frozen=True):
    """
    Inputs to assess_risk / generate_risk_warnings.

    Percent fields are whole percents (2.0 == 2%). Market fields are optional
    and only feed the warning generator.
    """

    account_balance: float = Field(gt=0)
    proposed_position_size: float = Field(default=0.0, ge=0)
    stop_loss_distance: float | None = Field(default=None, ge=0)
    take_profit_distance: float | None = Field(default=None, ge=0)
    current_drawdown: float = Field(default=0.0, ge=0)
    volatility: float = Field(default=1.0, ge=0)
    correlation: float = Field(default=0.0, ge=0, le=1)
    market_condition: str = "normal"
    current_time: time | None = None

    entry_price: float | None = Field(default=None, gt=0)
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit: float | None = Field(default=None, gt=0)
    trend_strength: float | None = None
    volume: float | None = Field(default=None, ge=0)
    average_volume: float | None = Field(default=None, ge=0)
    rsi_value: float | None = None
    current_spread: float | None = Field(default=None, ge=0)
    average_spread: float | None = Field(default=None, ge=0)

    @property
    def position_percent(self) -> float:
        return self.proposed_position_size / self.account_balance * 100.0


class RiskFactor(BaseModel, frozen=True):
    id: str
    name: str
    severity: Severity
    impact: float = Field(ge=0.0, le=100.0)
    description: str
    mitigation: str | None = None


class RiskRecommendation(BaseModel, frozen=True):
    id: str
    type: RecommendationType
    priority: Severity
    description: str
    implementation: str
    expected_impact: str
    node_type: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class RiskAssessment(BaseModel, frozen=True):
    overall_risk: RiskLevel
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_factors: tuple[RiskFactor, ...] = ()
    recommendations: tuple[RiskRecommendation, ...] = ()
    applied_rules: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


class PositionSizingParameters(BaseModel, frozen=True):
    account_balance: float = Field(gt=0)
    risk_per_trade: float = Field(ge=0, description="Percent of balance")
    stop_loss_distance: float = Field(default=2.0, ge=0, description="Percent from entry")
    volatility: float = Field(default=1.0, ge=0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    correlation_factor: float = Field(default=0.0, ge=0.0, le=1.0)


class PositionSizeResult(BaseModel, frozen=True):
    recommended_size: float
    max_size: float
    reasoning: tuple[str, ...] = ()
    adjustments: tuple[str, ...] = ()


class RiskRewardRatio(BaseModel, frozen=True):
    ratio: float
    risk_amount: float
    reward_amount: float
    probability: float = Field(ge=0.0, le=1.0)
    expected_value: float
    recommendation: RiskRewardGrade


class StrategyRiskProfile(BaseModel, frozen=True):
    strategy_type: StrategyType
    base_risk_level: RiskLevel
    required_components: tuple[str, ...]
    recommended_components: tuple[str, ...]
    risk_factors: tuple[str, ...]
    mitigation_strategies: tuple[str, ...]
    optimal_risk_reward: float = Field(gt=0)


class CompletenessAssessment(BaseModel, frozen=True):
    completeness: int = Field(ge=0, le=100)
    missing_required: tuple[str, ...] = ()
    missing_recommended: tuple[str, ...] = ()
    risk_level: RiskLevel
    warnings: tuple[str, ...] = ()


# ─── Knowledge Base ──────────────────────────────────────────────────

class KnowledgeQuery(BaseModel, frozen=True):
    keywords: tuple[str, ...] = ()
    indicators: tuple[str, ...] = ()
    conditions: tuple[str, ...] = ()
    strategy_type: StrategyType | None = None
    difficulty: Difficulty | None = None
    risk_level: PatternRisk | None = None
    timeframe: str | None = None
    market_condition: str | None = None
    risk_parameters: RiskParameters | None = None


class KnowledgeRecommendation(BaseModel, frozen=True):
    id: str
    type: Literal["pattern", "indicator", "risk", "combination", "education"]
    priority: Priority
    title: str
    description: str
    reasoning: str
    implementation: str | None = None
    related_concepts: tuple[str, ...] = ()


class KnowledgeResult(BaseModel, frozen=True):
    patterns: tuple[PatternMatch, ...] = ()
    indicators: tuple[TechnicalIndicator, ...] = ()
    risk_assessment: RiskAssessment | None = None
    recommendations: tuple[KnowledgeRecommendation, ...] = Field(default=(), max_length=5)
    confidence: float = Field(ge=0.0, le=1.0)
    processing_time: float = 0.0  # ms


class IndicatorCombination(BaseModel, frozen=True):
    id: str
    name: str
    indicators: tuple[str, ...]
    strategy_types: tuple[StrategyType, ...]
    description: str
    synergy: str
    difficulty: Difficulty
    effectiveness: float = Field(ge=0.0, le=1.0)


class CombinationFilters(BaseModel, frozen=True):
    strategy_type: StrategyType | None = None
    difficulty: Difficulty | None = None
    indicators: tuple[str, ...] = ()
    min_effectiveness: float | None = Field(default=None, ge=0.0, le=1.0)


class EducationalContent(BaseModel, frozen=True):
    id: str
    title: str
    category: Literal["concept", "strategy", "indicator", "risk", "market"]
    difficulty: Difficulty
    content: str
    examples: tuple[str, ...] = ()
    related_topics: tuple[str, ...] = ()
    key_takeaways: tuple[str, ...] = ()


class StrategyKnowledge(BaseModel, frozen=True):
    patterns: tuple[TradingPattern, ...] = ()
    indicators: tuple[TechnicalIndicator, ...] = ()
    risk_rules: tuple[RiskRule, ...] = ()
    combinations: tuple[IndicatorCombination, ...] = ()
    educational_content: tuple[EducationalContent, ...] = ()


class UserProfile(BaseModel, frozen=True):
    experience_level: Difficulty = "beginner"
    risk_tolerance: PatternRisk = "medium"
    preferred_timeframes: tuple[str, ...] = ()
    favorite_indicators: tuple[str, ...] = ()
    preferred_strategies: tuple[StrategyType, ...] = ()


class ParameterGuidance(BaseModel, frozen=True):
    parameter: str
    guidance: str
    impact: Priority


class IndicatorKnowledge(BaseModel, frozen=True):
    indicator: TechnicalIndicator | None = None
    compatible_indicators: tuple[TechnicalIndicator, ...] = ()
    use_cases: tuple[str, ...] = ()
    parameter_guidance: tuple[ParameterGuidance, ...] = ()


class SearchResults(BaseModel, frozen=True):
    patterns: tuple[PatternMatch, ...] = ()
    indicators: tuple[TechnicalIndicator, ...] = ()
    combinations: tuple[IndicatorCombination, ...] = ()
