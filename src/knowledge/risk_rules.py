"""
STRATEGY-NLP Risk Management Engine

### ARCHITECTURAL CONTEXT
Node ID: knowledge.risk_rules

Evaluates condition → action risk rules against a proposed trade, sizes
positions, grades risk/reward, and audits a strategy's risk components
against its strategy-type profile. Pure computation: assessments are built
fresh on every call and never cached.

Risk score:
    20 + Σ(impact·w)/Σw   (w: low 1, medium 2, high 3, critical 4)
       + 30/20/10 for position > 20%/10%/5% of balance
       + 25 for drawdown > 10
       + 15 for volatility > 2
    capped at 100, bucketed at 20/40/60/80. When no rule triggers the score
    is the bare 20; the drawdown and volatility penalties are not added.

### CRITICAL INVARIANTS
1. risk_score ∈ [0, 100] and overall_risk is monotonic in the score.
2. Recommended position size never exceeds 10% of the account balance.
3. Position-size adjustments only ever shrink the size.
4. A rule triggers only when every one of its conditions holds.

### DESIGN DECISIONS
- Stop-distance scaling divides the base size by the stop fraction and is
  kept only when that is smaller, so it bites only for stops beyond 100%
- Time windows read params.current_time first, then the injected clock
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, time
from typing import Callable, Iterable

from src.core.models import RiskLevel, StrategyType
from src.knowledge.models import (
    CompletenessAssessment,
    MarketConditionCondition,
    NumericCondition,
    PositionSizeResult,
    PositionSizingParameters,
    RangeCondition,
    RiskAssessment,
    RiskCondition,
    RiskFactor,
    RiskParameters,
    RiskRecommendation,
    RiskRewardRatio,
    RiskRule,
    Severity,
    StrategyRiskProfile,
    TimeWindowCondition,
)
from src.knowledge.risk_data import (
    RISK_MANAGEMENT_RULES,
    STRATEGY_ADJUSTMENTS,
    STRATEGY_RISK_PROFILES,
    component_defaults,
)

logger = logging.getLogger(__name__)

RISK_LEVELS: tuple[RiskLevel, ...] = ("very_low", "low", "medium", "high", "very_high")

BASE_RISK_SCORE = 20.0
MAX_POSITION_FRACTION = 0.10

_SEVERITY_WEIGHT: dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}
_SEVERITY_BY_RULE_LEVEL: dict[str, Severity] = {
    "conservative": "low",
    "moderate": "medium",
    "aggressive": "high",
}
_PRIORITY_RANK: dict[str, int] = {"critical": 4, "high": 3, "medium": 2, "low": 1}


def categorize_risk(score: float) -> RiskLevel:
    """Bucket a 0..100 risk score."""
    if score <= 20:
        return "very_low"
    if score <= 40:
        return "low"
    if score <= 60:
        return "medium"
    if score <= 80:
        return "high"
    return "very_high"


def estimate_probability(ratio: float) -> float:
    """Win probability heuristic: bigger targets are hit less often."""
    if ratio >= 3.0:
        return 0.35
    if ratio >= 2.5:
        return 0.40
    if ratio >= 2.0:
        return 0.45
    if ratio >= 1.5:
        return 0.55
    if ratio >= 1.0:
        return 0.65
    return 0.75


class RiskManagementEngine:
    """
    Rule-based risk assessment for trading strategies.

    Args:
        rules: Initial rule set (defaults to the built-in rules).
        clock: Wall-clock source for time-window rules.
        logger: Injected logger (defaults to the module logger).

    Usage:
        engine = RiskManagementEngine()
        params = RiskParameters(account_balance=10_000, proposed_position_size=3_000)
        assessment = engine.assess_risk("trend-following", params)
        assessment.overall_risk   # "very_high"
    """

    def __init__(
        self,
        rules: Iterable[RiskRule] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock
        self._rules: dict[str, RiskRule] = {
            r.id: r for r in (RISK_MANAGEMENT_RULES if rules is None else rules)
        }
        self._log.info(
            "Risk engine initialized: %d rules (%d enabled)",
            len(self._rules), sum(1 for r in self._rules.values() if r.enabled),
        )

    # ─── Assessment ──────────────────────────────────────────────

    def assess_risk(self, strategy_type: StrategyType, params: RiskParameters) -> RiskAssessment:
        """Evaluate every enabled, applicable rule and score the result."""
        factors: list[RiskFactor] = []
        recommendations: list[RiskRecommendation] = []
        applied: list[str] = []
        warnings: list[str] = []

        for rule in self._applicable_rules(strategy_type, enabled_only=True):
            if not all(self._evaluate_condition(c, params) for c in rule.conditions):
                continue
            applied.append(rule.id)
            mitigation = rule.actions[0].description
            factors.append(RiskFactor(
                id=rule.id,
                name=rule.name,
                severity=_SEVERITY_BY_RULE_LEVEL[rule.risk_level],
                impact=rule.priority * 10,
                description=rule.description,
                mitigation=mitigation,
            ))
            recommendations.append(RiskRecommendation(
                id=f"rec_{rule.id}",
                type=rule.category,
                priority="high" if rule.priority > 7 else "medium" if rule.priority > 4 else "low",
                description=rule.description,
                implementation=mitigation,
                expected_impact=f"Reduce risk by following {rule.name}",
            ))
            if rule.priority > 8:
                warnings.append(f"High priority risk rule triggered: {rule.name}")

        score = self._risk_score(factors, params)
        recommendations.extend(self._general_recommendations(params))
        overall = categorize_risk(score)

        self._log.debug(
            "Risk assessed for %s: score=%.1f (%s), %d rules applied",
            strategy_type, score, overall, len(applied),
        )
        return RiskAssessment(
            overall_risk=overall,
            risk_score=score,
            risk_factors=tuple(factors),
            recommendations=tuple(recommendations),
            applied_rules=tuple(applied),
            warnings=tuple(warnings),
        )

    def _metric(self, metric: str, params: RiskParameters) -> float:
        position_pct = params.position_percent
        stop = params.stop_loss_distance or 0.0
        if metric == "account_balance":
            return params.account_balance
        if metric == "position_size":
            return position_pct
        if metric == "position_risk":
            return position_pct * stop / 100.0 if stop > 0 else position_pct
        if metric == "stop_loss_distance":
            return stop
        if metric == "drawdown":
            return params.current_drawdown
        if metric == "volatility":
            return params.volatility
        if metric == "correlation":
            return params.correlation
        raise ValueError(f"Unknown risk metric: {metric}")

    def _evaluate_condition(self, condition: RiskCondition, params: RiskParameters) -> bool:
        if isinstance(condition, NumericCondition):
            value = self._metric(condition.metric, params)
            if condition.operator == "greater_than":
                return value > condition.value
            if condition.operator == "less_than":
                return value < condition.value
            if condition.operator == "equal_to":
                return math.isclose(value, condition.value, abs_tol=1e-9)
            return not math.isclose(value, condition.value, abs_tol=1e-9)

        if isinstance(condition, RangeCondition):
            value = self._metric(condition.metric, params)
            return condition.low <= value <= condition.high

        if isinstance(condition, MarketConditionCondition):
            matches = params.market_condition.lower() == condition.value.lower()
            return matches if condition.operator == "equal_to" else not matches

        if isinstance(condition, TimeWindowCondition):
            now: time = params.current_time or self._clock().time()
            inside = condition.start_time <= now.replace(tzinfo=None) <= condition.end_time
            return inside if condition.inside else not inside

        raise TypeError(f"Unsupported risk condition: {type(condition).__name__}")

    @staticmethod
    def _risk_score(factors: list[RiskFactor], params: RiskParameters) -> float:
        if not factors:
            return BASE_RISK_SCORE

        total_weight = sum(_SEVERITY_WEIGHT[f.severity] for f in factors)
        weighted = sum(f.impact * _SEVERITY_WEIGHT[f.severity] for f in factors) / total_weight

        penalty = 0.0
        ratio = params.proposed_position_size / params.account_balance
        if ratio > 0.2:
            penalty += 30
        elif ratio > 0.1:
            penalty += 20
        elif ratio > 0.05:
            penalty += 10
        if params.current_drawdown > 10:
            penalty += 25
        if params.volatility > 2:
            penalty += 15

        return min(BASE_RISK_SCORE + weighted + penalty, 100.0)

    @staticmethod
    def _general_recommendations(params: RiskParameters) -> list[RiskRecommendation]:
        recs: list[RiskRecommendation] = []
        if params.stop_loss_distance is None:
            recs.append(RiskRecommendation(
                id="general_stop_loss",
                type="stop_loss",
                priority="high",
                description="Add stop loss protection",
                implementation="Set stop loss at 2-3% below entry or based on ATR",
                expected_impact="Limit maximum loss per trade",
            ))
        if params.proposed_position_size > params.account_balance * 0.05:
            recs.append(RiskRecommendation(
                id="general_position_size",
                type="position_sizing",
                priority="medium",
                description="Consider reducing position size",
                implementation="Limit individual positions to 2-5% of account",
                expected_impact="Reduce portfolio concentration risk",
            ))
        return recs

    # ─── Sizing ──────────────────────────────────────────────────

    def calculate_position_size(self, params: PositionSizingParameters) -> PositionSizeResult:
        """
        Fixed-fractional position size with downward-only adjustments.

        Order: stop distance, volatility, confidence, correlation, 10% cap.
        """
        reasoning: list[str] = []
        adjustments: list[str] = []

        size = params.risk_per_trade / 100.0 * params.account_balance
        reasoning.append(f"Base size: {params.risk_per_trade}% of account = ${size:.2f}")

        if params.stop_loss_distance > 0:
            stop_adjusted = size / (params.stop_loss_distance / 100.0)
            if stop_adjusted < size:
                size = stop_adjusted
                adjustments.append(f"Reduced for {params.stop_loss_distance}% stop loss")

        if params.volatility > 1.5:
            factor = 1.0 / math.sqrt(params.volatility)
            size *= factor
            adjustments.append(f"Reduced by {(1 - factor) * 100:.1f}% for high volatility")

        if params.confidence < 0.8:
            size *= params.confidence
            adjustments.append(f"Reduced by {(1 - params.confidence) * 100:.1f}% for low confidence")

        if params.correlation_factor > 0.5:
            factor = 1.0 - (params.correlation_factor - 0.5)
            size *= factor
            adjustments.append(f"Reduced by {(1 - factor) * 100:.1f}% for correlation")

        max_size = params.account_balance * MAX_POSITION_FRACTION
        recommended = min(size, max_size)
        if recommended < size:
            adjustments.append("Capped at 10% of account maximum")

        return PositionSizeResult(
            recommended_size=recommended,
            max_size=max_size,
            reasoning=tuple(reasoning),
            adjustments=tuple(adjustments),
        )

    def calculate_risk_reward_ratio(
        self,
        entry_price: float,
        stop_loss: float,
        take_profit: float,
        probability: float | None = None,
    ) -> RiskRewardRatio:
        """
        Grade reward against risk for a single trade.

        Raises:
            ValueError: stop_loss equals entry_price (risk would be zero).
        """
        risk = abs(entry_price - stop_loss)
        if risk == 0:
            raise ValueError("stop_loss must differ from entry_price")
        reward = abs(take_profit - entry_price)
        ratio = reward / risk

        p = probability if probability is not None else estimate_probability(ratio)
        expected = reward * p - risk * (1 - p)

        if ratio >= 3.0:
            grade = "excellent"
        elif ratio >= 2.0:
            grade = "good"
        elif ratio >= 1.5:
            grade = "acceptable"
        elif ratio >= 1.0:
            grade = "poor"
        else:
            grade = "unacceptable"

        self._log.debug("Risk/reward %.2f → %s", ratio, grade)
        return RiskRewardRatio(
            ratio=ratio,
            risk_amount=risk,
            reward_amount=reward,
            probability=p,
            expected_value=expected,
            recommendation=grade,
        )

    # ─── Strategy Audits ─────────────────────────────────────────

    def suggest_risk_components(
        self, strategy_type: StrategyType, existing_components: Iterable[str]
    ) -> list[RiskRecommendation]:
        """Missing required (critical) and recommended (medium) components plus strategy adjustments."""
        profile = STRATEGY_RISK_PROFILES[strategy_type]
        existing = set(existing_components)
        recs: list[RiskRecommendation] = []

        for component in profile.required_components:
            if component not in existing:
                recs.append(RiskRecommendation(
                    id=f"missing_{component}",
                    type="component_addition",
                    priority="critical",
                    description=f"Missing required component: {component}",
                    implementation=f"Add {component} node to ensure proper risk management",
                    expected_impact="Essential for strategy safety and compliance",
                    node_type=component,
                    parameters=component_defaults(component, strategy_type),
                ))

        for component in profile.recommended_components:
            if component not in existing:
                recs.append(RiskRecommendation(
                    id=f"recommended_{component}",
                    type="component_addition",
                    priority="medium",
                    description=f"Recommended component: {component}",
                    implementation=f"Consider adding {component} node to improve strategy performance",
                    expected_impact="Enhances strategy robustness and performance",
                    node_type=component,
                    parameters=component_defaults(component, strategy_type),
                ))

        for target, component, rec in STRATEGY_ADJUSTMENTS:
            if target == strategy_type and component not in existing:
                recs.append(rec)

        recs.sort(key=lambda r: -_PRIORITY_RANK[r.priority])
        return recs

    def assess_strategy_completeness(
        self, strategy_type: StrategyType, components: Iterable[str]
    ) -> CompletenessAssessment:
        profile = STRATEGY_RISK_PROFILES[strategy_type]
        present = set(components)
        missing_required = [c for c in profile.required_components if c not in present]
        missing_recommended = [c for c in profile.recommended_components if c not in present]

        required_cov = 1 - len(missing_required) / len(profile.required_components)
        recommended_cov = 1 - len(missing_recommended) / len(profile.recommended_components)
        completeness = round(70 * required_cov + 30 * recommended_cov)

        level_idx = RISK_LEVELS.index(profile.base_risk_level)
        level_idx = min(level_idx + len(missing_required), len(RISK_LEVELS) - 1)

        warnings: list[str] = []
        if missing_required:
            warnings.append(f"Missing {len(missing_required)} required risk management components")
        if len(missing_recommended) > 2:
            warnings.append("Strategy lacks several recommended components for optimal performance")
        if completeness < 50:
            warnings.append("Strategy completeness is below acceptable threshold")

        self._log.debug(
            "Completeness %s: %d%% (%d required missing)", strategy_type, completeness, len(missing_required)
        )
        return CompletenessAssessment(
            completeness=completeness,
            missing_required=tuple(missing_required),
            missing_recommended=tuple(missing_recommended),
            risk_level=RISK_LEVELS[level_idx],
            warnings=tuple(warnings),
        )

    def generate_risk_warnings(self, strategy_type: StrategyType, params: RiskParameters) -> list[str]:
        """Human-readable warnings from the strategy's risk factors and trade parameters."""
        warnings: list[str] = []
        for factor in STRATEGY_RISK_PROFILES[strategy_type].risk_factors:
            warning = self._check_risk_factor(factor, params)
            if warning:
                warnings.append(warning)

        if params.proposed_position_size > params.account_balance * MAX_POSITION_FRACTION:
            warnings.append("Position size exceeds 10% of account - consider reducing for better risk management")

        if params.entry_price and params.stop_loss and params.take_profit and params.stop_loss != params.entry_price:
            rr = self.calculate_risk_reward_ratio(params.entry_price, params.stop_loss, params.take_profit)
            if rr.recommendation in ("poor", "unacceptable"):
                warnings.append(
                    f"Risk-reward ratio of {rr.ratio:.2f}:1 is {rr.recommendation} - consider adjusting targets"
                )

        if not params.stop_loss and params.stop_loss_distance is None:
            warnings.append("No stop loss defined - this significantly increases risk exposure")
        return warnings

    @staticmethod
    def _check_risk_factor(factor: str, params: RiskParameters) -> str | None:
        volume, average = params.volume, params.average_volume
        if factor == "trend_reversal" and params.trend_strength is not None and params.trend_strength < 0.3:
            return "Weak trend detected - increased risk of trend reversal"
        if factor == "false_breakouts" and volume is not None and average and volume < average * 0.8:
            return "Low volume breakout detected - increased risk of false breakout"
        if factor == "overextension" and params.rsi_value is not None and params.rsi_value > 80:
            return "Momentum indicator shows overextension - risk of reversal"
        if (factor == "spread_widening" and params.current_spread is not None
                and params.average_spread and params.current_spread > params.average_spread * 2):
            return "Spread is significantly wider than average - execution risk increased"
        if factor == "low_liquidity" and volume is not None and average and volume < average * 0.5:
            return "Low liquidity conditions detected - increased slippage risk"
        return None

    # ─── Rule Management ─────────────────────────────────────────

    def _applicable_rules(self, strategy_type: StrategyType, enabled_only: bool) -> list[RiskRule]:
        rules = [
            r for r in self._rules.values()
            if strategy_type in r.applicable_strategies and (r.enabled or not enabled_only)
        ]
        return sorted(rules, key=lambda r: -r.priority)

    def get_rules_for_strategy(self, strategy_type: StrategyType) -> list[RiskRule]:
        return self._applicable_rules(strategy_type, enabled_only=False)

    def get_rule(self, rule_id: str) -> RiskRule | None:
        return self._rules.get(rule_id)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        """Toggle a rule. Returns False for an unknown id."""
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        self._rules[rule_id] = rule.model_copy(update={"enabled": enabled})
        self._log.info("Rule %s %s", rule_id, "enabled" if enabled else "disabled")
        return True

    def add_custom_rule(self, rule: RiskRule) -> None:
        """Register (or replace) a rule by id."""
        self._rules[rule.id] = rule
        self._log.info("Custom rule added: %s (%s)", rule.id, rule.name)

    def get_strategy_risk_profile(self, strategy_type: StrategyType) -> StrategyRiskProfile:
        return STRATEGY_RISK_PROFILES[strategy_type]

    def get_statistics(self) -> dict:
        rules = list(self._rules.values())
        return {
            "total_rules": len(rules),
            "enabled_rules": sum(1 for r in rules if r.enabled),
            "rules_by_category": dict(Counter(r.category for r in rules)),
            "rules_by_risk_level": dict(Counter(r.risk_level for r in rules)),
        }
