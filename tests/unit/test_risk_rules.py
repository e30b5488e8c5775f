"""
STRATEGY-NLP Tests: Risk Management Engine

Node ID: tests.unit.test_risk_rules
Graph Link: tested_by → knowledge.risk_rules

Tests cover:
- Rule evaluation (numeric, range, market-condition, time-window)
- Risk score composition, cap and bucketing
- Position sizing adjustments and the 10% cap
- Risk/reward grading
- Strategy completeness, component suggestions and warnings
- Rule management (toggle, custom rules)
"""

from __future__ import annotations

from datetime import datetime, time

import pytest

from src.knowledge.models import (
    AlertAction,
    PositionSizingParameters,
    RangeCondition,
    RiskParameters,
    RiskRule,
)
from src.knowledge.risk_rules import RiskManagementEngine, categorize_risk, estimate_probability


@pytest.fixture
def engine() -> RiskManagementEngine:
    return RiskManagementEngine(clock=lambda: datetime(2024, 1, 2, 12, 0))


def _safe_params(**overrides) -> RiskParameters:
    base = {"account_balance": 10_000, "proposed_position_size": 100, "stop_loss_distance": 2.0}
    base.update(overrides)
    return RiskParameters(**base)


class TestHelpers:
    @pytest.mark.parametrize(
        "score, level",
        [(0, "very_low"), (20, "very_low"), (20.1, "low"), (40, "low"), (55, "medium"),
         (80, "high"), (80.5, "very_high"), (100, "very_high")],
    )
    def test_categorize_risk(self, score, level):
        assert categorize_risk(score) == level

    def test_probability_decreases_with_ratio(self):
        assert estimate_probability(3.0) == 0.35
        assert estimate_probability(1.2) == 0.65
        assert estimate_probability(0.5) == 0.75


class TestAssessRisk:
    def test_oversized_position_without_stop(self, engine):
        params = RiskParameters(account_balance=10_000, proposed_position_size=3_000)
        assessment = engine.assess_risk("trend-following", params)
        assert assessment.applied_rules == ("max_risk_per_trade", "stop_loss_mandatory")
        assert assessment.risk_score == 100.0
        assert assessment.overall_risk == "very_high"
        assert len(assessment.warnings) == 2
        rec_ids = {r.id for r in assessment.recommendations}
        assert {"general_stop_loss", "general_position_size"} <= rec_ids

    def test_small_protected_position(self, engine):
        assessment = engine.assess_risk("trend-following", _safe_params())
        assert assessment.applied_rules == ()
        assert assessment.risk_score == 20.0
        assert assessment.overall_risk == "very_low"
        assert assessment.recommendations == ()

    def test_no_triggered_rule_skips_penalties(self, engine):
        engine.set_rule_enabled("drawdown_protection", False)
        assessment = engine.assess_risk("mean-reversion", _safe_params(current_drawdown=15, volatility=3))
        assert assessment.applied_rules == ()
        assert assessment.risk_score == 20.0
        assert assessment.overall_risk == "very_low"

    def test_factor_severity_from_rule_level(self, engine):
        params = RiskParameters(account_balance=10_000, proposed_position_size=3_000)
        factor = engine.assess_risk("trend-following", params).risk_factors[0]
        assert factor.severity == "low"
        assert factor.impact == 100

    def test_drawdown_rule(self, engine):
        assessment = engine.assess_risk("momentum", _safe_params(current_drawdown=15))
        assert "drawdown_protection" in assessment.applied_rules

    def test_rules_filtered_by_strategy(self, engine):
        # correlation_limit does not apply to momentum
        assessment = engine.assess_risk("momentum", _safe_params(correlation=0.9))
        assert "correlation_limit" not in assessment.applied_rules
        assessment = engine.assess_risk("breakout", _safe_params(correlation=0.9))
        assert "correlation_limit" in assessment.applied_rules

    def test_market_condition_rule(self, engine):
        assessment = engine.assess_risk("mean-reversion", _safe_params(market_condition="Strong_Trend"))
        assert assessment.applied_rules == ("mean_reversion_trend_filter",)

    def test_time_window_from_params(self, engine):
        outside = engine.assess_risk("scalping", _safe_params(current_time=time(20, 0)))
        assert outside.applied_rules == ("scalping_time_limit",)
        # moderate → medium severity, impact 50
        assert outside.risk_score == pytest.approx(70.0)
        assert outside.overall_risk == "high"
        inside = engine.assess_risk("scalping", _safe_params(current_time=time(10, 0)))
        assert inside.applied_rules == ()

    def test_time_window_falls_back_to_clock(self):
        engine = RiskManagementEngine(clock=lambda: datetime(2024, 1, 2, 6, 0))
        assessment = engine.assess_risk("scalping", _safe_params())
        assert assessment.applied_rules == ("scalping_time_limit",)

    def test_score_bounded(self, engine):
        params = RiskParameters(
            account_balance=1_000, proposed_position_size=900, current_drawdown=40, volatility=5, correlation=1.0,
        )
        assessment = engine.assess_risk("breakout", params)
        assert 0.0 <= assessment.risk_score <= 100.0


class TestPositionSizing:
    def test_base_size(self, engine):
        result = engine.calculate_position_size(PositionSizingParameters(account_balance=10_000, risk_per_trade=2))
        assert result.recommended_size == pytest.approx(200.0)
        assert result.max_size == pytest.approx(1_000.0)
        assert result.adjustments == ()

    def test_ordinary_stop_keeps_base_size(self, engine):
        result = engine.calculate_position_size(PositionSizingParameters(
            account_balance=10_000, risk_per_trade=2, stop_loss_distance=4, confidence=0.9,
        ))
        # 200 / 0.04 is larger than 200, so the stop leaves the size alone
        assert result.recommended_size == pytest.approx(200.0)
        assert result.adjustments == ()

    def test_stop_beyond_full_distance_shrinks(self, engine):
        result = engine.calculate_position_size(
            PositionSizingParameters(account_balance=10_000, risk_per_trade=2, stop_loss_distance=200)
        )
        assert result.recommended_size == pytest.approx(100.0)
        assert result.adjustments == ("Reduced for 200.0% stop loss",)

    def test_tight_stop_never_grows(self, engine):
        result = engine.calculate_position_size(
            PositionSizingParameters(account_balance=10_000, risk_per_trade=2, stop_loss_distance=1)
        )
        assert result.recommended_size == pytest.approx(200.0)

    def test_volatility_confidence_correlation(self, engine):
        result = engine.calculate_position_size(PositionSizingParameters(
            account_balance=10_000, risk_per_trade=2, volatility=4, confidence=0.5, correlation_factor=0.8,
        ))
        # 200 × 1/√4 × 0.5 × 0.7
        assert result.recommended_size == pytest.approx(35.0)
        assert len(result.adjustments) == 3

    def test_capped_at_ten_percent(self, engine):
        result = engine.calculate_position_size(PositionSizingParameters(account_balance=10_000, risk_per_trade=20))
        assert result.recommended_size == pytest.approx(1_000.0)
        assert "Capped at 10% of account maximum" in result.adjustments


class TestRiskReward:
    def test_excellent(self, engine):
        rr = engine.calculate_risk_reward_ratio(100, 98, 106)
        assert rr.ratio == pytest.approx(3.0)
        assert rr.recommendation == "excellent"
        assert rr.probability == 0.35
        assert rr.expected_value == pytest.approx(6 * 0.35 - 2 * 0.65)

    @pytest.mark.parametrize(
        "take_profit, grade",
        [(104, "good"), (103, "acceptable"), (102, "poor"), (101, "unacceptable")],
    )
    def test_grades(self, engine, take_profit, grade):
        assert engine.calculate_risk_reward_ratio(100, 98, take_profit).recommendation == grade

    def test_explicit_probability(self, engine):
        rr = engine.calculate_risk_reward_ratio(100, 98, 104, probability=0.5)
        assert rr.expected_value == pytest.approx(1.0)

    def test_zero_risk_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.calculate_risk_reward_ratio(100, 100, 110)


class TestStrategyAudits:
    def test_incomplete_trend_strategy(self, engine):
        result = engine.assess_strategy_completeness("trend-following", ["data_source"])
        assert result.completeness == 14
        assert result.completeness < 50
        assert len(result.missing_required) == 4
        assert result.risk_level == "very_high"
        assert len(result.warnings) == 3

    def test_complete_strategy(self, engine):
        profile = engine.get_strategy_risk_profile("momentum")
        components = [*profile.required_components, *profile.recommended_components]
        result = engine.assess_strategy_completeness("momentum", components)
        assert result.completeness == 100
        assert result.risk_level == "medium"
        assert result.warnings == ()

    def test_component_suggestions_ordered_by_priority(self, engine):
        recs = engine.suggest_risk_components("trend-following", [])
        priorities = [r.priority for r in recs]
        assert priorities == ["critical"] * 5 + ["high"] + ["medium"] * 4
        stop = next(r for r in recs if r.id == "missing_stop_loss")
        assert stop.parameters["value"] == 2.0

    def test_scalping_defaults_are_tighter(self, engine):
        recs = engine.suggest_risk_components("scalping", [])
        assert any(r.id == "scalping_spread_filter" for r in recs)
        assert recs[0].priority == "critical"

    def test_adjustment_skipped_when_present(self, engine):
        recs = engine.suggest_risk_components("mean-reversion", ["trend_filter"])
        assert not any(r.id == "mean_reversion_trend_avoid" for r in recs)

    def test_warnings(self, engine):
        params = RiskParameters(account_balance=10_000, proposed_position_size=2_000, volume=50, average_volume=100)
        warnings = engine.generate_risk_warnings("breakout", params)
        assert "Low volume breakout detected - increased risk of false breakout" in warnings
        assert any(w.startswith("Position size exceeds 10%") for w in warnings)
        assert warnings[-1].startswith("No stop loss defined")

    def test_poor_risk_reward_warning(self, engine):
        params = _safe_params(entry_price=100, stop_loss=98, take_profit=101)
        warnings = engine.generate_risk_warnings("momentum", params)
        assert any("unacceptable" in w for w in warnings)


class TestRuleManagement:
    def test_disable_rule(self, engine):
        assert engine.set_rule_enabled("stop_loss_mandatory", False)
        params = RiskParameters(account_balance=10_000, proposed_position_size=3_000)
        assert "stop_loss_mandatory" not in engine.assess_risk("trend-following", params).applied_rules
        assert engine.get_rule("stop_loss_mandatory").enabled is False
        # disabled rules are still listed for the strategy
        assert any(r.id == "stop_loss_mandatory" for r in engine.get_rules_for_strategy("trend-following"))

    def test_unknown_rule_toggle(self, engine):
        assert engine.set_rule_enabled("nope", True) is False

    def test_rules_sorted_by_priority(self, engine):
        priorities = [r.priority for r in engine.get_rules_for_strategy("trend-following")]
        assert priorities == sorted(priorities, reverse=True)

    def test_custom_range_rule(self, engine):
        engine.add_custom_rule(RiskRule(
            id="volatility_band",
            name="Volatility Band",
            description="Flag moderately volatile scalps",
            category="position_sizing",
            applicable_strategies=("scalping",),
            risk_level="aggressive",
            conditions=(RangeCondition(metric="volatility", low=1.0, high=3.0),),
            actions=(AlertAction(message="volatile", description="Alert on volatility"),),
            priority=3,
        ))
        assessment = engine.assess_risk("scalping", _safe_params(volatility=2.0, current_time=time(10, 0)))
        assert assessment.applied_rules == ("volatility_band",)
        # aggressive → high severity, impact 30
        assert assessment.risk_score == pytest.approx(50.0)
        assert engine.get_statistics()["total_rules"] == 9
