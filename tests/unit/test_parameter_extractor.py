"""
STRATEGY-NLP Tests: Parameter Extractor

Node ID: tests.unit.test_parameter_extractor
Graph Link: tested_by → nlp.parameter_extractor

Tests cover:
- Entity pass (thresholds, durations, percentages, aliases)
- Regex pass (RSI period, stop loss / take profit, MACD triple)
- Contextual inference and indicator defaults
- Inclusive range validation and cross-parameter rules
- Confidence and the never-raise contract
"""

from __future__ import annotations

import pytest

from config.settings import ParameterConfig
from src.core.models import ParameterValue
from src.nlp.parameter_extractor import ParameterDefinition, ParameterExtractor
from src.nlp.tokenizer import Tokenizer

_TOKENIZER = Tokenizer()


def _extract(text: str, extractor: ParameterExtractor | None = None):
    extractor = extractor or ParameterExtractor()
    tokenized = _TOKENIZER.tokenize(text)
    return extractor.extract(tokenized.tokens, tokenized.entities, text)


def _values(result) -> dict:
    return {name: p.value for name, p in result.parameters.items()}


class TestRsiRequest:
    def test_levels_and_defaults(self):
        result = _extract("Create a RSI strategy that buys when RSI is below 30")
        assert _values(result) == {
            "threshold": 30, "oversoldLevel": 30, "period": 14, "overboughtLevel": 70,
        }
        assert result.parameters["oversoldLevel"].source == "explicit"
        assert result.parameters["period"].source == "default"
        assert result.errors == []

    def test_confidence(self):
        result = _extract("Create a RSI strategy that buys when RSI is below 30")
        # mean(0.95, 0.85, 0.5, 0.5) + 2 explicit × 0.05
        assert result.confidence == pytest.approx(0.8)

    def test_rsi_period_claims_unnamed_number(self):
        result = _extract("rsi 14")
        assert result.parameters["period"].value == 14
        assert result.parameters["period"].source == "explicit"
        assert not any(k.startswith("numericParam_") for k in result.parameters)

    def test_relative_level_stays_in_rsi_clause(self):
        result = _extract("buy when rsi is below 30 and price is above 80")
        assert result.parameters["oversoldLevel"].value == 30
        assert result.parameters["overboughtLevel"].value == 70
        assert result.parameters["overboughtLevel"].source == "default"

    def test_explicit_oversold_beats_relative(self):
        result = _extract("buy when rsi below 20, oversold 25")
        assert result.parameters["oversoldLevel"].value == 25


class TestRanges:
    def test_period_upper_bound_inclusive(self):
        result = _extract("sma period 200")
        assert result.parameters["period"].value == 200
        assert result.errors == []

    def test_period_above_bound_rejected(self):
        result = _extract("sma period 201")
        assert result.errors == ["Invalid value 201 for parameter period"]
        # falls back to the SMA default
        assert result.parameters["period"].value == 20
        assert result.parameters["period"].source == "default"

    def test_out_of_range_level(self):
        result = _extract("buy when rsi oversold 45")
        assert "Parameter oversoldLevel value 45 is outside valid range" in result.errors

    def test_errors_lower_confidence(self):
        good = _extract("sma period 200")
        bad = _extract("sma period 201")
        assert bad.confidence < good.confidence


class TestPatterns:
    def test_stop_loss_and_take_profit(self):
        result = _extract("stop loss 2% take profit 4%")
        assert result.parameters["stopLoss"].value == 2
        assert result.parameters["takeProfit"].value == 4

    def test_number_first_stop_loss(self):
        result = _extract("use a 3% stop loss")
        assert result.parameters["stopLoss"].value == 3

    def test_macd_triple(self):
        result = _extract("macd 12/26/9 crossover")
        values = _values(result)
        assert (values["fastPeriod"], values["slowPeriod"], values["signalPeriod"]) == (12, 26, 9)
        assert result.errors == []

    def test_macd_fast_must_be_below_slow(self):
        result = _extract("macd 26/12/9 crossover")
        assert "Fast period must be less than slow period for MACD" in result.errors

    def test_standard_deviation(self):
        result = _extract("bollinger bands with 2.5 standard deviations")
        assert result.parameters["standardDeviation"].value == 2.5
        assert result.parameters["period"].value == 20


class TestEntities:
    def test_duration_sets_period(self):
        result = _extract("hold for 5 days")
        assert result.parameters["period"].value == 5

    def test_timeframe_and_symbol(self):
        result = _extract("buy SPY on the 4h chart")
        assert result.parameters["timeframe"].value == "4h"
        assert result.parameters["symbol"].value == "SPY"

    def test_unnamed_number_kept_when_unclaimed(self):
        result = _extract("ema 50")
        param = result.parameters["numericParam_0"]
        assert param.value == 50
        assert param.source == "inferred"
        assert param.confidence == pytest.approx(0.95 * 0.7)


class TestInference:
    def test_conservative_scalping(self):
        values = _values(_extract("conservative scalping strategy"))
        assert values["timeframe"] == "5m"
        assert values["stopLoss"] == 1.5
        assert values["quantity"] == "5%"

    def test_aggressive_swing(self):
        values = _values(_extract("aggressive swing trade"))
        assert values["timeframe"] == "1d"
        assert values["stopLoss"] == 3.0
        assert values["quantity"] == "20%"

    def test_contextual_inference_disabled(self):
        extractor = ParameterExtractor(ParameterConfig(enable_contextual_inference=False))
        assert "timeframe" not in _extract("conservative scalping strategy", extractor).parameters

    def test_defaults_disabled(self):
        extractor = ParameterExtractor(ParameterConfig(enable_defaults=False))
        assert _extract("buy rsi", extractor).parameters == {}


class TestValidation:
    def test_cross_level_rule(self):
        params = {
            "oversoldLevel": ParameterValue(value=40, confidence=1.0),
            "overboughtLevel": ParameterValue(value=40, confidence=1.0),
        }
        errors = ParameterExtractor().validate(params)
        assert "Oversold level must be less than overbought level" in errors

    def test_definition_rules(self):
        period = ParameterExtractor().get_definition("period")
        assert period.validate(14)
        assert not period.validate(14.5)
        assert not period.validate(True)
        assert not period.validate(0)

    def test_timeframe_options(self):
        timeframe = ParameterExtractor().get_definition("timeframe")
        assert timeframe.validate("4h")
        assert not timeframe.validate("3h")

    def test_custom_definition(self):
        extractor = ParameterExtractor()
        extractor.add_parameter_definition(ParameterDefinition("leverage", "number", 1, (1, 5)))
        errors = extractor.validate({"leverage": ParameterValue(value=10, confidence=1.0)})
        assert errors == ["Parameter leverage value 10 is outside valid range"]


class TestRobustness:
    def test_empty_request(self):
        result = _extract("")
        assert result.parameters == {}
        assert result.confidence == 0.0
        assert "Specify a timeframe for the strategy (1h, 4h, 1d, etc.)" in result.suggestions

    def test_failure_yields_empty_extraction(self):
        result = ParameterExtractor().extract([], [None], "rsi 14")
        assert result.parameters == {}
        assert result.errors == ["Parameter extraction failed"]
