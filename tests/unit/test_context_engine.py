"""
STRATEGY-NLP Tests: Conversation Context Engine

Node ID: tests.unit.test_context_engine
Graph Link: tested_by → nlp.context_engine

Tests cover:
- Pronoun / strategy-phrase resolution and the mention window
- Capped history with a monotonic turn counter
- Replace-vs-merge of the current strategy
- Pure reference-map updates
- Phase derivation and explicit completion
- Preferences, suggestions, summary and per-conversation locking
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from config.settings import ContextConfig
from src.core.models import ParameterValue, ReferenceMap, TradingIntent
from src.nlp.context_engine import (
    STRATEGY_COMPLETED,
    ContextEngine,
    merge_intents,
    update_reference_map,
)

_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _intent(strategy_type="mean-reversion", indicators=("rsi",), confidence=0.9, **kwargs) -> TradingIntent:
    return TradingIntent(strategy_type=strategy_type, indicators=list(indicators), confidence=confidence, **kwargs)


def _param(value, confidence=0.9) -> ParameterValue:
    return ParameterValue(value=value, confidence=confidence)


@pytest.fixture
def engine() -> ContextEngine:
    return ContextEngine(clock=lambda: _NOW)


class TestReferenceResolution:
    def test_object_pronoun(self, engine):
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        assert engine.resolve_references("c1", "change it to 21") == "change rsi to 21"
        assert engine.resolve_references("c1", "set that to 25") == "set rsi to 25"

    def test_subject_pronoun_untouched(self, engine):
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        assert engine.resolve_references("c1", "it is oversold") == "it is oversold"

    def test_latest_indicator_wins(self, engine):
        engine.update_context_with_input("c1", "rsi and macd", _intent(indicators=("rsi", "macd")), {})
        assert engine.resolve_references("c1", "optimize it") == "optimize macd"

    def test_strategy_phrase(self, engine):
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        resolved = engine.resolve_references("c1", "make the strategy safer")
        assert resolved == "make rsi mean-reversion strategy safer"

    def test_stale_mention_not_resolved(self, engine):
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        for i in range(5):
            engine.update_context_with_response("c1", f"reply {i}")
        assert engine.resolve_references("c1", "change it to 21") == "change it to 21"

    def test_unknown_conversation(self, engine):
        assert engine.resolve_references("nope", "change it") == "change it"

    def test_disabled(self):
        engine = ContextEngine(ContextConfig(enable_reference_resolution=False))
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        assert engine.resolve_references("c1", "change it to 21") == "change it to 21"


class TestHistory:
    def test_history_capped_turn_keeps_counting(self):
        engine = ContextEngine(ContextConfig(max_history_size=3))
        for i in range(5):
            engine.update_context_with_response("c1", f"reply {i}")
        context = engine.get_context("c1")
        assert [e.content for e in context.history] == ["reply 2", "reply 3", "reply 4"]
        assert context.turn == 5

    def test_timestamps_from_clock(self, engine):
        engine.update_context_with_input("c1", "use rsi", _intent(), {})
        assert engine.get_context("c1").history[0].timestamp == _NOW

    def test_input_metadata(self, engine):
        params = {"period": _param(14)}
        engine.update_context_with_input("c1", "rsi 14", _intent(), params)
        entry = engine.get_context("c1").history[0]
        assert entry.type == "user_input"
        assert entry.metadata["parameters"] == params
        assert entry.metadata["confidence"] == 0.9


class TestStrategyUpdates:
    def test_confident_intent_replaces(self, engine):
        engine.update_context_with_input("c1", "ema", _intent("custom", ("ema",), 0.3), {})
        engine.update_context_with_input("c1", "rsi", _intent(), {})
        strategy = engine.get_context("c1").current_strategy
        assert strategy.strategy_type == "mean-reversion"
        assert strategy.indicators == ["rsi"]

    def test_weak_intent_merges(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(), {})
        engine.update_context_with_input("c1", "add macd on 4h", _intent("custom", ("macd",), 0.2, timeframe="4h"), {})
        strategy = engine.get_context("c1").current_strategy
        assert strategy.strategy_type == "mean-reversion"
        assert strategy.indicators == ["rsi", "macd"]
        assert strategy.timeframe == "4h"
        assert engine.get_context("c1").active_indicators == ["rsi", "macd"]

    def test_merge_intents(self):
        merged = merge_intents(
            _intent("custom", ("ema",), 0.3, actions=["buy"], parameters={"period": 20}),
            _intent("momentum", ("macd", "ema"), 0.6, actions=["sell"], parameters={"period": 12}),
        )
        assert merged.strategy_type == "momentum"
        assert merged.indicators == ["ema", "macd"]
        assert merged.actions == ["buy", "sell"]
        assert merged.parameters == {"period": 12}
        assert merged.confidence == 0.6

    def test_intent_history_resolved_flag(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(confidence=0.4), {})
        engine.update_context_with_input("c1", "rsi", _intent(confidence=0.8), {})
        assert [r.resolved for r in engine.get_context("c1").intent_history] == [False, True]


class TestReferenceMap:
    def test_pure_update(self):
        original = ReferenceMap()
        updated = update_reference_map(original, 3, _intent(conditions=["oversold"]), {"period": _param(14)}, None)
        assert original.mentions == {}
        assert updated.pronouns == {"it": "rsi", "that": "rsi"}
        assert set(updated.mentions) == {"rsi", "oversold", "period", "mean-reversion"}
        assert updated.mentions["rsi"].last_mentioned_turn == 3
        assert updated.mentions["mean-reversion"].type == "strategy"

    def test_frequency_increments(self):
        first = update_reference_map(ReferenceMap(), 1, _intent(), {}, None)
        second = update_reference_map(first, 4, _intent(), {}, None)
        assert second.mentions["rsi"].frequency == 2
        assert second.mentions["rsi"].last_mentioned_turn == 4
        assert first.mentions["rsi"].frequency == 1

    def test_custom_strategy_not_mentioned(self):
        updated = update_reference_map(ReferenceMap(), 1, _intent("custom", ()), {}, None)
        assert updated.mentions == {}
        assert updated.pronouns == {}

    def test_strategy_reference(self):
        current = _intent()
        updated = update_reference_map(ReferenceMap(), 1, current, {}, current)
        assert updated.strategy_reference == "rsi mean-reversion strategy"


class TestPhases:
    def test_greeting_then_building_then_optimization(self, engine):
        context = engine.get_or_create_context("c1")
        assert engine.derive_phase(context) == "greeting"
        engine.update_context_with_input("c1", "rsi", _intent(), {})
        assert engine.get_context("c1").conversation_flow.phase == "strategy_building"
        engine.update_context_with_input("c1", "period 14", _intent(), {"period": _param(14)})
        assert engine.get_context("c1").conversation_flow.phase == "optimization"

    def test_requirement_gathering(self, engine):
        engine.update_context_with_response("c1", "hello! what shall we build?")
        assert engine.derive_phase(engine.get_context("c1")) == "requirement_gathering"

    def test_completed_steps(self, engine):
        engine.update_context_with_input(
            "c1", "rsi with stop", _intent(risk_management=["stop_loss"]), {"stopLoss": _param(2.0)}
        )
        assert engine.get_context("c1").conversation_flow.completed_steps == [
            "strategy_identified", "indicators_selected", "parameters_configured", "risk_management_added",
        ]

    def test_completion_only_via_action(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(), {"period": _param(14)})
        engine.update_context_with_response("c1", "Here is your strategy", ["show_strategy"])
        context = engine.get_context("c1")
        assert not context.completed
        assert context.conversation_flow.last_action == "show_strategy"

        engine.update_context_with_response("c1", "Saved", [STRATEGY_COMPLETED])
        context = engine.get_context("c1")
        assert context.completed
        assert context.conversation_flow.phase == "completion"
        assert engine.derive_phase(context) == "completion"

    def test_completion_sticks_after_more_input(self, engine):
        engine.mark_completed("c1")
        engine.update_context_with_input("c1", "rsi", _intent(), {"period": _param(14)})
        assert engine.get_context("c1").conversation_flow.phase == "completion"


class TestPreferences:
    @pytest.mark.parametrize("stop, tolerance", [(1.0, "low"), (2.0, "medium"), (3.5, "high")])
    def test_risk_tolerance_from_stop(self, engine, stop, tolerance):
        engine.update_context_with_input("c1", "stop", _intent(), {"stopLoss": _param(stop)})
        assert engine.get_context("c1").preferences.risk_tolerance == tolerance

    def test_favorites_and_timeframes(self, engine):
        engine.update_context_with_input("c1", "rsi on 15m", _intent(timeframe="15m"), {"period": _param(14)})
        prefs = engine.get_context("c1").preferences
        assert prefs.favorite_indicators == ["rsi"]
        assert prefs.preferred_timeframes == ["1h", "4h", "15m"]
        assert prefs.default_parameters == {"period": 14}

    def test_tracking_disabled(self):
        engine = ContextEngine(ContextConfig(track_user_preferences=False))
        engine.update_context_with_input("c1", "rsi", _intent(), {"stopLoss": _param(1.0)})
        prefs = engine.get_context("c1").preferences
        assert prefs.favorite_indicators == []
        assert prefs.risk_tolerance == "medium"


class TestSuggestionsAndSummary:
    def test_unknown_conversation_gets_greeting(self, engine):
        suggestions = engine.get_contextual_suggestions("nope")
        assert suggestions[0] == "What type of trading strategy would you like to create?"

    def test_building_suggestions(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(), {})
        suggestions = engine.get_contextual_suggestions("c1")
        assert suggestions[0] == "Let's add risk management to your rsi mean-reversion strategy"
        assert "Would you like to use rsi in this strategy?" in suggestions
        assert "Would you like to add confirmation indicators?" in suggestions
        assert len(suggestions) <= 5

    def test_summary(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(), {"period": _param(14)})
        engine.update_context_with_input("c1", "macd", _intent("momentum", ("macd",)), {"fastPeriod": _param(12)})
        engine.update_context_with_response("c1", "ok")
        summary = engine.get_conversation_summary("c1")
        assert summary.total_messages == 3
        assert summary.strategies_discussed == ["mean-reversion", "momentum"]
        assert summary.indicators_used == ["rsi", "macd"]
        assert summary.parameters_set == {"period": 14, "fastPeriod": 12}
        assert summary.current_strategy == "macd momentum strategy"
        assert summary.last_activity == _NOW
        assert summary.completed is False


class TestLifecycle:
    def test_session_and_user(self, engine):
        context = engine.get_or_create_context("c1", user_id="u1")
        assert context.user_id == "u1"
        assert context.session_id.startswith("session_")
        assert engine.get_or_create_context("c1") is context

    def test_clear(self, engine):
        engine.update_context_with_input("c1", "rsi", _intent(), {})
        engine.clear_context("c1")
        assert engine.get_context("c1") is None
        assert engine.get_active_conversations() == []

    def test_concurrent_turns_are_all_recorded(self):
        engine = ContextEngine(ContextConfig(max_history_size=1000))

        def worker() -> None:
            for _ in range(25):
                engine.update_context_with_input("shared", "rsi", _intent(), {})

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        context = engine.get_context("shared")
        assert context.turn == 200
        assert len(context.history) == 200
