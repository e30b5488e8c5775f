"""
STRATEGY-NLP Tests: Natural Language Processor

Node ID: tests.unit.test_processor
Graph Link: tested_by → nlp.processor

Tests cover:
- Validation policy (strict raises, permissive falls back)
- End-to-end RSI request and result assembly
- Low-confidence and timeout handling, with and without fallback
- Conversation memory, reference resolution and completion
- Metrics, statistics and request-context cleanup
"""

from __future__ import annotations

import pytest

from config.settings import ProcessorConfig, Settings
from src.core.errors import InputValidationError, LowConfidenceError, ProcessingTimeoutError, StrategyNLPError
from src.nlp.context_engine import STRATEGY_COMPLETED
from src.nlp.processor import DEFAULT_SUGGESTIONS, FALLBACK_SUGGESTIONS, NaturalLanguageProcessor
from src.nlp.tokenizer import Tokenizer
from src.utils.nlp_logger import get_request_context

RSI_REQUEST = "Create a RSI strategy that buys when RSI is below 30"


def _processor(**options) -> NaturalLanguageProcessor:
    return NaturalLanguageProcessor(Settings(processor=ProcessorConfig(**options)))


class _StepTimer:
    """Advances one second per reading."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


class _BrokenTokenizer(Tokenizer):
    def tokenize(self, text):
        raise RuntimeError("tokenizer offline")


class TestValidation:
    @pytest.mark.asyncio
    async def test_strict_rejects_empty(self):
        processor = _processor()
        with pytest.raises(InputValidationError) as exc:
            await processor.process_request("   ")
        assert exc.value.errors == ["Request cannot be empty"]
        assert processor.metrics.validation_failures.value == 1

    @pytest.mark.asyncio
    async def test_permissive_returns_fallback(self):
        processor = _processor(validation_policy="permissive")
        result = await processor.process_request("")
        assert result.is_fallback
        assert result.metadata["error"] == "Request cannot be empty"
        assert result.confidence == pytest.approx(0.1)
        assert result.trading_intent.strategy_type == "custom"

    def test_unsafe_content(self):
        errors = _processor().validate_request("<script>alert(1)</script> buy rsi")
        assert errors == ["Request contains potentially unsafe content"]

    def test_event_handler_attribute(self):
        errors = _processor().validate_request('<img src=x onerror=alert(1)> buy rsi')
        assert errors == ["Request contains potentially unsafe content"]

    @pytest.mark.parametrize("text", [
        "condition = rsi < 30",
        "buy when rsi is below 30 and close = 5",
        "exit on signal = true",
    ])
    def test_plain_assignments_allowed(self, text):
        assert _processor().validate_request(text) == []

    def test_too_long(self):
        errors = _processor(max_request_length=10).validate_request("buy when rsi is below 30")
        assert errors == ["Request too long (max 10 characters)"]


class TestRsiRequest:
    @pytest.mark.asyncio
    async def test_structured_result(self):
        result = await _processor().process_request(RSI_REQUEST)
        assert not result.is_fallback
        assert result.trading_intent.strategy_type == "mean-reversion"
        assert result.trading_intent.indicators == ["rsi"]
        assert result.parameters["oversoldLevel"].value == 30
        assert result.confidence > 0.6
        assert result.parsed_request.original_text == RSI_REQUEST
        assert result.metadata["intent_matches"][0] == "rsi_oversold_overbought"
        assert result.metadata["parameter_errors"] == []

    @pytest.mark.asyncio
    async def test_suggestions_bounded_and_unique(self):
        result = await _processor().process_request(RSI_REQUEST)
        assert len(result.suggestions) <= 5
        assert len(set(result.suggestions)) == len(result.suggestions)

        result = await _processor(max_suggestions=2).process_request(RSI_REQUEST)
        assert len(result.suggestions) <= 2

    @pytest.mark.asyncio
    async def test_stage_timings_recorded(self):
        result = await _processor().process_request(RSI_REQUEST)
        assert set(result.metadata["stage_timings"]) == {"context", "tokenization", "intent", "parameters"}
        assert result.processing_time >= 0

    @pytest.mark.asyncio
    async def test_request_context_cleared(self):
        await _processor().process_request(RSI_REQUEST, conversation_id="c1")
        assert get_request_context() is None


class TestLowConfidence:
    @pytest.mark.asyncio
    async def test_below_threshold_falls_back(self):
        processor = _processor(min_confidence_threshold=0.99)
        result = await processor.process_request(RSI_REQUEST)
        assert result.is_fallback
        assert result.metadata["error"].startswith("Low confidence:")
        assert result.suggestions == list(FALLBACK_SUGGESTIONS)
        assert processor.metrics.low_confidence_total.value == 1

    @pytest.mark.asyncio
    async def test_raises_without_fallback(self):
        processor = _processor(min_confidence_threshold=0.99, enable_fallback_processing=False)
        with pytest.raises(LowConfidenceError) as exc:
            await processor.process_request(RSI_REQUEST)
        assert exc.value.threshold == 0.99

    @pytest.mark.asyncio
    async def test_no_meaningful_tokens_falls_back(self):
        result = await _processor().process_request("?!")
        assert result.is_fallback
        assert result.metadata["error"] == "No meaningful tokens found in request"


class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout_becomes_fallback(self):
        processor = NaturalLanguageProcessor(
            Settings(processor=ProcessorConfig(max_processing_time_ms=500)), timer=_StepTimer()
        )
        result = await processor.process_request(RSI_REQUEST)
        assert result.is_fallback
        assert "after stage 'context'" in result.metadata["error"]
        assert processor.metrics.timeouts_total.value == 1

    @pytest.mark.asyncio
    async def test_timeout_raises_without_fallback(self):
        processor = NaturalLanguageProcessor(
            Settings(processor=ProcessorConfig(max_processing_time_ms=500, enable_fallback_processing=False)),
            timer=_StepTimer(),
        )
        with pytest.raises(ProcessingTimeoutError):
            await processor.process_request(RSI_REQUEST)

    @pytest.mark.asyncio
    async def test_stage_failure_becomes_fallback(self):
        processor = NaturalLanguageProcessor(tokenizer=_BrokenTokenizer())
        result = await processor.process_request(RSI_REQUEST)
        assert result.is_fallback
        assert result.metadata["error"] == "tokenizer offline"
        assert processor.metrics.fallbacks_total.value == 1

    @pytest.mark.asyncio
    async def test_stage_failure_propagates_without_fallback(self):
        processor = NaturalLanguageProcessor(
            Settings(processor=ProcessorConfig(enable_fallback_processing=False)),
            tokenizer=_BrokenTokenizer(),
        )
        with pytest.raises(StrategyNLPError) as exc:
            await processor.process_request(RSI_REQUEST)
        assert str(exc.value) == "tokenizer offline"
        assert isinstance(exc.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_parameter_validation_toggle(self):
        checked = await _processor(min_confidence_threshold=0.0).process_request("sma period 201")
        assert "Invalid value 201 for parameter period" in checked.metadata["parameter_errors"]

        unchecked = await _processor(
            min_confidence_threshold=0.0, enable_parameter_validation=False
        ).process_request("sma period 201")
        assert unchecked.metadata["parameter_errors"] == []


class TestConversation:
    @pytest.mark.asyncio
    async def test_follow_up_resolves_pronoun(self):
        processor = _processor(min_confidence_threshold=0.0)
        await processor.process_request(RSI_REQUEST, conversation_id="c1")
        result = await processor.process_request("change it to 21", conversation_id="c1")
        assert result.metadata["resolved_text"] == "change rsi to 21"
        assert result.parsed_request.original_text == "change it to 21"
        context = processor.context_engine.get_context("c1")
        assert context.history[-1].content == "change it to 21"

    @pytest.mark.asyncio
    async def test_low_confidence_turn_leaves_context_untouched(self):
        processor = _processor(min_confidence_threshold=0.99)
        result = await processor.process_request(RSI_REQUEST, conversation_id="c1")
        assert result.is_fallback
        context = processor.context_engine.get_context("c1")
        assert context.current_strategy is None
        assert context.active_indicators == []
        assert context.history == []
        assert context.turn == 0

    @pytest.mark.asyncio
    async def test_fallback_turn_keeps_previous_strategy(self):
        processor = _processor()
        await processor.process_request(RSI_REQUEST, conversation_id="c1")
        before = processor.context_engine.get_context("c1").current_strategy
        result = await processor.process_request("?!", conversation_id="c1")
        assert result.is_fallback
        context = processor.context_engine.get_context("c1")
        assert context.current_strategy == before
        assert context.turn == 1

    @pytest.mark.asyncio
    async def test_contextual_suggestions(self):
        processor = _processor()
        assert processor.get_contextual_suggestions() == list(DEFAULT_SUGGESTIONS)
        await processor.process_request(RSI_REQUEST, conversation_id="c1")
        suggestions = processor.get_contextual_suggestions("c1")
        assert 0 < len(suggestions) <= 5
        assert suggestions != list(DEFAULT_SUGGESTIONS)

    @pytest.mark.asyncio
    async def test_memory_disabled(self):
        processor = _processor(enable_context_memory=False)
        await processor.process_request(RSI_REQUEST, conversation_id="c1")
        assert processor.context_engine.get_context("c1") is None
        assert processor.get_contextual_suggestions("c1") == list(DEFAULT_SUGGESTIONS)

    @pytest.mark.asyncio
    async def test_completion_and_clear(self):
        processor = _processor()
        await processor.process_request(RSI_REQUEST, conversation_id="c1", user_id="u1")
        processor.update_context_with_response("c1", "Strategy saved", [STRATEGY_COMPLETED])
        summary = processor.get_conversation_summary("c1")
        assert summary.completed
        assert summary.conversation_phase == "completion"
        assert processor.context_engine.get_context("c1").user_id == "u1"

        processor.clear_conversation("c1")
        assert processor.metrics.active_conversations.value == 0


class TestStatistics:
    @pytest.mark.asyncio
    async def test_statistics(self):
        processor = _processor(validation_policy="permissive")
        await processor.process_request(RSI_REQUEST, conversation_id="c1")
        await processor.process_request("")
        stats = processor.get_statistics()
        assert stats["active_conversations"] == 1
        assert stats["options"]["validation_policy"] == "permissive"
        assert stats["metrics"]["requests"]["total"] == 2
        assert stats["metrics"]["requests"]["succeeded"] == 1
        assert stats["metrics"]["requests"]["fallbacks"] == 1
        assert stats["parameter_definitions"] > 0
