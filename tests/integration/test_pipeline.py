"""
STRATEGY-NLP Integration Test: Full Pipeline

Node ID: tests.integration.test_pipeline
Graph Link: tests end-to-end pipeline flow

Tests the full path: request text → NaturalLanguageProcessor → NLPResult,
then NLPResult → KnowledgeBase for patterns, indicators and risk.
No stage is mocked.
"""

from __future__ import annotations

import pytest

from config.settings import ProcessorConfig, Settings
from src.core.errors import InputValidationError
from src.knowledge.knowledge_base import KnowledgeBase
from src.knowledge.models import KnowledgeQuery, RiskParameters
from src.nlp.context_engine import STRATEGY_COMPLETED
from src.nlp.processor import NaturalLanguageProcessor

RSI_REQUEST = "Create a RSI strategy that buys when RSI is below 30"


class TestFullPipeline:
    """End-to-end pipeline integration test."""

    @pytest.mark.asyncio
    async def test_rsi_request_produces_strategy(self):
        result = await NaturalLanguageProcessor().process_request(RSI_REQUEST)

        assert not result.is_fallback
        assert result.trading_intent.strategy_type == "mean-reversion"
        assert result.trading_intent.indicators == ["rsi"]
        assert result.parameters["oversoldLevel"].value == 30
        assert result.parameters["period"].value == 14
        assert result.confidence > 0.6
        assert "rsi_oversold_overbought" in result.metadata["knowledge_matches"]

    @pytest.mark.asyncio
    async def test_validation_policies(self):
        strict = NaturalLanguageProcessor()
        with pytest.raises(InputValidationError):
            await strict.process_request("")

        permissive = NaturalLanguageProcessor(
            Settings(processor=ProcessorConfig(validation_policy="permissive"))
        )
        result = await permissive.process_request("")
        assert result.is_fallback
        assert result.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_result_serializes(self):
        result = await NaturalLanguageProcessor().process_request(RSI_REQUEST)
        payload = result.model_dump(mode="json")
        assert payload["trading_intent"]["strategy_type"] == "mean-reversion"
        assert payload["parameters"]["oversoldLevel"]["value"] == 30


class TestMultiTurnConversation:
    @pytest.mark.asyncio
    async def test_follow_up_builds_on_previous_turn(self):
        processor = NaturalLanguageProcessor(
            Settings(processor=ProcessorConfig(min_confidence_threshold=0.0))
        )
        first = await processor.process_request(RSI_REQUEST, conversation_id="chat_1", user_id="trader")
        processor.update_context_with_response(
            "chat_1", f"Interpreted as {first.trading_intent.describe()}", ["strategy_updated"]
        )
        second = await processor.process_request("change it to 21", conversation_id="chat_1")

        assert second.metadata["resolved_text"] == "change rsi to 21"
        context = processor.context_engine.get_context("chat_1")
        assert context.current_strategy.strategy_type == "mean-reversion"
        assert "rsi" in context.active_indicators
        assert context.turn == 3

        processor.update_context_with_response("chat_1", "Saved", [STRATEGY_COMPLETED])
        summary = processor.get_conversation_summary("chat_1")
        assert summary.completed
        assert summary.total_messages == 4
        assert "mean-reversion" in summary.strategies_discussed

    @pytest.mark.asyncio
    async def test_conversations_are_isolated(self):
        processor = NaturalLanguageProcessor()
        await processor.process_request(RSI_REQUEST, conversation_id="a")
        await processor.process_request("buy when macd crosses above the signal line", conversation_id="b")
        a = processor.context_engine.get_context("a")
        b = processor.context_engine.get_context("b")
        assert a.active_indicators == ["rsi"]
        assert "macd" in b.active_indicators
        assert "rsi" not in b.active_indicators


class TestKnowledgeWiring:
    @pytest.mark.asyncio
    async def test_result_feeds_knowledge_query(self):
        result = await NaturalLanguageProcessor().process_request(RSI_REQUEST)
        intent = result.trading_intent
        kb = KnowledgeBase()

        answer = kb.query(KnowledgeQuery(
            keywords=tuple(t.canonical for t in result.parsed_request.tokens),
            indicators=tuple(intent.indicators),
            conditions=tuple(intent.conditions),
            strategy_type=intent.strategy_type,
            risk_parameters=RiskParameters(
                account_balance=10_000, proposed_position_size=500, stop_loss_distance=2,
            ),
        ))
        assert "rsi_oversold_overbought" in [m.pattern.id for m in answer.patterns]
        assert all(m.strategy_type == "mean-reversion" for m in answer.patterns)
        assert answer.risk_assessment is not None
        assert 0.0 <= answer.risk_assessment.risk_score <= 100.0
        assert len(answer.recommendations) <= 5

    @pytest.mark.asyncio
    async def test_indicator_suggestions_complement_intent(self):
        result = await NaturalLanguageProcessor().process_request(RSI_REQUEST)
        intent = result.trading_intent
        suggestions = KnowledgeBase().get_indicator_suggestions(intent.strategy_type, intent.indicators)
        ids = [s.indicator.id for s in suggestions]
        assert ids
        assert "rsi" not in ids
