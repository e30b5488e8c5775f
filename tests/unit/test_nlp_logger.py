"""
STRATEGY-NLP Tests: Structured Logging & Request Correlation

Node ID: tests.unit.test_nlp_logger
Graph Link: tested_by → utils.nlp_logger

Tests cover:
- Request context creation and propagation via contextvars
- Stage advancement on the active request
- JSON log formatter output structure
- Request ID generation format
- Context isolation between async tasks
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import pytest

from src.utils.nlp_logger import (
    JsonFormatter,
    RequestContext,
    clear_request_context,
    generate_request_id,
    get_nlp_logger,
    get_request_context,
    set_request_context,
    set_stage,
)


def _make_record(name: str = "test", msg: str = "hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name=name, level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestRequestIdGeneration:
    """Request ID format: 8 hex chars, optionally suffixed by the conversation."""

    def test_generates_with_conversation(self):
        rid = generate_request_id("chat_42")
        assert rid.endswith("-chat_42")
        prefix = rid.split("-chat_42")[0]
        assert len(prefix) == 8

    def test_stateless_request_is_bare_prefix(self):
        rid = generate_request_id()
        assert len(rid) == 8
        int(rid, 16)  # hex

    def test_unique_ids(self):
        ids = {generate_request_id("c") for _ in range(100)}
        assert len(ids) == 100

    def test_sanitizes_conversation_id(self):
        rid = generate_request_id("user 1.chat")
        assert "user_1_chat" in rid


class TestRequestContext:
    """Context propagation via contextvars."""

    def test_set_and_get_context(self):
        set_request_context(RequestContext(request_id="abc-c1", conversation_id="c1", stage="VALIDATION"))
        retrieved = get_request_context()
        assert retrieved is not None
        assert retrieved.request_id == "abc-c1"
        clear_request_context()

    def test_clear_context(self):
        set_request_context(RequestContext(request_id="abc", conversation_id="", stage="VALIDATION"))
        clear_request_context()
        assert get_request_context() is None

    def test_set_stage_advances_active_request(self):
        set_request_context(RequestContext(request_id="abc", conversation_id="c1", stage="VALIDATION"))
        set_stage("INTENT")
        ctx = get_request_context()
        assert ctx.stage == "INTENT"
        assert ctx.request_id == "abc"
        clear_request_context()

    def test_set_stage_without_request_is_noop(self):
        clear_request_context()
        set_stage("INTENT")
        assert get_request_context() is None

    @pytest.mark.asyncio
    async def test_context_isolated_between_tasks(self):
        """Each async task should have its own context."""
        results = {}

        async def task(conversation: str, key: str):
            set_request_context(RequestContext(request_id=f"id-{conversation}", conversation_id=conversation, stage="CONTEXT"))
            await asyncio.sleep(0.01)
            retrieved = get_request_context()
            results[key] = retrieved.conversation_id if retrieved else None

        await asyncio.gather(task("alpha", "a"), task("beta", "b"))
        assert results["a"] == "alpha"
        assert results["b"] == "beta"
        clear_request_context()


class TestJsonFormatter:
    """JSON structured log output."""

    @pytest.fixture
    def formatter(self) -> JsonFormatter:
        return JsonFormatter()

    def test_output_is_valid_json(self, formatter):
        parsed = json.loads(formatter.format(_make_record(msg="Hello world")))
        assert parsed["msg"] == "Hello world"
        assert parsed["level"] == "INFO"
        assert "ts" in parsed

    def test_includes_request_context_when_set(self, formatter):
        set_request_context(RequestContext(request_id="xyz-c9", conversation_id="c9", stage="PARAMETERS"))
        parsed = json.loads(formatter.format(_make_record(name="nlp", msg="3 parameters")))
        assert parsed["request_id"] == "xyz-c9"
        assert parsed["conversation_id"] == "c9"
        assert parsed["stage"] == "PARAMETERS"
        clear_request_context()

    def test_no_request_context_omits_fields(self, formatter):
        clear_request_context()
        parsed = json.loads(formatter.format(_make_record(level=logging.WARNING)))
        assert "request_id" not in parsed

    def test_includes_component_from_logger_name(self, formatter):
        parsed = json.loads(formatter.format(_make_record(name="strategy_nlp.nlp.tokenizer")))
        assert parsed["component"] == "strategy_nlp.nlp.tokenizer"

    def test_extra_fields_included(self, formatter):
        record = _make_record(msg="Latency check")
        record.latency_ms = 12.5
        parsed = json.loads(formatter.format(record))
        assert parsed["latency_ms"] == 12.5

    def test_unserialisable_extra_uses_repr(self, formatter):
        record = _make_record()
        record.payload = {1, 2}
        parsed = json.loads(formatter.format(record))
        assert parsed["payload"] == repr({1, 2})

    def test_exception_included(self, formatter):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="", lineno=0,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )
        parsed = json.loads(formatter.format(record))
        assert parsed["exception"] == "boom"


class TestGetNlpLogger:
    """Logger factory with request context awareness."""

    def test_returns_logger_with_name(self):
        lg = get_nlp_logger("test.module")
        assert lg.name == "strategy_nlp.test.module"

    def test_logger_has_json_handler(self):
        lg = get_nlp_logger("test.handlers")
        assert any(isinstance(h.formatter, JsonFormatter) for h in lg.handlers)
        assert lg.propagate is False

    def test_handler_configured_once(self):
        first = get_nlp_logger("test.once")
        second = get_nlp_logger("test.once")
        assert first is second
        assert len(second.handlers) == 1
