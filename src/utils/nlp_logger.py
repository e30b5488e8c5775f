"""
STRATEGY-NLP Structured Logging: Request Tracing

### ARCHITECTURAL CONTEXT
Node ID: utils.logging

Every component takes a logger through its constructor. This module supplies
the pieces those loggers share: a request context propagated through
contextvars and a JSON formatter that stamps each line with it.

### CRITICAL INVARIANTS
1. Every log line emitted while a request is processed carries request_id
   and conversation_id for correlation.
2. JSON output for machine parsing.
3. Context isolated between concurrent async requests.
4. Zero external dependencies, stdlib only.

### LOG LEVELS
- DEBUG: per-stage timings, cache hits, pattern scores
- INFO: component initialisation, rule toggles, conversation resets
- WARNING: low-confidence results, fallbacks, validation failures
- ERROR: unexpected faults converted into fallback results
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


# ── Request Context ────────────────────────────────────────────


@dataclass
class RequestContext:
    """
    Correlation context for a single processed request.

    Attributes:
        request_id: Unique correlation ID (8-hex prefix + conversation).
        conversation_id: Conversation the request belongs to ("" when stateless).
        stage: Current pipeline stage (VALIDATION, CONTEXT, TOKENIZATION,
               INTENT, PARAMETERS, RESULT).
    """

    request_id: str
    conversation_id: str
    stage: str


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "request_context", default=None
)


def generate_request_id(conversation_id: str | None = None) -> str:
    """
    Generate a unique request correlation ID.

    Format: {8-char-hex}-{conversation} or {8-char-hex} when stateless.
    Example: "a1b2c3d4-chat_42"
    """
    prefix = uuid.uuid4().hex[:8]
    if not conversation_id:
        return prefix
    safe = conversation_id.replace(" ", "_").replace(".", "_")
    return f"{prefix}-{safe}"


def set_request_context(ctx: RequestContext) -> None:
    """Set the current request context for this task."""
    _request_context.set(ctx)


def get_request_context() -> RequestContext | None:
    """Get the current request context (None outside a request)."""
    return _request_context.get()


def clear_request_context() -> None:
    """Clear the request context after the pipeline completes."""
    _request_context.set(None)


def set_stage(stage: str) -> None:
    """Advance the stage of the active request context, if any."""
    ctx = _request_context.get()
    if ctx is not None:
        _request_context.set(
            RequestContext(request_id=ctx.request_id, conversation_id=ctx.conversation_id, stage=stage)
        )


# ── JSON Formatter ─────────────────────────────────────────────


# Standard fields that should not be duplicated in "extra"
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "thread", "threadName", "exc_info", "exc_text",
    "message", "asctime", "taskName",
})


class JsonFormatter(logging.Formatter):
    """
    JSON structured log formatter with request context enrichment.

    Output format:
    ```json
    {
        "ts": "2026-02-01T14:30:01.123Z",
        "level": "INFO",
        "component": "strategy_nlp.nlp.processor",
        "msg": "Request processed",
        "request_id": "a1b2c3d4-chat_42",
        "conversation_id": "chat_42",
        "stage": "RESULT",
        "confidence": 0.91
    }
    ```
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "msg": record.getMessage(),
        }

        ctx = get_request_context()
        if ctx is not None:
            log_dict["request_id"] = ctx.request_id
            log_dict["conversation_id"] = ctx.conversation_id
            log_dict["stage"] = ctx.stage

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_dict:
                try:
                    json.dumps(value)
                    log_dict[key] = value
                except (TypeError, ValueError):
                    log_dict[key] = repr(value)

        if record.exc_info and record.exc_info[1]:
            log_dict["exception"] = str(record.exc_info[1])

        return json.dumps(log_dict, default=str)


# ── Logger Factory ─────────────────────────────────────────────

_NAMESPACE = "strategy_nlp"

# Track configured loggers to avoid duplicate handlers
_configured_loggers: set[str] = set()


def get_nlp_logger(
    name: str,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Get a request-context-aware logger with JSON formatting.

    Args:
        name: Logger name (will be prefixed with "strategy_nlp.").
        level: Logging level (default INFO).

    Returns:
        Logger configured with JsonFormatter.

    Usage:
        ```python
        logger = get_nlp_logger("nlp.processor")
        processor = NaturalLanguageProcessor(settings, logger=logger)
        ```
    """
    full_name = f"{_NAMESPACE}.{name}"

    if full_name not in _configured_loggers:
        logger = logging.getLogger(full_name)
        logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

        # Prevent propagation to root logger (avoid duplicate output)
        logger.propagate = False

        _configured_loggers.add(full_name)

    return logging.getLogger(full_name)
