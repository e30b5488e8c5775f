"""
STRATEGY-NLP Natural Language Processor

### ARCHITECTURAL CONTEXT
Node ID: nlp.processor

Entry point of the pipeline. Wires the stages together for a single request:

    validate → resolve references → tokenize → intent → parameters
             → build NLPResult → confidence check → update context

Overall confidence:
    0.2·tokenizer + 0.5·intent + 0.3·parameters
        - 0.05 × parameter errors - 0.1 without a catalogue match
    clamped to [0, 1]

### CRITICAL INVARIANTS
1. With fallback processing enabled, process_request() only raises
   InputValidationError (strict validation policy). Every other failure,
   timeouts included, becomes the fallback result.
2. The deadline max_processing_time_ms is checked after every stage.
   The context update comes last, so a timed-out or low-confidence turn
   leaves the conversation untouched.
3. Turns of one conversation run under the context engine's conversation
   lock, so resolution, extraction and the context update see one state.
4. suggestions holds at most max_suggestions unique entries.

### DESIGN DECISIONS
- process_request is async for callers but never suspends mid-stage; every
  stage is synchronous and CPU-bound
- Components are injectable so tests can swap any stage
- The request context (request id, stage) is carried in a contextvar and
  cleared when the request finishes
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import nullcontext
from typing import Any, Callable

import numpy as np

from config.settings import Settings
from src.core.errors import (
    InputValidationError,
    LowConfidenceError,
    ProcessingTimeoutError,
    StrategyNLPError,
)
from src.core.models import NLPResult, ParsedRequest, TradingIntent
from src.knowledge.pattern_library import TradingPatterns
from src.monitoring.metrics import PipelineMetrics
from src.nlp.context_engine import ContextEngine, ConversationSummary
from src.nlp.intent_extractor import IntentExtraction, IntentExtractor
from src.nlp.parameter_extractor import ParameterExtraction, ParameterExtractor
from src.nlp.tokenizer import TokenizationResult, Tokenizer
from src.utils.nlp_logger import (
    RequestContext,
    clear_request_context,
    generate_request_id,
    set_request_context,
    set_stage,
)

logger = logging.getLogger(__name__)

_UNSAFE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<[^>]*\bon[a-z]+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
)

_CLARIFY_INTENT_BELOW = 0.7

DEFAULT_SUGGESTIONS: tuple[str, ...] = (
    'Try: "Create an RSI strategy that buys when RSI is below 30"',
    'Try: "Build a moving average crossover strategy"',
    'Try: "Make a MACD momentum strategy with stop loss"',
    'Try: "Create a Bollinger Bands mean reversion strategy"',
)

FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Try rephrasing your request with specific trading terms",
    "Include indicators like RSI, MACD, or Moving Averages",
    "Specify entry and exit conditions clearly",
    "Mention timeframes and risk management preferences",
)

FALLBACK_CLARIFICATIONS: tuple[str, ...] = (
    "I had trouble understanding your request. Could you be more specific?",
    "What type of trading strategy are you looking for?",
    "Which indicators would you like to use?",
)


class NaturalLanguageProcessor:
    """
    Turns a free-text strategy request into a structured NLPResult.

    Args:
        settings: Root settings; sub-configs are handed to each stage.
        tokenizer / intent_extractor / parameter_extractor / context_engine:
            Stage overrides (built from settings when omitted).
        metrics: Metrics registry (a private one when omitted).
        timer: Monotonic clock in seconds, used for the deadline.
        logger: Injected logger (defaults to the module logger).

    Usage:
        processor = NaturalLanguageProcessor()
        result = await processor.process_request(
            "Create a RSI strategy that buys when RSI is below 30",
            conversation_id="chat_1",
        )
        result.trading_intent.strategy_type  # "mean-reversion"
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tokenizer: Tokenizer | None = None,
        intent_extractor: IntentExtractor | None = None,
        parameter_extractor: ParameterExtractor | None = None,
        context_engine: ContextEngine | None = None,
        metrics: PipelineMetrics | None = None,
        timer: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._config = self._settings.processor
        self._log = logger or logging.getLogger(__name__)
        self._timer = timer or time.perf_counter
        self._metrics = metrics or PipelineMetrics()

        self._tokenizer = tokenizer or Tokenizer(self._settings.tokenizer, logger=self._log)
        if intent_extractor is None:
            patterns = None
            if self._settings.intent.use_knowledge_patterns:
                patterns = TradingPatterns(cache_config=self._settings.cache, logger=self._log)
            intent_extractor = IntentExtractor(self._settings.intent, patterns=patterns, logger=self._log)
        self._intent_extractor = intent_extractor
        self._parameter_extractor = parameter_extractor or ParameterExtractor(
            self._settings.parameters, logger=self._log
        )
        self._context = context_engine or ContextEngine(self._settings.context, logger=self._log)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    @property
    def context_engine(self) -> ContextEngine:
        return self._context

    # ─── Pipeline ────────────────────────────────────────────────

    async def process_request(
        self,
        text: str,
        conversation_id: str | None = None,
        user_id: str | None = None,
    ) -> NLPResult:
        """
        Process one request.

        Raises:
            InputValidationError: invalid input under the strict policy.
            LowConfidenceError: fallback processing disabled and confidence
                below min_confidence_threshold.
            StrategyNLPError: any other failure while fallback processing is
                disabled; foreign exceptions are wrapped with the original
                chained as __cause__.
        """
        start = self._timer()
        set_request_context(RequestContext(
            request_id=generate_request_id(conversation_id),
            conversation_id=conversation_id or "",
            stage="VALIDATION",
        ))
        self._metrics.requests_total.inc()
        try:
            errors = self.validate_request(text)
            if errors:
                self._metrics.validation_failures.inc()
                self._log.warning("Rejected request: %s", "; ".join(errors))
                if self._config.validation_policy == "strict":
                    raise InputValidationError(errors)
                return self._fallback(text, "; ".join(errors), start)

            try:
                result = self._run(text, conversation_id, user_id, start)
            except Exception as e:
                if isinstance(e, ProcessingTimeoutError):
                    self._metrics.timeouts_total.inc()
                if not self._config.enable_fallback_processing:
                    if isinstance(e, StrategyNLPError):
                        raise
                    raise StrategyNLPError(str(e)) from e
                self._log.error("Processing failed, returning fallback: %s", e)
                return self._fallback(text, str(e), start)

            if result.is_fallback:
                self._metrics.fallbacks_total.inc()
            else:
                self._metrics.requests_succeeded.inc()
            self._log.info(
                "Processed request: %s (conf=%.2f, %d params, %.1fms)",
                result.trading_intent.strategy_type,
                result.confidence,
                len(result.parameters),
                result.processing_time,
            )
            return result
        finally:
            self._metrics.pipeline_latency.observe(self._elapsed_ms(start))
            clear_request_context()

    def _run(
        self,
        text: str,
        conversation_id: str | None,
        user_id: str | None,
        start: float,
    ) -> NLPResult:
        timings: dict[str, float] = {}
        use_context = self._config.enable_context_memory and conversation_id is not None
        lock = self._context.conversation_lock(conversation_id) if use_context else nullcontext()

        with lock:
            # ── Context: reference resolution ──
            set_stage("CONTEXT")
            stage_start = self._timer()
            resolved = text
            if use_context:
                self._context.get_or_create_context(conversation_id, user_id=user_id)
                resolved = self._context.resolve_references(conversation_id, text)
            self._stage_done("context", stage_start, timings, start)

            # ── Tokenization ──
            set_stage("TOKENIZATION")
            stage_start = self._timer()
            tokenization = self._tokenizer.tokenize(resolved)
            self._stage_done("tokenization", stage_start, timings, start)
            if not tokenization.tokens:
                raise StrategyNLPError("No meaningful tokens found in request")

            # ── Intent ──
            set_stage("INTENT")
            stage_start = self._timer()
            intent_result = self._intent_extractor.extract(tokenization.tokens, resolved)
            self._stage_done("intent", stage_start, timings, start)

            # ── Parameters ──
            set_stage("PARAMETERS")
            stage_start = self._timer()
            parameter_result = self._parameter_extractor.extract(
                tokenization.tokens, tokenization.entities, resolved
            )
            if not self._config.enable_parameter_validation:
                parameter_result.errors = []
            self._stage_done("parameters", stage_start, timings, start)

            set_stage("RESULT")
            result = self._build_result(text, resolved, tokenization, intent_result, parameter_result, timings, start)

            if result.confidence < self._config.min_confidence_threshold:
                self._metrics.low_confidence_total.inc()
                if not self._config.enable_fallback_processing:
                    raise LowConfidenceError(result.confidence, self._config.min_confidence_threshold)
                self._log.warning(
                    "Confidence %.2f below threshold %.2f, returning fallback",
                    result.confidence, self._config.min_confidence_threshold,
                )
                return self.create_fallback_result(
                    text, f"Low confidence: {result.confidence:.2f}", self._elapsed_ms(start)
                )

            # ── Context: commit ──
            # Only a turn that passed every check reaches the conversation.
            if use_context:
                set_stage("CONTEXT")
                stage_start = self._timer()
                self._context.update_context_with_input(
                    conversation_id, text, intent_result.intent, parameter_result.parameters
                )
                self._metrics.active_conversations.set(len(self._context.get_active_conversations()))
                self._metrics.record_stage("context", (self._timer() - stage_start) * 1000)
        return result

    def _stage_done(self, stage: str, stage_start: float, timings: dict[str, float], start: float) -> None:
        elapsed = (self._timer() - stage_start) * 1000
        timings[stage] = elapsed
        self._metrics.record_stage(stage, elapsed)
        self._check_deadline(stage, start)

    def _check_deadline(self, stage: str, start: float) -> None:
        elapsed = self._elapsed_ms(start)
        if elapsed > self._config.max_processing_time_ms:
            raise ProcessingTimeoutError(elapsed, self._config.max_processing_time_ms, stage)

    def _elapsed_ms(self, start: float) -> float:
        return (self._timer() - start) * 1000

    # ─── Validation ──────────────────────────────────────────────

    def validate_request(self, text: str) -> list[str]:
        """Return validation errors for raw request text (empty list when valid)."""
        errors: list[str] = []
        if not text or not text.strip():
            errors.append("Request cannot be empty")
            return errors
        if len(text) > self._config.max_request_length:
            errors.append(f"Request too long (max {self._config.max_request_length:,} characters)")
        if any(p.search(text) for p in _UNSAFE_PATTERNS):
            errors.append("Request contains potentially unsafe content")
        return errors

    # ─── Result Assembly ─────────────────────────────────────────

    def _build_result(
        self,
        text: str,
        resolved: str,
        tokenization: TokenizationResult,
        intent_result: IntentExtraction,
        parameter_result: ParameterExtraction,
        timings: dict[str, float],
        start: float,
    ) -> NLPResult:
        suggestions = list(dict.fromkeys(intent_result.suggestions + parameter_result.suggestions))
        confidence = self._overall_confidence(tokenization, intent_result, parameter_result)

        metadata: dict[str, Any] = {
            "stage_timings": {k: round(v, 3) for k, v in timings.items()},
            "token_count": len(tokenization.tokens),
            "entity_count": len(tokenization.entities),
            "intent_matches": [m.pattern.id for m in intent_result.matches],
            "knowledge_matches": [m.pattern.id for m in intent_result.knowledge_matches],
            "parameter_errors": list(parameter_result.errors),
            "reasoning": list(intent_result.reasoning),
            "fallback": False,
        }
        if resolved != text:
            metadata["resolved_text"] = resolved

        parsed = tokenization.to_parsed_request()
        if resolved != text:
            parsed = parsed.model_copy(update={"original_text": text})

        return NLPResult(
            parsed_request=parsed,
            trading_intent=intent_result.intent,
            parameters=parameter_result.parameters,
            suggestions=suggestions[: self._config.max_suggestions],
            clarifications=self._clarifications(intent_result, parameter_result),
            confidence=confidence,
            processing_time=self._elapsed_ms(start),
            metadata=metadata,
        )

    @staticmethod
    def _clarifications(intent_result: IntentExtraction, parameter_result: ParameterExtraction) -> list[str]:
        clarifications: list[str] = []
        if intent_result.confidence < _CLARIFY_INTENT_BELOW:
            clarifications.append("Could you clarify what type of trading strategy you want?")
        if not parameter_result.parameters:
            clarifications.append("Please specify some parameters for the strategy (periods, thresholds, etc.)")
        if parameter_result.errors:
            clarifications.append(f"Some parameters need adjustment: {', '.join(parameter_result.errors)}")
        return clarifications

    @staticmethod
    def _overall_confidence(
        tokenization: TokenizationResult,
        intent_result: IntentExtraction,
        parameter_result: ParameterExtraction,
    ) -> float:
        weights = np.array([0.2, 0.5, 0.3])
        scores = np.array([tokenization.confidence, intent_result.confidence, parameter_result.confidence])
        score = float(np.dot(weights, scores))
        score -= 0.05 * len(parameter_result.errors)
        if not intent_result.matches:
            score -= 0.1
        return float(np.clip(score, 0.0, 1.0))

    # ─── Fallback ────────────────────────────────────────────────

    def create_fallback_result(self, text: str, error: str, processing_time: float = 0.0) -> NLPResult:
        """Neutral result returned when a request cannot be processed."""
        return NLPResult(
            parsed_request=ParsedRequest(original_text=text, confidence=0.0),
            trading_intent=TradingIntent(strategy_type="custom", confidence=0.1),
            suggestions=list(FALLBACK_SUGGESTIONS)[: self._config.max_suggestions],
            clarifications=list(FALLBACK_CLARIFICATIONS),
            confidence=0.1,
            processing_time=processing_time,
            metadata={"fallback": True, "error": error},
        )

    def _fallback(self, text: str, error: str, start: float) -> NLPResult:
        self._metrics.fallbacks_total.inc()
        return self.create_fallback_result(text, error, self._elapsed_ms(start))

    # ─── Conversation ────────────────────────────────────────────

    def get_contextual_suggestions(self, conversation_id: str | None = None) -> list[str]:
        if (
            not self._config.enable_context_memory
            or conversation_id is None
            or self._context.get_context(conversation_id) is None
        ):
            return list(DEFAULT_SUGGESTIONS)
        return self._context.get_contextual_suggestions(conversation_id)

    def get_conversation_summary(self, conversation_id: str) -> ConversationSummary:
        return self._context.get_conversation_summary(conversation_id)

    def update_context_with_response(
        self,
        conversation_id: str,
        response: str,
        actions: list[str] | None = None,
    ) -> None:
        if not self._config.enable_context_memory:
            return
        self._context.update_context_with_response(conversation_id, response, actions)
        self._metrics.active_conversations.set(len(self._context.get_active_conversations()))

    def clear_conversation(self, conversation_id: str) -> None:
        self._context.clear_context(conversation_id)
        self._metrics.active_conversations.set(len(self._context.get_active_conversations()))

    def get_statistics(self) -> dict[str, Any]:
        return {
            "tokenizer": self._tokenizer.get_statistics(),
            "intent_extractor": self._intent_extractor.get_statistics(),
            "parameter_definitions": len(self._parameter_extractor.get_parameter_definitions()),
            "active_conversations": len(self._context.get_active_conversations()),
            "options": self._config.model_dump(),
            "metrics": self._metrics.snapshot(),
        }
