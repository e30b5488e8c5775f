"""
STRATEGY-NLP Error Taxonomy

### ARCHITECTURAL CONTEXT
Only two situations surface to callers as exceptions: rejected input and the
explicit strict-confidence mode. Everything else is converted into a fallback
NLPResult at the processor boundary. Timeouts are raised internally between
stages and follow the same fallback policy.

### DESIGN DECISIONS
- Each error also subclasses the closest builtin (ValueError, TimeoutError,
  KeyError) so generic handlers keep working
- Errors carry the measured values (confidence, elapsed time) for logging
"""

from __future__ import annotations


class StrategyNLPError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(StrategyNLPError, ValueError):
    """Request text rejected before entering the pipeline."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid request")


class LowConfidenceError(StrategyNLPError):
    """Raised when fallback processing is disabled and confidence is too low."""

    def __init__(self, confidence: float, threshold: float) -> None:
        self.confidence = confidence
        self.threshold = threshold
        super().__init__(
            f"Processing confidence {confidence:.2f} below threshold {threshold:.2f}"
        )


class ProcessingTimeoutError(StrategyNLPError, TimeoutError):
    """The request exceeded its processing deadline."""

    def __init__(self, elapsed_ms: float, limit_ms: float, stage: str) -> None:
        self.elapsed_ms = elapsed_ms
        self.limit_ms = limit_ms
        self.stage = stage
        super().__init__(
            f"Processing exceeded {limit_ms:.0f}ms after stage '{stage}' ({elapsed_ms:.1f}ms)"
        )


class UnknownIndicatorError(StrategyNLPError, KeyError):
    """Indicator id not present in the indicator database."""

    def __init__(self, indicator_id: str) -> None:
        self.indicator_id = indicator_id
        super().__init__(f"Indicator {indicator_id} not found")

    def __str__(self) -> str:
        return f"Indicator {self.indicator_id} not found"
