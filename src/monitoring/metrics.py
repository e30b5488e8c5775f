"""
STRATEGY-NLP Observability Metrics

### ARCHITECTURAL CONTEXT
Node ID: monitoring.metrics

In-process instrumentation for the natural-language pipeline. A
PipelineMetrics registry is injected into the processor, which records
request counts, fallbacks and per-stage latency. The processor's
get_statistics() reads from the same registry.

Metrics are organized by subsystem:
  - Requests: total, fallbacks, validation failures, timeouts, low confidence
  - Latency: full pipeline and per stage (context, tokenization, intent, parameters)
  - Conversations: active conversation count

### CRITICAL INVARIANTS
1. Metric updates are O(1) and never block the pipeline.
2. Exportable as JSON (for structured logging) or Prometheus text format.
3. Zero external dependencies (no prometheus_client required).
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generator

logger = logging.getLogger(__name__)

# Stage latencies are recorded in milliseconds
_STAGE_BUCKETS_MS: tuple[float, ...] = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 25.0, 50.0, 100.0)
_PIPELINE_BUCKETS_MS: tuple[float, ...] = (1.0, 5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 1000.0, 5000.0)


@dataclass
class CounterMetric:
    """Monotonically increasing counter."""
    name: str
    help: str
    value: float = 0.0

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("Counter can only increase")
        self.value += amount


@dataclass
class GaugeMetric:
    """Value that can go up and down."""
    name: str
    help: str
    value: float = 0.0

    def set(self, value: float) -> None:
        self.value = value

    def inc(self, amount: float = 1.0) -> None:
        self.value += amount

    def dec(self, amount: float = 1.0) -> None:
        self.value -= amount


@dataclass
class HistogramMetric:
    """Distribution tracker with sum, count, and configurable buckets."""
    name: str
    help: str
    _sum: float = 0.0
    _count: int = 0
    _min: float = float("inf")
    _max: float = float("-inf")
    _buckets: dict[float, int] = field(default_factory=dict)
    bucket_boundaries: tuple[float, ...] = _STAGE_BUCKETS_MS

    def __post_init__(self) -> None:
        if not self._buckets:
            self._buckets = {b: 0 for b in self.bucket_boundaries}

    def observe(self, value: float) -> None:
        self._sum += value
        self._count += 1
        self._min = min(self._min, value)
        self._max = max(self._max, value)
        # Non-cumulative: each observation lands in its smallest bucket only
        for boundary in self.bucket_boundaries:
            if value <= boundary:
                self._buckets[boundary] = self._buckets.get(boundary, 0) + 1
                break

    @property
    def mean(self) -> float:
        return self._sum / self._count if self._count > 0 else 0.0

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    @property
    def min(self) -> float:
        return self._min if self._count > 0 else 0.0

    @property
    def max(self) -> float:
        return self._max if self._count > 0 else 0.0


class PipelineMetrics:
    """
    Metrics registry for the natural-language pipeline.

    Usage:
        metrics = PipelineMetrics()
        metrics.requests_total.inc()
        with metrics.timer(metrics.stage_latency["tokenization"]):
            result = tokenizer.tokenize(text)
        snapshot = metrics.snapshot()
    """

    STAGES: tuple[str, ...] = ("context", "tokenization", "intent", "parameters")

    def __init__(self) -> None:
        # ── Request Metrics ──
        self.requests_total = CounterMetric(
            name="snlp_requests_total",
            help="Total requests submitted to process_request",
        )
        self.requests_succeeded = CounterMetric(
            name="snlp_requests_succeeded_total",
            help="Requests that produced a non-fallback result",
        )
        self.fallbacks_total = CounterMetric(
            name="snlp_fallbacks_total",
            help="Requests answered with the fallback result",
        )
        self.validation_failures = CounterMetric(
            name="snlp_validation_failures_total",
            help="Requests rejected by input validation",
        )
        self.timeouts_total = CounterMetric(
            name="snlp_timeouts_total",
            help="Requests that exceeded the processing deadline",
        )
        self.low_confidence_total = CounterMetric(
            name="snlp_low_confidence_total",
            help="Requests whose overall confidence fell below threshold",
        )

        # ── Latency Metrics ──
        self.pipeline_latency = HistogramMetric(
            name="snlp_pipeline_latency_ms",
            help="Full process_request latency",
            bucket_boundaries=_PIPELINE_BUCKETS_MS,
        )
        self.stage_latency: dict[str, HistogramMetric] = {
            stage: HistogramMetric(
                name=f"snlp_{stage}_latency_ms",
                help=f"Latency of the {stage} stage",
            )
            for stage in self.STAGES
        }

        # ── Conversation Metrics ──
        self.active_conversations = GaugeMetric(
            name="snlp_active_conversations",
            help="Conversations currently held by the context engine",
        )

        self._created_at = datetime.now(timezone.utc)

    @contextmanager
    def timer(self, histogram: HistogramMetric) -> Generator[None, None, None]:
        """Context manager for timing operations into a histogram (milliseconds)."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            histogram.observe(elapsed_ms)

    def record_stage(self, stage: str, elapsed_ms: float) -> None:
        """Record a stage duration measured by the caller."""
        histogram = self.stage_latency.get(stage)
        if histogram is None:
            logger.debug("Ignoring timing for unknown stage %s", stage)
            return
        histogram.observe(elapsed_ms)

    @property
    def average_processing_time(self) -> float:
        return self.pipeline_latency.mean

    @property
    def success_rate(self) -> float:
        total = self.requests_total.value
        return self.requests_succeeded.value / total if total > 0 else 0.0

    def snapshot(self) -> dict[str, Any]:
        """
        Export all metrics as a JSON-serializable dict.

        Structure:
            {"requests": {...}, "latency": {...}, "conversations": {...}}
        """
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": (datetime.now(timezone.utc) - self._created_at).total_seconds(),
            "requests": {
                "total": self.requests_total.value,
                "succeeded": self.requests_succeeded.value,
                "fallbacks": self.fallbacks_total.value,
                "validation_failures": self.validation_failures.value,
                "timeouts": self.timeouts_total.value,
                "low_confidence": self.low_confidence_total.value,
                "success_rate": round(self.success_rate, 3),
            },
            "latency": {
                "pipeline_mean_ms": round(self.pipeline_latency.mean, 3),
                "pipeline_max_ms": round(self.pipeline_latency.max, 3),
                "stages_mean_ms": {
                    stage: round(h.mean, 3) for stage, h in self.stage_latency.items()
                },
            },
            "conversations": {
                "active": self.active_conversations.value,
            },
        }

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text exposition format."""
        lines: list[str] = []

        def _counter(m: CounterMetric) -> None:
            lines.append(f"# HELP {m.name} {m.help}")
            lines.append(f"# TYPE {m.name} counter")
            lines.append(f"{m.name} {m.value}")

        def _gauge(m: GaugeMetric) -> None:
            lines.append(f"# HELP {m.name} {m.help}")
            lines.append(f"# TYPE {m.name} gauge")
            lines.append(f"{m.name} {m.value}")

        def _histogram(m: HistogramMetric) -> None:
            lines.append(f"# HELP {m.name} {m.help}")
            lines.append(f"# TYPE {m.name} histogram")
            cumulative = 0
            for boundary in sorted(m._buckets.keys()):
                cumulative += m._buckets[boundary]
                lines.append(f'{m.name}_bucket{{le="{boundary}"}} {cumulative}')
            lines.append(f'{m.name}_bucket{{le="+Inf"}} {m._count}')
            lines.append(f"{m.name}_sum {m._sum}")
            lines.append(f"{m.name}_count {m._count}")

        _counter(self.requests_total)
        _counter(self.requests_succeeded)
        _counter(self.fallbacks_total)
        _counter(self.validation_failures)
        _counter(self.timeouts_total)
        _counter(self.low_confidence_total)
        _histogram(self.pipeline_latency)
        for histogram in self.stage_latency.values():
            _histogram(histogram)
        _gauge(self.active_conversations)

        return "\n".join(lines) + "\n"
