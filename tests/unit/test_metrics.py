"""
STRATEGY-NLP Tests: Pipeline Metrics

Node ID: tests.unit.test_metrics
Graph Link: tested_by → monitoring.metrics

Tests cover:
- Counter, gauge and histogram primitives
- Stage recording and the timer context manager
- JSON snapshot and Prometheus export
"""

from __future__ import annotations

import json

import pytest

from src.monitoring.metrics import CounterMetric, GaugeMetric, HistogramMetric, PipelineMetrics


class TestPrimitives:
    def test_counter_increments(self):
        c = CounterMetric(name="c", help="h")
        c.inc()
        c.inc(2)
        assert c.value == 3

    def test_counter_rejects_negative(self):
        c = CounterMetric(name="c", help="h")
        with pytest.raises(ValueError):
            c.inc(-1)

    def test_gauge_moves_both_ways(self):
        g = GaugeMetric(name="g", help="h")
        g.set(5)
        g.inc()
        g.dec(2)
        assert g.value == 4

    def test_histogram_statistics(self):
        h = HistogramMetric(name="h", help="h", bucket_boundaries=(1.0, 10.0))
        for v in (0.5, 2.0, 20.0):
            h.observe(v)
        assert h.count == 3
        assert h.sum == pytest.approx(22.5)
        assert h.mean == pytest.approx(7.5)
        assert h.min == 0.5
        assert h.max == 20.0

    def test_empty_histogram_reports_zero(self):
        h = HistogramMetric(name="h", help="h")
        assert h.mean == 0.0
        assert h.min == 0.0
        assert h.max == 0.0


class TestPipelineMetrics:
    def test_stages_registered(self):
        metrics = PipelineMetrics()
        assert set(metrics.stage_latency) == {"context", "tokenization", "intent", "parameters"}

    def test_record_stage(self):
        metrics = PipelineMetrics()
        metrics.record_stage("intent", 2.0)
        assert metrics.stage_latency["intent"].count == 1

    def test_unknown_stage_ignored(self):
        metrics = PipelineMetrics()
        metrics.record_stage("unknown", 2.0)
        assert all(h.count == 0 for h in metrics.stage_latency.values())

    def test_timer_observes_elapsed(self):
        metrics = PipelineMetrics()
        with metrics.timer(metrics.pipeline_latency):
            sum(range(1000))
        assert metrics.pipeline_latency.count == 1
        assert metrics.pipeline_latency.sum >= 0.0

    def test_success_rate(self):
        metrics = PipelineMetrics()
        assert metrics.success_rate == 0.0
        metrics.requests_total.inc(4)
        metrics.requests_succeeded.inc(3)
        assert metrics.success_rate == pytest.approx(0.75)

    def test_snapshot_is_json_serialisable(self):
        metrics = PipelineMetrics()
        metrics.requests_total.inc()
        metrics.fallbacks_total.inc()
        metrics.active_conversations.set(2)
        snapshot = metrics.snapshot()
        json.dumps(snapshot)
        assert snapshot["requests"]["total"] == 1
        assert snapshot["requests"]["fallbacks"] == 1
        assert snapshot["conversations"]["active"] == 2
        assert "tokenization" in snapshot["latency"]["stages_mean_ms"]

    def test_prometheus_export(self):
        metrics = PipelineMetrics()
        metrics.requests_total.inc()
        metrics.pipeline_latency.observe(3.0)
        text = metrics.to_prometheus()
        assert "# TYPE snlp_requests_total counter" in text
        assert "snlp_requests_total 1.0" in text
        assert 'snlp_pipeline_latency_ms_bucket{le="+Inf"} 1' in text
        assert "snlp_active_conversations 0.0" in text
