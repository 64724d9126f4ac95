"""Tests for Prometheus metrics collection."""
from __future__ import annotations

from snipr.core.metrics import SniprMetrics


def _sample(m: SniprMetrics, name: str, labels=None) -> float:
    value = m.registry.get_sample_value(name, labels or {})
    return value or 0.0


class TestSniprMetrics:

    def test_private_registries_do_not_collide(self):
        a = SniprMetrics()
        b = SniprMetrics()
        a.record_job("completed")
        assert _sample(a, "snipr_jobs_total", {"status": "completed"}) == 1.0
        assert _sample(b, "snipr_jobs_total", {"status": "completed"}) == 0.0

    def test_stage_histogram(self):
        m = SniprMetrics()
        m.observe_stage("synthesize", 0.3)
        m.observe_stage("synthesize", 12.0)
        assert _sample(m, "snipr_stage_duration_seconds_count", {"stage": "synthesize"}) == 2.0
        assert _sample(m, "snipr_stage_duration_seconds_bucket", {"stage": "synthesize", "le": "0.5"}) == 1.0

    def test_counters(self):
        m = SniprMetrics()
        m.record_chunk("timeout")
        m.record_storage_retry("upload")
        m.record_storage_retry("upload")
        m.record_feed_render()

        assert _sample(m, "snipr_synthesis_chunks_total", {"outcome": "timeout"}) == 1.0
        assert _sample(m, "snipr_storage_retries_total", {"operation": "upload"}) == 2.0
        assert _sample(m, "snipr_feed_renders_total") == 1.0

    def test_in_flight_gauge(self):
        m = SniprMetrics()
        m.job_started()
        m.job_started()
        m.job_finished()
        assert _sample(m, "snipr_jobs_in_flight") == 1.0

    def test_exposition(self):
        m = SniprMetrics()
        m.record_job("failed")
        content, content_type = m.get_metrics_response()
        assert content_type.startswith("text/plain")
        assert b'snipr_jobs_total{status="failed"} 1.0' in content
