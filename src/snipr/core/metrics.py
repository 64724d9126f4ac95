"""
Prometheus Metrics for the Conversion Service.

Metrics Exposed:
    snipr_jobs_total{status}                 - Jobs reaching a terminal state
    snipr_stage_duration_seconds{stage}      - Pipeline stage latency
    snipr_synthesis_chunks_total{outcome}    - Synthesis calls (ok/error/timeout)
    snipr_storage_retries_total{operation}   - Artifact store retries (upload/url)
    snipr_jobs_in_flight                     - Jobs currently running
    snipr_feed_renders_total                 - RSS documents served

Usage:
    from snipr.core.metrics import metrics

    metrics.record_job("completed")
    metrics.observe_stage("synthesis", 12.4)
    content, content_type = metrics.get_metrics_response()

Prometheus Scrape Config Example:
    scrape_configs:
      - job_name: 'snipr'
        static_configs:
          - targets: ['localhost:8000']
        metrics_path: '/metrics'
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class SniprMetrics:
    """
    Metrics collection on a private CollectorRegistry.

    A private registry keeps repeated instantiation (tests, reloads) from
    colliding with the process-global default registry. All prometheus
    operations are thread-safe, so job workers record directly.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._jobs_total = Counter(
            "snipr_jobs_total",
            "Conversion jobs reaching a terminal state",
            ["status"],
            registry=self._registry,
        )
        self._stage_duration = Histogram(
            "snipr_stage_duration_seconds",
            "Pipeline stage duration in seconds",
            ["stage"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )
        self._synthesis_chunks = Counter(
            "snipr_synthesis_chunks_total",
            "Synthesis calls by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._storage_retries = Counter(
            "snipr_storage_retries_total",
            "Artifact store retries by operation",
            ["operation"],
            registry=self._registry,
        )
        self._jobs_in_flight = Gauge(
            "snipr_jobs_in_flight",
            "Conversion jobs currently running",
            registry=self._registry,
        )
        self._feed_renders = Counter(
            "snipr_feed_renders_total",
            "RSS documents rendered",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_job(self, status: str) -> None:
        """Count a job that reached `completed` or `failed`."""
        self._jobs_total.labels(status=status).inc()

    def observe_stage(self, stage: str, seconds: float) -> None:
        self._stage_duration.labels(stage=stage).observe(seconds)

    def record_chunk(self, outcome: str) -> None:
        """Count one synthesis call ("ok", "error" or "timeout")."""
        self._synthesis_chunks.labels(outcome=outcome).inc()

    def record_storage_retry(self, operation: str) -> None:
        self._storage_retries.labels(operation=operation).inc()

    def job_started(self) -> None:
        self._jobs_in_flight.inc()

    def job_finished(self) -> None:
        self._jobs_in_flight.dec()

    def record_feed_render(self) -> None:
        self._feed_renders.inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global singleton: from snipr.core.metrics import metrics
metrics = SniprMetrics()
