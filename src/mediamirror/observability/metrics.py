"""
Prometheus metrics for MediaMirror.

Counters for sync passes, worker jobs, uploads, retries, dead-lettered jobs and
failed background tasks. Detached sync tasks report nothing to their caller, so
these counters (and the logs) are where their failures become visible.

Usage:
    from mediamirror.observability import get_metrics_registry

    registry = get_metrics_registry()
    registry.enable()
    registry.start_http_server(port=9090)
"""

import threading
from collections import Counter as Tally
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
    start_http_server,
)

from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.observability.metrics")


class MetricsRegistry:
    """
    Central registry for all MediaMirror metrics.

    Prometheus counters live on a private CollectorRegistry so several
    registries (e.g. one per test) never collide. Internal tallies mirror every
    counter and back get_metrics().
    """

    def __init__(self):
        self._enabled = False
        self._lock = threading.Lock()
        self._internal: dict[str, Tally] = {
            "sync_entries_total": Tally(),
            "jobs_total": Tally(),
            "renditions_uploaded_total": Tally(),
            "retry_total": Tally(),
            "dlq_entries_total": Tally(),
            "background_task_failures_total": Tally(),
        }
        self._registry = CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self._sync_entries_counter = Counter(
            "mediamirror_sync_entries_total",
            "Remote entries seen by sync passes",
            ["outcome"],  # dispatched, skipped, collision
            registry=self._registry,
        )
        self._jobs_counter = Counter(
            "mediamirror_jobs_total",
            "Worker jobs by media kind and outcome",
            ["kind", "outcome"],  # success, failure
            registry=self._registry,
        )
        self._renditions_counter = Counter(
            "mediamirror_renditions_uploaded_total",
            "Objects written to storage by the worker",
            ["kind"],
            registry=self._registry,
        )
        self._retry_counter = Counter(
            "mediamirror_retry_total",
            "Job retry outcomes",
            ["outcome"],  # retried, exhausted
            registry=self._registry,
        )
        self._dlq_counter = Counter(
            "mediamirror_dlq_entries_total",
            "Jobs moved to the dead letter queue",
            registry=self._registry,
        )
        self._background_failures_counter = Counter(
            "mediamirror_background_task_failures_total",
            "Detached background tasks that ended with an exception",
            ["task"],
            registry=self._registry,
        )

    def enable(self):
        """Enable metrics collection."""
        self._enabled = True
        logger.info("Metrics collection enabled")

    def disable(self):
        """Disable metrics collection."""
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _tally(self, metric: str, key: Any, amount: int = 1) -> None:
        with self._lock:
            self._internal[metric][key] += amount

    def record_sync_entry(self, outcome: str, count: int = 1):
        if not self._enabled or count <= 0:
            return
        self._tally("sync_entries_total", outcome, count)
        self._sync_entries_counter.labels(outcome=outcome).inc(count)

    def record_job(self, kind: str, outcome: str):
        if not self._enabled:
            return
        self._tally("jobs_total", (kind, outcome))
        self._jobs_counter.labels(kind=kind, outcome=outcome).inc()

    def record_upload(self, kind: str, count: int = 1):
        if not self._enabled:
            return
        self._tally("renditions_uploaded_total", kind, count)
        self._renditions_counter.labels(kind=kind).inc(count)

    def record_retry(self, outcome: str):
        if not self._enabled:
            return
        self._tally("retry_total", outcome)
        self._retry_counter.labels(outcome=outcome).inc()

    def record_dlq_entry(self):
        if not self._enabled:
            return
        self._tally("dlq_entries_total", "all")
        self._dlq_counter.inc()

    def record_background_failure(self, task: str):
        if not self._enabled:
            return
        self._tally("background_task_failures_total", task)
        self._background_failures_counter.labels(task=task).inc()

    def get_metrics(self) -> dict[str, dict[Any, int]]:
        """
        Get all internal metrics.

        Returns:
            Dictionary of metric name -> {label(s): count}
        """
        with self._lock:
            return {name: dict(tally) for name, tally in self._internal.items()}

    def start_http_server(self, port: int = 9090, addr: str = ""):
        """
        Start HTTP server for Prometheus scraping.

        Args:
            port: Port to listen on
            addr: Address to bind to (empty string for all interfaces)
        """
        start_http_server(port=port, addr=addr, registry=self._registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    def generate_prometheus_metrics(self) -> bytes:
        """Prometheus metrics in text exposition format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics_registry: MetricsRegistry | None = None


def get_metrics_registry() -> MetricsRegistry:
    """
    Get global metrics registry instance.

    Returns:
        MetricsRegistry instance
    """
    global _metrics_registry
    if _metrics_registry is None:
        _metrics_registry = MetricsRegistry()
    return _metrics_registry
