"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)

from queuectl.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_FINISHED,
    METRIC_JOBS_RESCUED,
    METRIC_LOST_LOCKS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue.

    Collects metrics for:
    - Claims and stale lock rescues
    - Attempt outcomes and execution duration
    - Results discarded because the lock was lost
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed",
            ["worker_id"],
            registry=self._registry,
        )

        self.jobs_rescued = Counter(
            METRIC_JOBS_RESCUED,
            "Total number of stale locks taken over",
            ["worker_id"],
            registry=self._registry,
        )

        # Attempts by resulting state
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of execution attempts by resulting state",
            ["state"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["state"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.lost_locks = Counter(
            METRIC_LOST_LOCKS,
            "Total number of results discarded because the lock was lost",
            ["worker_id"],
            registry=self._registry,
        )

    def record_job_claimed(self, worker_id: str, rescued: bool = False) -> None:
        """Record a claim, and whether it took over a stale lock."""
        self.jobs_claimed.labels(worker_id=worker_id).inc()
        if rescued:
            self.jobs_rescued.labels(worker_id=worker_id).inc()

    def record_job_finished(self, state: str, duration_seconds: float) -> None:
        """Record the outcome of an attempt."""
        self.jobs_finished.labels(state=state).inc()
        self.job_duration.labels(state=state).observe(duration_seconds)

    def record_lost_lock(self, worker_id: str) -> None:
        """Record a result that could not be committed."""
        self.lost_locks.labels(worker_id=worker_id).inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, also serve the registry over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port, registry=_metrics._registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
