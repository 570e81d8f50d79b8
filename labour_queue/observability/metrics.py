"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from labour_queue.constants import (
    METRIC_LABOUR_DURATION,
    METRIC_LABOURS_COMPLETED,
    METRIC_LABOURS_ENQUEUED,
    METRIC_LABOURS_RESERVED,
    METRIC_LABOURS_UNKNOWN,
    METRIC_QUEUE_DEPTH,
    METRIC_RESERVATION_RACES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the labour queue.

    Collects metrics for:
    - Labours per status
    - Enqueues (created or ignored as duplicate)
    - Reservations and lost reservation races
    - Labour outcomes and execution duration
    - Labours reconciled as unknown
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Labours per status gauge
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of labours per status",
            ["status"],
            registry=self._registry,
        )

        # Labours enqueued counter
        self.labours_enqueued = Counter(
            METRIC_LABOURS_ENQUEUED,
            "Total number of enqueue calls",
            ["worker", "outcome"],
            registry=self._registry,
        )

        # Labours reserved counter
        self.labours_reserved = Counter(
            METRIC_LABOURS_RESERVED,
            "Total number of labours claimed for execution",
            ["worker"],
            registry=self._registry,
        )

        # Labours completed counter
        self.labours_completed = Counter(
            METRIC_LABOURS_COMPLETED,
            "Total number of labour executions by outcome",
            ["worker", "outcome"],
            registry=self._registry,
        )

        # Labour duration histogram
        self.labour_duration = Histogram(
            METRIC_LABOUR_DURATION,
            "Labour execution duration in seconds",
            ["worker", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        # Labours reconciled as unknown counter
        self.labours_unknown = Counter(
            METRIC_LABOURS_UNKNOWN,
            "Total number of running labours whose process was found dead",
            registry=self._registry,
        )

        # Reservation races counter
        self.reservation_races = Counter(
            METRIC_RESERVATION_RACES,
            "Total number of reservations lost to another process",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_labour_enqueued(self, worker: str, outcome: str) -> None:
        """Record an enqueue call."""
        self.labours_enqueued.labels(worker=worker, outcome=outcome).inc()

    def record_labour_reserved(self, worker: str) -> None:
        """Record a claimed labour."""
        self.labours_reserved.labels(worker=worker).inc()

    def record_labour_completed(
        self,
        worker: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record a labour execution."""
        self.labours_completed.labels(worker=worker, outcome=outcome).inc()
        self.labour_duration.labels(worker=worker, outcome=outcome).observe(
            duration_seconds
        )

    def record_labours_unknown(self, count: int) -> None:
        """Record labours reconciled as unknown."""
        self.labours_unknown.inc(count)

    def record_reservation_race(self) -> None:
        """Record a lost reservation race."""
        self.reservation_races.inc()

    def update_queue_depth(self, counts: dict[str, int]) -> None:
        """Update labour counts per status."""
        for status, count in counts.items():
            self.queue_depth.labels(status=status).set(count)

    def serve(self, port: int) -> None:
        """Expose the metrics over HTTP on a background thread."""
        start_http_server(port, registry=self._registry)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
