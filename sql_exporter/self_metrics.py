"""Self-monitoring metrics for the exporter, built on prometheus_client."""
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class SelfMetrics:
    """Counters and timings describing the exporter's own polls."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, prefix: str = "sql_exporter_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.polls_total = Counter(
            f"{prefix}polls_total",
            "Total number of completed metric polls",
            ["metric"],
            registry=registry
        )

        self.poll_errors_total = Counter(
            f"{prefix}poll_errors_total",
            "Total number of failed metric polls",
            ["metric", "kind"],
            registry=registry
        )

        self.skipped_ticks_total = Counter(
            f"{prefix}skipped_ticks_total",
            "Scheduled ticks dropped because the previous poll was still running",
            ["metric"],
            registry=registry
        )

        self.poll_duration_seconds = Histogram(
            f"{prefix}poll_duration_seconds",
            "Duration of each metric poll in seconds",
            ["metric"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry
        )

        self.active_series = Gauge(
            f"{prefix}active_series",
            "Number of series currently stored per metric",
            ["metric"],
            registry=registry
        )

    def record_poll(self, metric: str, duration: float, series_count: int):
        """Record a successful poll."""
        self.polls_total.labels(metric=metric).inc()
        self.poll_duration_seconds.labels(metric=metric).observe(duration)
        self.active_series.labels(metric=metric).set(series_count)

    def record_poll_error(self, metric: str, kind: str, duration: float):
        """Record a failed poll."""
        self.poll_errors_total.labels(metric=metric, kind=kind).inc()
        self.poll_duration_seconds.labels(metric=metric).observe(duration)

    def record_skipped_ticks(self, metric: str, count: int):
        """Record ticks coalesced during an overrun."""
        self.skipped_ticks_total.labels(metric=metric).inc(count)

    def render(self) -> bytes:
        return generate_latest(self.registry)
