"""Self-monitoring metrics for the backfill recorder using prometheus_client."""
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


class BackfillSelfMetrics:
    """Self-monitoring metrics for the backfill recorder."""

    def __init__(self, registry: Optional[CollectorRegistry] = None, prefix: str = ""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry
        self.prefix = prefix

        self.increments_total = Counter(
            f"{prefix}backfill_increments_total",
            "Total number of increments offered to the recorder",
            ["outcome"],
            registry=registry
        )

        self.series = Gauge(
            f"{prefix}backfill_series",
            "Number of series with recorded history",
            registry=registry
        )

        self.samples_written_total = Counter(
            f"{prefix}backfill_samples_written_total",
            "Total number of resampled samples written",
            registry=registry
        )

        self.render_duration_seconds = Histogram(
            f"{prefix}backfill_render_duration_seconds",
            "Duration of each render in seconds",
            buckets=[0.001, 0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 60.0],
            registry=registry
        )

    def record_accepted(self):
        self.increments_total.labels(outcome="accepted").inc()

    def record_dropped(self):
        self.increments_total.labels(outcome="dropped").inc()

    def set_series(self, count: int):
        self.series.set(count)

    def record_samples(self, count: int):
        self.samples_written_total.inc(count)

    def record_render_duration(self, duration: float):
        self.render_duration_seconds.observe(duration)

    def _value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        value = self.registry.get_sample_value(f"{self.prefix}{name}", labels or {})
        return value or 0.0

    def summary(self) -> Dict[str, float]:
        """Current values, keyed by short name, for log output."""
        return {
            "accepted": self._value("backfill_increments_total", {"outcome": "accepted"}),
            "dropped": self._value("backfill_increments_total", {"outcome": "dropped"}),
            "series": self._value("backfill_series"),
            "samples": self._value("backfill_samples_written_total"),
        }
