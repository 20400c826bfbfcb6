"""Metrics collection for triage observability.

Counters for classification and delivery outcomes, a gauge for in-flight
pipelines and histograms for pipeline and classifier latency. The registry
exports Prometheus text format.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


class MetricType(StrEnum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricValue:
    """A single metric value with metadata."""

    name: str
    type: MetricType
    value: float
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    help_text: str = ""


class _LabelledMetric:
    """Shared storage for counters and gauges keyed by label set."""

    metric_type = MetricType.GAUGE

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def _add(self, value: float, labels: dict[str, str] | None) -> None:
        with self._lock:
            self._values[_label_key(labels)] += value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Get the current value for a label set."""
        with self._lock:
            return self._values.get(_label_key(labels), 0)

    def get_all(self) -> list[MetricValue]:
        """Get all values with their labels."""
        with self._lock:
            return [
                MetricValue(
                    name=self.name,
                    type=self.metric_type,
                    value=value,
                    labels=dict(key),
                    help_text=self.help_text,
                )
                for key, value in self._values.items()
            ]


class Counter(_LabelledMetric):
    """A monotonically increasing counter.

    Example:
        counter = Counter("direct_alerts_total", "Direct alerts sent")
        counter.inc()
        counter.inc(labels={"category": "urgent"})
    """

    metric_type = MetricType.COUNTER

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the counter."""
        if value < 0:
            raise ValueError("Counter can only increase")
        self._add(value, labels)


class Gauge(_LabelledMetric):
    """A metric that can go up or down."""

    metric_type = MetricType.GAUGE

    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Set the gauge value."""
        with self._lock:
            self._values[_label_key(labels)] = value

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Increment the gauge."""
        self._add(value, labels)

    def dec(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Decrement the gauge."""
        self._add(-value, labels)


class Histogram:
    """Tracks a distribution of observed values.

    Example:
        histogram = Histogram("pipeline_duration_seconds", "Pipeline duration")
        histogram.observe(0.2, labels={"source": "remote"})
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._observations: dict[LabelKey, list[float]] = defaultdict(list)
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        """Record an observation."""
        with self._lock:
            self._observations[_label_key(labels)].append(value)

    def get_stats(self, labels: dict[str, str] | None = None) -> dict[str, float]:
        """Get count, sum, min, max and mean for a label set."""
        with self._lock:
            values = list(self._observations.get(_label_key(labels), []))

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}

        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
        }


class MetricsRegistry:
    """Registry for all triage metrics.

    Example:
        registry = MetricsRegistry.get_instance()
        registry.messages_received.inc()
        metrics = registry.get_all_metrics()
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        self.messages_received = Counter(
            "notification_triage_messages_received_total",
            "Total messages entering the triage pipeline",
        )
        self.messages_processed = Counter(
            "notification_triage_messages_processed_total",
            "Total messages that produced a notification record",
        )
        self.messages_errors = Counter(
            "notification_triage_messages_errors_total",
            "Total messages whose pipeline raised",
        )

        self.classifier_attempts = Counter(
            "notification_triage_classifier_attempts_total",
            "Total remote classifier attempts",
        )
        self.classifier_failures = Counter(
            "notification_triage_classifier_failures_total",
            "Total remote classifications that gave up",
        )
        self.fallback_classifications = Counter(
            "notification_triage_fallback_classifications_total",
            "Total messages classified by the rule-based fallback",
        )

        self.direct_alerts_sent = Counter(
            "notification_triage_direct_alerts_total",
            "Total direct alerts delivered",
        )
        self.feed_entries = Counter(
            "notification_triage_feed_entries_total",
            "Total feed entries written",
        )
        self.quiet_hours_suppressions = Counter(
            "notification_triage_quiet_hours_suppressions_total",
            "Total direct alerts suppressed by quiet hours",
        )
        self.delivery_failures = Counter(
            "notification_triage_delivery_failures_total",
            "Total failed direct alert or feed deliveries",
        )

        self.pipeline_duration = Histogram(
            "notification_triage_pipeline_duration_seconds",
            "End-to-end message pipeline duration in seconds",
        )
        self.classifier_duration = Histogram(
            "notification_triage_classifier_duration_seconds",
            "Remote classification duration in seconds, retries included",
        )

        self.active_tasks = Gauge(
            "notification_triage_active_tasks",
            "Number of pipelines currently in flight",
        )

        self._start_time = time.time()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        """Get the singleton metrics registry instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_uptime_seconds(self) -> float:
        """Get process uptime in seconds."""
        return time.time() - self._start_time

    def _counters(self) -> list[Counter]:
        return [
            self.messages_received,
            self.messages_processed,
            self.messages_errors,
            self.classifier_attempts,
            self.classifier_failures,
            self.fallback_classifications,
            self.direct_alerts_sent,
            self.feed_entries,
            self.quiet_hours_suppressions,
            self.delivery_failures,
        ]

    def get_all_metrics(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "messages": {
                "received": self.messages_received.get(),
                "processed": self.messages_processed.get(),
                "errors": self.messages_errors.get(),
            },
            "classifier": {
                "attempts": self.classifier_attempts.get(),
                "failures": self.classifier_failures.get(),
                "fallbacks": self.fallback_classifications.get(),
                "duration_stats": self.classifier_duration.get_stats(),
            },
            "delivery": {
                "direct_alerts": self.direct_alerts_sent.get(),
                "feed_entries": self.feed_entries.get(),
                "quiet_hours_suppressions": self.quiet_hours_suppressions.get(),
                "failures": self.delivery_failures.get(),
            },
            "processing": {
                "active_tasks": self.active_tasks.get(),
                "duration_stats": self.pipeline_duration.get_stats(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Export counters and gauges in Prometheus text format."""
        lines: list[str] = []

        metrics: list[_LabelledMetric] = [*self._counters(), self.active_tasks]
        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.metric_type.value}")
            for value in metric.get_all():
                if value.labels:
                    label_str = ",".join(f'{k}="{v}"' for k, v in value.labels.items())
                    lines.append(f"{metric.name}{{{label_str}}} {value.value}")
                else:
                    lines.append(f"{metric.name} {value.value}")

        lines.append("# HELP notification_triage_uptime_seconds Process uptime in seconds")
        lines.append("# TYPE notification_triage_uptime_seconds gauge")
        lines.append(f"notification_triage_uptime_seconds {self.get_uptime_seconds()}")

        return "\n".join(lines)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Context manager for timing operations.

    Example:
        with Timer(metrics.pipeline_duration, labels={"source": "remote"}):
            ...
    """

    def __init__(
        self,
        histogram: Histogram,
        labels: dict[str, str] | None = None,
    ) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start: float | None = None

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._start is not None:
            duration = time.perf_counter() - self._start
            self._histogram.observe(duration, labels=self._labels)
