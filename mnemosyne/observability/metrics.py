"""
Metrics Collection

Prometheus-style counters, gauges and histograms for the knowledge core.

Design decisions:
- Every metric the pipeline reports is declared up front in one table
- Series are keyed by their sorted label pairs; undeclared labels are rejected
- Histograms export cumulative `_bucket`, `_sum` and `_count` series
- A lock per metric keeps updates safe across threads
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, NamedTuple

LabelKey = tuple[tuple[str, str], ...]


class Sample(NamedTuple):
    """One exported series value."""

    name: str
    labels: dict[str, str]
    value: float


class Metric:
    """Shared label handling for all metric types."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str = "", labels: list[str] | None = None):
        self.name = name
        self.description = description
        self.label_names = tuple(labels or ())
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, str]) -> LabelKey:
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name} has no label(s) {sorted(unknown)}")
        return tuple(sorted((k, str(v)) for k, v in labels.items()))

    def samples(self) -> list[Sample]:
        raise NotImplementedError


class Counter(Metric):
    """Monotonic count per label set."""

    metric_type = "counter"

    def __init__(self, name: str, description: str = "", labels: list[str] | None = None):
        super().__init__(name, description, labels)
        self._values: dict[LabelKey, float] = {}

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counters only go up")
        self._add(value, labels)

    def _add(self, value: float, labels: dict[str, str]) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def samples(self) -> list[Sample]:
        with self._lock:
            return [Sample(self.name, dict(key), value) for key, value in self._values.items()]


class Gauge(Counter):
    """Point-in-time value per label set."""

    metric_type = "gauge"

    def inc(self, value: float = 1.0, **labels: str) -> None:
        self._add(value, labels)

    def set(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = value


@dataclass
class _HistogramSeries:
    bucket_counts: list[int]
    total: float = 0.0
    count: int = 0


class Histogram(Metric):
    """Distribution of observations over fixed upper bounds."""

    metric_type = "histogram"

    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf"))

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
        buckets: tuple[float, ...] | None = None,
    ):
        super().__init__(name, description, labels)
        bounds = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        if bounds[-1] != float("inf"):
            bounds += (float("inf"),)
        self.buckets = bounds
        self._series: dict[LabelKey, _HistogramSeries] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            series = self._series.get(key)
            if series is None:
                series = self._series[key] = _HistogramSeries([0] * len(self.buckets))
            series.total += value
            series.count += 1
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    series.bucket_counts[i] += 1

    def get_count(self, **labels: str) -> int:
        key = self._key(labels)
        with self._lock:
            series = self._series.get(key)
            return series.count if series else 0

    def get_sum(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            series = self._series.get(key)
            return series.total if series else 0.0

    def samples(self) -> list[Sample]:
        result = []
        with self._lock:
            for key, series in self._series.items():
                labels = dict(key)
                for bound, count in zip(self.buckets, series.bucket_counts):
                    le = "+Inf" if bound == float("inf") else repr(bound)
                    result.append(Sample(f"{self.name}_bucket", {**labels, "le": le}, count))
                result.append(Sample(f"{self.name}_sum", labels, series.total))
                result.append(Sample(f"{self.name}_count", labels, series.count))
        return result


@contextmanager
def timed(histogram: Histogram, **labels: str) -> Iterator[None]:
    """Observe the wall-clock duration of the block, even when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.observe(time.perf_counter() - start, **labels)


@dataclass(frozen=True)
class MetricSpec:
    kind: type[Metric]
    name: str
    description: str
    labels: list[str] = field(default_factory=list)
    buckets: tuple[float, ...] | None = None

    def build(self, prefix: str) -> Metric:
        name = f"{prefix}_{self.name}"
        if self.kind is Histogram:
            return Histogram(name, self.description, self.labels, self.buckets)
        return self.kind(name, self.description, self.labels)


KNOWLEDGE_METRICS = (
    # Query cache
    MetricSpec(Counter, "cache_requests_total", "Query cache lookups", ["operation", "result"]),
    MetricSpec(Counter, "cache_evictions_total", "Cache entries discarded", ["reason"]),
    MetricSpec(Gauge, "cache_entries", "Entries currently held by the query cache"),
    MetricSpec(Gauge, "memory_utilization_ratio", "Last memory utilization reported by the probe"),
    # Search
    MetricSpec(Counter, "searches_total", "Semantic searches served", ["status"]),
    MetricSpec(Histogram, "search_duration_seconds", "Semantic search duration"),
    MetricSpec(Histogram, "search_results", "Results returned per search", buckets=(0, 1, 2, 5, 10, 20)),
    # Ingestion and storage
    MetricSpec(Counter, "items_ingested_total", "Items stored", ["source_type"]),
    MetricSpec(Counter, "ingestion_failures_total", "Items that failed ingestion"),
    MetricSpec(Counter, "engine_errors_total", "Errors raised by the vector engine", ["operation"]),
)


class MetricsCollector:
    """
    Registry of the knowledge-core metrics.

    Metrics are looked up by their unprefixed name and exported
    with the collector prefix in Prometheus text format.
    """

    def __init__(self, prefix: str = "mnemosyne"):
        self._prefix = prefix
        self._metrics: dict[str, Metric] = {
            spec.name: spec.build(prefix) for spec in KNOWLEDGE_METRICS
        }

    def _typed(self, name: str, kind: type[Metric]) -> Metric:
        metric = self._metrics.get(name)
        if type(metric) is not kind:
            raise KeyError(f"No {kind.metric_type} named {name!r}")
        return metric

    def counter(self, name: str) -> Counter:
        return self._typed(name, Counter)

    def gauge(self, name: str) -> Gauge:
        return self._typed(name, Gauge)

    def histogram(self, name: str) -> Histogram:
        return self._typed(name, Histogram)

    def to_prometheus(self) -> str:
        """Export every metric in Prometheus text format."""
        lines = []
        for metric in self._metrics.values():
            lines.append(f"# HELP {metric.name} {metric.description}")
            lines.append(f"# TYPE {metric.name} {metric.metric_type}")
            for sample in metric.samples():
                label_str = ""
                if sample.labels:
                    label_str = "{" + ",".join(f'{k}="{v}"' for k, v in sample.labels.items()) + "}"
                lines.append(f"{sample.name}{label_str} {float(sample.value)}")
        return "\n".join(lines)


_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector used when none is injected."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
