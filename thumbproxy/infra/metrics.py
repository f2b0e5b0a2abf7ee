# thumbproxy/infra/metrics.py
"""
In-process metrics, served as JSON on ``/metrics``.

Counters are monotonic totals. Histograms keep a sliding window of the
most recent samples for percentiles plus an all-time count and sum.
Metric keys look like ``name{label=value,...}`` with labels sorted.
"""
from __future__ import annotations
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Dict
from dataclasses import dataclass, field
from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

HISTOGRAM_WINDOW = 10_000


@dataclass
class Counter:
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


@dataclass
class Histogram:
    """Distribution of observed values (stage durations, payload sizes)"""
    window: deque = field(default_factory=lambda: deque(maxlen=HISTOGRAM_WINDOW))
    count: int = 0
    total: float = 0.0

    def observe(self, value: float) -> None:
        self.window.append(value)
        self.count += 1
        self.total += value

    def get_stats(self) -> dict:
        if not self.count:
            return {"count": 0, "sum": 0.0, "min": 0, "max": 0, "avg": 0, "p50": 0, "p95": 0, "p99": 0}

        ordered = sorted(self.window)
        last = len(ordered) - 1

        def percentile(p: float) -> float:
            return ordered[min(int(len(ordered) * p), last)]

        return {
            "count": self.count,
            "sum": self.total,
            "min": ordered[0],
            "max": ordered[-1],
            "avg": self.total / self.count,
            "p50": percentile(0.50),
            "p95": percentile(0.95),
            "p99": percentile(0.99),
        }


class MetricsCollector:
    """Thread-safe registry of counters and histograms"""

    def __init__(self):
        self._counters: Dict[str, Counter] = defaultdict(Counter)
        self._histograms: Dict[str, Histogram] = defaultdict(Histogram)
        self._lock = Lock()
        self._started_at = time.monotonic()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key].inc(amount)

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms[key].observe(value)

    def get_metrics(self) -> dict:
        with self._lock:
            return {
                "uptime_seconds": time.monotonic() - self._started_at,
                "counters": {key: c.value for key, c in self._counters.items()},
                "histograms": {key: h.get_stats() for key, h in self._histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._started_at = time.monotonic()
        logger.debug("Metrics reset")

    @staticmethod
    def _make_key(name: str, labels: dict | None) -> str:
        if not labels:
            return name
        rendered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
        return f"{name}{{{rendered}}}"


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)


class Timer:
    """Observe the wall time of a ``with`` block, in seconds, even when it raises"""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            observe_histogram(self.metric_name, time.monotonic() - self.start_time, **self.labels)


class ThumbnailMetrics:
    """Pipeline-level metrics tracking"""

    @staticmethod
    def outcome(status: str, duration_seconds: float) -> None:
        inc_counter("thumbnail_requests_total", outcome=status)
        observe_histogram("thumbnail_request_seconds", duration_seconds, outcome=status)

    @staticmethod
    def upstream_bytes(size: int) -> None:
        observe_histogram("upstream_payload_bytes", float(size))

    @staticmethod
    def classified(kind: str) -> None:
        inc_counter("thumbnail_sources_total", kind=kind)

    @staticmethod
    def track_stage(stage: str) -> Timer:
        return Timer("pipeline_stage_seconds", stage=stage)
