# src/siteagent/core/stats.py
"""Running counters and latency histograms for workflows.

Counters are per resource kind and independent of each other: no
cross-kind coordination is needed. All increments are thread-safe.
"""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass, field
from typing import Any

from siteagent.contracts.enums import CompositeStatus
from siteagent.core.atomic import AtomicCounter

# Upper bounds (seconds) of latency buckets; the last bucket is unbounded.
DEFAULT_LATENCY_BUCKETS: tuple[float, ...] = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)


@dataclass
class WorkflowStatistics:
    """Counters for one resource kind."""

    started: AtomicCounter = field(default_factory=AtomicCounter)
    activity_succeeded: AtomicCounter = field(default_factory=AtomicCounter)
    activity_failed: AtomicCounter = field(default_factory=AtomicCounter)
    publish_succeeded: AtomicCounter = field(default_factory=AtomicCounter)
    publish_failed: AtomicCounter = field(default_factory=AtomicCounter)

    def record_start(self) -> None:
        self.started.inc()

    def record_end(self, *, activity_succeeded: bool, publish_succeeded: bool) -> None:
        if activity_succeeded:
            self.activity_succeeded.inc()
        else:
            self.activity_failed.inc()
        if publish_succeeded:
            self.publish_succeeded.inc()
        else:
            self.publish_failed.inc()

    def snapshot(self) -> dict[str, int]:
        return {
            "started": self.started.load(),
            "activity_succeeded": self.activity_succeeded.load(),
            "activity_failed": self.activity_failed.load(),
            "publish_succeeded": self.publish_succeeded.load(),
            "publish_failed": self.publish_failed.load(),
        }


class StatisticsRegistry:
    """Creates and reuses one WorkflowStatistics bucket per resource kind."""

    def __init__(self) -> None:
        self._buckets: dict[str, WorkflowStatistics] = {}
        self._lock = threading.Lock()

    def for_resource(self, resource_type: str) -> WorkflowStatistics:
        with self._lock:
            if resource_type not in self._buckets:
                self._buckets[resource_type] = WorkflowStatistics()
            return self._buckets[resource_type]

    def snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            buckets = dict(self._buckets)
        return {name: stats.snapshot() for name, stats in sorted(buckets.items())}


@dataclass
class _Series:
    bucket_counts: list[int]
    count: int = 0
    total: float = 0.0


class LatencyHistogram:
    """Workflow latency keyed by (activity label, composite status)."""

    def __init__(self, buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS) -> None:
        if list(buckets) != sorted(buckets):
            raise ValueError("latency buckets must be sorted")
        self._buckets = buckets
        self._series: dict[tuple[str, CompositeStatus], _Series] = {}
        self._lock = threading.Lock()

    def record(self, activity: str, status: CompositeStatus, seconds: float) -> None:
        index = bisect.bisect_left(self._buckets, seconds)
        with self._lock:
            series = self._series.get((activity, status))
            if series is None:
                series = _Series(bucket_counts=[0] * (len(self._buckets) + 1))
                self._series[(activity, status)] = series
            series.bucket_counts[index] += 1
            series.count += 1
            series.total += seconds

    def count(self, activity: str, status: CompositeStatus) -> int:
        with self._lock:
            series = self._series.get((activity, status))
            return 0 if series is None else series.count

    def snapshot(self) -> list[dict[str, Any]]:
        with self._lock:
            return [
                {
                    "activity": activity,
                    "status": status.value,
                    "count": series.count,
                    "sum_seconds": series.total,
                    "buckets": dict(zip([*map(str, self._buckets), "+Inf"], series.bucket_counts, strict=True)),
                }
                for (activity, status), series in sorted(self._series.items())
            ]
