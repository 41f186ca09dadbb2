"""
Result aggregation for load test runs.

``MetricsAggregator`` is the only object written to by many workers at once.
Every write goes through one lock and only touches running sums, so nothing
is rescanned while a run is active. Order statistics are computed once, at
finalization.
"""

from __future__ import annotations

import math
import threading
from typing import Dict, Iterable, List, Optional, Sequence

from prometheus_client import Counter, Gauge, Histogram

from .models import EndpointStats, RequestResult, TestError, TestResult

REQUEST_COUNTER = Counter(
    "loadtest_requests_total",
    "Requests issued by load test workers",
    labelnames=("test", "endpoint", "outcome"),
)
REQUEST_DURATION = Histogram(
    "loadtest_request_duration_seconds",
    "Response time of load test requests",
    labelnames=("test",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)
ACTIVE_WORKERS = Gauge(
    "loadtest_active_workers",
    "Workers currently generating traffic",
    labelnames=("test",),
)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence.

    Index is ``ceil(p/100 * n) - 1`` clamped to ``[0, n-1]``; an empty
    sequence yields 0.
    """

    n = len(sorted_values)
    if n == 0:
        return 0.0
    index = math.ceil((p / 100) * n) - 1
    index = min(max(index, 0), n - 1)
    return sorted_values[index]


def calculate_percentiles(values: Iterable[float], percentiles: Optional[List[int]] = None) -> Dict[str, float]:
    if percentiles is None:
        percentiles = [50, 90, 95, 99]
    sorted_values = sorted(values)
    return {f"p{p}": percentile(sorted_values, p) for p in percentiles}


class MetricsAggregator:
    """Collects per-request results into global and per-endpoint statistics."""

    def __init__(self, result: TestResult) -> None:
        self.result = result
        self._lock = threading.Lock()
        self._results: List[RequestResult] = []
        self._success_durations: List[float] = []
        self._success_total_ms = 0.0
        self._max_ms = 0.0
        self._finalized = False

    @property
    def results(self) -> List[RequestResult]:
        with self._lock:
            return list(self._results)

    def record(self, request: RequestResult, errors: Iterable[TestError] = ()) -> None:
        """Append one request result and its error entries."""

        key = f"{request.method} {request.endpoint}"
        with self._lock:
            if self._finalized:
                return
            self._results.append(request)
            result = self.result
            result.total_requests += 1
            if request.success:
                result.successful_requests += 1
                self._success_durations.append(request.duration_ms)
                self._success_total_ms += request.duration_ms
            else:
                result.failed_requests += 1
            if request.duration_ms > self._max_ms:
                self._max_ms = request.duration_ms

            stats = result.endpoint_stats.get(key)
            if stats is None:
                stats = EndpointStats(path=request.endpoint, method=request.method)
                result.endpoint_stats[key] = stats
            stats.add(request.duration_ms, request.success)
            result.errors.extend(errors)

        REQUEST_COUNTER.labels(
            test=self.result.test_name,
            endpoint=request.endpoint,
            outcome="success" if request.success else "failure",
        ).inc()
        REQUEST_DURATION.labels(test=self.result.test_name).observe(request.duration_ms / 1000)

    def snapshot(self) -> Dict[str, float]:
        """Live counters for progress display."""

        with self._lock:
            total = self.result.total_requests
            return {
                "totalRequests": total,
                "successfulRequests": self.result.successful_requests,
                "failedRequests": self.result.failed_requests,
                "errors": len(self.result.errors),
                "averageResponseTime": (
                    self._success_total_ms / len(self._success_durations) if self._success_durations else 0.0
                ),
            }

    def finalize(self, wall_clock_seconds: float) -> TestResult:
        """Compute order statistics and throughput; further records are ignored."""

        with self._lock:
            self._finalized = True
            result = self.result
            durations = sorted(self._success_durations)

            result.duration_ms = wall_clock_seconds * 1000
            if durations:
                result.average_response_time_ms = self._success_total_ms / len(durations)
                result.min_response_time_ms = durations[0]
            else:
                result.average_response_time_ms = 0.0
                result.min_response_time_ms = 0.0
            result.max_response_time_ms = self._max_ms

            result.p50_response_time_ms = percentile(durations, 50)
            result.p90_response_time_ms = percentile(durations, 90)
            result.p95_response_time_ms = percentile(durations, 95)
            result.p99_response_time_ms = percentile(durations, 99)

            if wall_clock_seconds > 0:
                result.requests_per_second = result.total_requests / wall_clock_seconds
                for stats in result.endpoint_stats.values():
                    stats.throughput = stats.total_requests / wall_clock_seconds
            else:
                result.requests_per_second = 0.0

            return result
