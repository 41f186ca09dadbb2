"""
Data model for load test configurations and results.

Configurations are immutable once built; results are append-only while a
run is active and frozen when the run finalizes. Every entity exposes
``to_dict()`` producing the camelCase shape used on the wire and in JSON
reports. All durations are milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError, ErrorCategory

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = ("POST", "PUT", "PATCH")
REQUIRED_CONFIG_FIELDS = ("name", "duration", "concurrency", "endpoints")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class RunState(Enum):
    CREATED = "created"
    RAMPING_UP = "ramping_up"
    STEADY = "steady"
    RAMPING_DOWN = "ramping_down"
    ABORTED = "aborted"
    FINALIZED = "finalized"


# ABORTED is reachable from every non-terminal state and leads straight to FINALIZED.
RUN_TRANSITIONS: Dict[RunState, Tuple[RunState, ...]] = {
    RunState.CREATED: (RunState.RAMPING_UP, RunState.ABORTED),
    RunState.RAMPING_UP: (RunState.STEADY, RunState.RAMPING_DOWN, RunState.ABORTED),
    RunState.STEADY: (RunState.RAMPING_DOWN, RunState.ABORTED),
    RunState.RAMPING_DOWN: (RunState.FINALIZED, RunState.ABORTED),
    RunState.ABORTED: (RunState.FINALIZED,),
    RunState.FINALIZED: (),
}


def _number(raw: Mapping[str, Any], *keys: str, default=None, cast=int):
    for key in keys:
        if key in raw and raw[key] is not None:
            try:
                return cast(raw[key])
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Field '{key}' must be numeric", [key]) from exc
    return default


@dataclass(frozen=True)
class Endpoint:
    """One target call definition."""

    path: str
    method: str = "GET"
    weight: float = 1.0
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    expected_status: Tuple[int, ...] = (200,)
    max_response_time_ms: int = 5000

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def __hash__(self) -> int:
        return hash((self.path, self.method, self.weight, self.expected_status, self.max_response_time_ms))

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Endpoint":
        if not isinstance(raw, Mapping) or not raw.get("path"):
            raise ConfigurationError("Every endpoint requires a 'path'", ["endpoints.path"])
        method = str(raw.get("method") or "GET").upper()
        if method not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported HTTP method '{method}'", ["endpoints.method"])
        expected = raw.get("expectedStatus", raw.get("expected_status")) or [200]
        if isinstance(expected, int) and not isinstance(expected, bool):
            expected = [expected]
        if not isinstance(expected, (list, tuple)):
            raise ConfigurationError("expectedStatus must be a list of integers", ["endpoints.expectedStatus"])
        try:
            expected_status = tuple(int(code) for code in expected)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("expectedStatus must be a list of integers", ["endpoints.expectedStatus"]) from exc
        headers = raw.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise ConfigurationError("headers must be an object of name/value pairs", ["endpoints.headers"])
        return cls(
            path=str(raw["path"]),
            method=method,
            weight=_number(raw, "weight", default=1.0, cast=float),
            headers={str(name): str(value) for name, value in headers.items()},
            body=raw.get("body"),
            expected_status=expected_status,
            max_response_time_ms=_number(raw, "maxResponseTime", "max_response_time_ms", default=5000),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "method": self.method,
            "weight": self.weight,
            "headers": dict(self.headers),
            "body": self.body,
            "expectedStatus": list(self.expected_status),
            "maxResponseTime": self.max_response_time_ms,
        }


@dataclass(frozen=True)
class ScenarioStep:
    endpoint: str
    method: str = "GET"
    delay_ms: int = 0
    data: Any = None

    def __hash__(self) -> int:
        return hash((self.endpoint, self.method, self.delay_ms))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ScenarioStep":
        if not isinstance(raw, Mapping) or not raw.get("endpoint"):
            raise ConfigurationError("Every scenario step requires an 'endpoint'", ["scenarios.steps.endpoint"])
        return cls(
            endpoint=str(raw["endpoint"]),
            method=str(raw.get("method") or "GET").upper(),
            delay_ms=_number(raw, "delay", "delay_ms", default=0),
            data=raw.get("data"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"endpoint": self.endpoint, "method": self.method, "delay": self.delay_ms, "data": self.data}


@dataclass(frozen=True)
class Scenario:
    """Ordered, weighted user journey."""

    name: str
    weight: float
    steps: Tuple[ScenarioStep, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Scenario":
        if not isinstance(raw, Mapping) or not raw.get("name"):
            raise ConfigurationError("Every scenario requires a 'name'", ["scenarios.name"])
        return cls(
            name=str(raw["name"]),
            weight=_number(raw, "weight", default=1.0, cast=float),
            steps=tuple(ScenarioStep.from_dict(step) for step in raw.get("steps") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "weight": self.weight, "steps": [step.to_dict() for step in self.steps]}


@dataclass(frozen=True)
class TestConfiguration:
    """A complete, immutable test definition."""

    __test__ = False

    name: str
    duration_ms: int
    concurrency: int
    endpoints: Tuple[Endpoint, ...]
    ramp_up_ms: int = 0
    ramp_down_ms: int = 0
    scenarios: Tuple[Scenario, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TestConfiguration":
        """Parse the wire shape, raising ConfigurationError on missing required fields."""

        if not isinstance(raw, Mapping):
            raise ConfigurationError("Test configuration required", list(REQUIRED_CONFIG_FIELDS))

        missing = [key for key in REQUIRED_CONFIG_FIELDS if raw.get(key) in (None, "", [])]
        if "duration" in missing and raw.get("duration_ms"):
            missing.remove("duration")
        if missing:
            raise ConfigurationError(
                "Invalid test configuration. Required: " + ", ".join(REQUIRED_CONFIG_FIELDS),
                missing,
            )

        scenarios_raw = raw.get("userScenarios", raw.get("scenarios")) or []
        config = cls(
            name=str(raw["name"]),
            duration_ms=_number(raw, "duration", "duration_ms"),
            concurrency=_number(raw, "concurrency"),
            endpoints=tuple(Endpoint.from_dict(item) for item in raw["endpoints"]),
            ramp_up_ms=_number(raw, "rampUpTime", "ramp_up_ms", default=0),
            ramp_down_ms=_number(raw, "rampDownTime", "ramp_down_ms", default=0),
            scenarios=tuple(Scenario.from_dict(item) for item in scenarios_raw),
        )
        config.validate()
        return config

    def validate(self) -> None:
        problems: List[str] = []
        if not self.name:
            problems.append("name")
        if self.duration_ms <= 0:
            problems.append("duration")
        if self.concurrency < 1:
            problems.append("concurrency")
        if not self.endpoints:
            problems.append("endpoints")
        if self.ramp_up_ms < 0:
            problems.append("rampUpTime")
        if self.ramp_down_ms < 0:
            problems.append("rampDownTime")
        for endpoint in self.endpoints:
            if endpoint.weight < 0 or endpoint.max_response_time_ms <= 0:
                problems.append(f"endpoints[{endpoint.key}]")
        for scenario in self.scenarios:
            if scenario.weight < 0:
                problems.append(f"scenarios[{scenario.name}]")
        if problems:
            raise ConfigurationError("Invalid values for: " + ", ".join(problems), problems)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "duration": self.duration_ms,
            "concurrency": self.concurrency,
            "rampUpTime": self.ramp_up_ms,
            "rampDownTime": self.ramp_down_ms,
            "endpoints": [endpoint.to_dict() for endpoint in self.endpoints],
            "userScenarios": [scenario.to_dict() for scenario in self.scenarios],
        }


@dataclass(slots=True)
class RequestResult:
    """One executed call. Created once, never mutated."""

    endpoint: str
    method: str
    success: bool
    status_code: Optional[int]
    duration_ms: float
    size: int = 0
    timestamp: datetime = field(default_factory=utc_now)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "method": self.method,
            "success": self.success,
            "statusCode": self.status_code,
            "duration": round(self.duration_ms, 3),
            "size": self.size,
            "timestamp": isoformat(self.timestamp),
            "error": self.error,
        }


@dataclass(slots=True)
class TestError:
    __test__ = False

    endpoint: str
    error: str
    category: ErrorCategory
    response_time_ms: float
    status_code: Optional[int] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "error": self.error,
            "category": self.category.value,
            "timestamp": isoformat(self.timestamp),
            "responseTime": round(self.response_time_ms, 3),
            "statusCode": self.status_code,
        }


@dataclass(slots=True)
class EndpointStats:
    """Running aggregate for one endpoint, updated incrementally."""

    path: str
    method: str
    total_requests: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time_ms: float = 0.0
    min_response_time_ms: Optional[float] = None
    max_response_time_ms: float = 0.0
    throughput: float = 0.0

    @property
    def average_response_time_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.total_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return (self.success_count / self.total_requests) * 100

    def add(self, duration_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.success_count += 1
        else:
            self.error_count += 1
        self.total_response_time_ms += duration_ms
        if self.min_response_time_ms is None or duration_ms < self.min_response_time_ms:
            self.min_response_time_ms = duration_ms
        if duration_ms > self.max_response_time_ms:
            self.max_response_time_ms = duration_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "method": self.method,
            "totalRequests": self.total_requests,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "averageResponseTime": round(self.average_response_time_ms, 3),
            "minResponseTime": round(self.min_response_time_ms or 0.0, 3),
            "maxResponseTime": round(self.max_response_time_ms, 3),
            "throughput": round(self.throughput, 3),
        }


@dataclass(slots=True)
class ResourceSample:
    timestamp: datetime
    memory_usage: int
    cpu_usage: float
    active_connections: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": isoformat(self.timestamp),
            "memoryUsage": self.memory_usage,
            "cpuUsage": round(self.cpu_usage, 3),
            "activeConnections": self.active_connections,
        }


@dataclass
class TestResult:
    """Full outcome of one run; frozen once the run is finalized."""

    __test__ = False

    run_id: str
    test_name: str
    start_time: datetime = field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    state: RunState = RunState.CREATED
    aborted: bool = False
    duration_ms: float = 0.0
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time_ms: float = 0.0
    min_response_time_ms: float = 0.0
    max_response_time_ms: float = 0.0
    p50_response_time_ms: float = 0.0
    p90_response_time_ms: float = 0.0
    p95_response_time_ms: float = 0.0
    p99_response_time_ms: float = 0.0
    requests_per_second: float = 0.0
    max_concurrent: int = 0
    errors: List[TestError] = field(default_factory=list)
    endpoint_stats: Dict[str, EndpointStats] = field(default_factory=dict)
    resource_usage: List[ResourceSample] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return (self.successful_requests / self.total_requests) * 100

    def error_counts(self) -> Dict[str, int]:
        """Occurrences per distinct error message."""

        counts: Dict[str, int] = {}
        for error in self.errors:
            counts[error.error] = counts.get(error.error, 0) + 1
        return counts

    def stats_dict(self) -> Dict[str, Any]:
        """Flat statistics block used by the JSON report files."""

        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "successRate": round(self.success_rate, 3),
            "avgResponseTime": round(self.average_response_time_ms, 3),
            "minResponseTime": round(self.min_response_time_ms, 3),
            "maxResponseTime": round(self.max_response_time_ms, 3),
            "p50": round(self.p50_response_time_ms, 3),
            "p90": round(self.p90_response_time_ms, 3),
            "p95": round(self.p95_response_time_ms, 3),
            "p99": round(self.p99_response_time_ms, 3),
            "requestsPerSecond": round(self.requests_per_second, 3),
            "maxConcurrent": self.max_concurrent,
            "errors": self.error_counts(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.run_id,
            "testName": self.test_name,
            "state": self.state.value,
            "aborted": self.aborted,
            "startTime": isoformat(self.start_time),
            "endTime": isoformat(self.end_time),
            "duration": round(self.duration_ms, 3),
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "averageResponseTime": round(self.average_response_time_ms, 3),
            "minResponseTime": round(self.min_response_time_ms, 3),
            "maxResponseTime": round(self.max_response_time_ms, 3),
            "p50ResponseTime": round(self.p50_response_time_ms, 3),
            "p90ResponseTime": round(self.p90_response_time_ms, 3),
            "p95ResponseTime": round(self.p95_response_time_ms, 3),
            "p99ResponseTime": round(self.p99_response_time_ms, 3),
            "requestsPerSecond": round(self.requests_per_second, 3),
            "maxConcurrent": self.max_concurrent,
            "errors": [error.to_dict() for error in self.errors],
            "endpointStats": {key: stats.to_dict() for key, stats in self.endpoint_stats.items()},
            "resourceUsage": [sample.to_dict() for sample in self.resource_usage],
        }
