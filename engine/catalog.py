"""Predefined test configurations and weighted selection."""

from __future__ import annotations

import json
import os
import random
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from loguru import logger

from .errors import ConfigurationError, UnknownTestError
from .models import Endpoint, Scenario, ScenarioStep, TestConfiguration

WeightedT = TypeVar("WeightedT")

JSON_HEADERS = {"Content-Type": "application/json"}


def select_weighted(items: Sequence[WeightedT], rng: Optional[random.Random] = None) -> Optional[WeightedT]:
    """
    Pick one item with probability ``weight / total_weight``.

    Returns None for an empty sequence. When every weight is zero the pick
    is uniform.
    """

    if not items:
        return None
    rng = rng or random
    total = sum(max(item.weight, 0.0) for item in items)
    if total <= 0:
        return rng.choice(items)

    remaining = rng.random() * total
    for item in items:
        if item.weight <= 0:
            continue
        remaining -= item.weight
        if remaining <= 0:
            return item

    # float drift can leave a tiny positive remainder
    for item in reversed(items):
        if item.weight > 0:
            return item
    return items[-1]


def resolve_step(config: TestConfiguration, step: ScenarioStep) -> Optional[Endpoint]:
    """Find the endpoint a scenario step refers to, by path and method."""

    for endpoint in config.endpoints:
        if endpoint.path == step.endpoint and endpoint.method == step.method:
            return endpoint
    return None


def _standard_tests() -> List[TestConfiguration]:
    return [
        TestConfiguration(
            name="basic_user_journey",
            duration_ms=60_000,
            concurrency=10,
            ramp_up_ms=10_000,
            ramp_down_ms=5_000,
            endpoints=(
                Endpoint("/", weight=0.3, expected_status=(200,), max_response_time_ms=2000),
                # 302 when the visitor is not signed in
                Endpoint("/trips", weight=0.25, expected_status=(200, 302), max_response_time_ms=3000),
                Endpoint("/new", weight=0.2, expected_status=(200, 302), max_response_time_ms=3000),
                Endpoint("/api/health", weight=0.15, expected_status=(200,), max_response_time_ms=1000),
                Endpoint("/pricing", weight=0.1, expected_status=(200,), max_response_time_ms=2000),
            ),
            scenarios=(
                Scenario(
                    "browse_and_create_trip",
                    0.7,
                    (
                        ScenarioStep("/", delay_ms=2000),
                        ScenarioStep("/trips", delay_ms=3000),
                        ScenarioStep("/new", delay_ms=5000),
                        ScenarioStep("/pricing", delay_ms=2000),
                    ),
                ),
                Scenario("quick_health_check", 0.3, (ScenarioStep("/api/health", delay_ms=1000),)),
            ),
        ),
        TestConfiguration(
            name="api_stress_test",
            duration_ms=120_000,
            concurrency=25,
            ramp_up_ms=15_000,
            ramp_down_ms=5_000,
            endpoints=(
                Endpoint(
                    "/api/transport/search",
                    method="POST",
                    weight=0.4,
                    headers=JSON_HEADERS,
                    body={"from": "Mumbai", "to": "Delhi", "date": "2025-01-15", "type": "flight"},
                    expected_status=(200, 400),
                    max_response_time_ms=5000,
                ),
                Endpoint(
                    "/api/flights/search",
                    method="POST",
                    weight=0.3,
                    headers=JSON_HEADERS,
                    body={
                        "from": "BOM",
                        "to": "DEL",
                        "departureDate": "2025-01-15",
                        "returnDate": "2025-01-20",
                        "passengers": 1,
                    },
                    expected_status=(200, 400),
                    max_response_time_ms=8000,
                ),
                Endpoint(
                    "/api/ai/suggestions",
                    method="POST",
                    weight=0.2,
                    headers=JSON_HEADERS,
                    body={"destination": "Paris", "interests": ["culture", "food"], "budget": 1000},
                    # may require auth or hit rate limits
                    expected_status=(200, 401, 429),
                    max_response_time_ms=10_000,
                ),
                Endpoint("/api/health", weight=0.1, expected_status=(200,), max_response_time_ms=1000),
            ),
            scenarios=(
                Scenario(
                    "search_transport",
                    0.6,
                    (
                        ScenarioStep("/api/transport/search", "POST", delay_ms=3000),
                        ScenarioStep("/api/flights/search", "POST", delay_ms=5000),
                    ),
                ),
                Scenario("get_ai_suggestions", 0.4, (ScenarioStep("/api/ai/suggestions", "POST", delay_ms=2000),)),
            ),
        ),
        TestConfiguration(
            name="peak_traffic_simulation",
            duration_ms=300_000,
            concurrency=50,
            ramp_up_ms=30_000,
            ramp_down_ms=10_000,
            endpoints=(
                Endpoint("/", weight=0.4, expected_status=(200,), max_response_time_ms=3000),
                Endpoint("/trips", weight=0.2, expected_status=(200, 302), max_response_time_ms=4000),
                Endpoint("/new", weight=0.15, expected_status=(200, 302), max_response_time_ms=4000),
                Endpoint(
                    "/api/transport/search",
                    method="POST",
                    weight=0.15,
                    headers=JSON_HEADERS,
                    body={"from": "NYC", "to": "LAX", "date": "2025-02-01", "type": "flight"},
                    expected_status=(200, 400),
                    max_response_time_ms=8000,
                ),
                Endpoint("/api/health", weight=0.1, expected_status=(200,), max_response_time_ms=2000),
            ),
            scenarios=(
                Scenario(
                    "heavy_browsing",
                    0.8,
                    (
                        ScenarioStep("/", delay_ms=1000),
                        ScenarioStep("/trips", delay_ms=2000),
                        ScenarioStep("/new", delay_ms=3000),
                        ScenarioStep("/", delay_ms=2000),
                    ),
                ),
                Scenario(
                    "api_heavy_usage",
                    0.2,
                    (
                        ScenarioStep("/api/transport/search", "POST", delay_ms=1000),
                        ScenarioStep("/api/health", delay_ms=500),
                        ScenarioStep("/api/transport/search", "POST", delay_ms=2000),
                    ),
                ),
            ),
        ),
    ]


STANDARD_SUITE = ("basic_user_journey", "api_stress_test", "peak_traffic_simulation")


def standalone_suite(
    concurrency: int = 5,
    duration_ms: int = 30_000,
    ramp_up_ms: int = 2_000,
    ramp_down_ms: int = 2_000,
) -> List[TestConfiguration]:
    """Single-endpoint configurations run back to back by the standalone runner."""

    targets = [
        ("Health Check", Endpoint("/api/health")),
        ("Home Page", Endpoint("/")),
        ("Trip Creation Page", Endpoint("/new")),
        (
            "Flight Search API",
            Endpoint(
                "/api/flights/search",
                method="POST",
                headers=JSON_HEADERS,
                body={
                    "from": "NYC",
                    "to": "LAX",
                    "departDate": "2024-09-01",
                    "returnDate": "2024-09-08",
                    "passengers": 1,
                },
                max_response_time_ms=10_000,
            ),
        ),
        (
            "AI Trip Generation",
            Endpoint(
                "/api/ai/generate-trip",
                method="POST",
                headers=JSON_HEADERS,
                body={"destination": "Paris", "duration": 5, "budget": 2000, "tripType": "culture"},
                max_response_time_ms=25_000,
            ),
        ),
    ]
    return [
        TestConfiguration(
            name=name,
            duration_ms=duration_ms,
            concurrency=concurrency,
            ramp_up_ms=ramp_up_ms,
            ramp_down_ms=ramp_down_ms,
            endpoints=(endpoint,),
        )
        for name, endpoint in targets
    ]


def load_extra_configs() -> List[TestConfiguration]:
    """Parse additional configurations from the ``LOADTEST_CONFIGS`` JSON list."""

    raw = os.getenv("LOADTEST_CONFIGS", "")
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LOADTEST_CONFIGS", error=str(exc))
        return []

    if not isinstance(parsed, list):
        logger.error("LOADTEST_CONFIGS must be a list of test configurations")
        return []

    configs: List[TestConfiguration] = []
    for index, item in enumerate(parsed):
        try:
            configs.append(TestConfiguration.from_dict(item))
        except ConfigurationError as exc:
            logger.warning("Ignoring invalid test configuration", index=index, error=str(exc))
    return configs


class ScenarioCatalog:
    """Registry of named, immutable test configurations."""

    def __init__(self, configs: Optional[Iterable[TestConfiguration]] = None) -> None:
        self._configs: Dict[str, TestConfiguration] = {}
        for config in configs if configs is not None else _standard_tests():
            self._configs[config.name] = config

    @classmethod
    def from_env(cls) -> "ScenarioCatalog":
        catalog = cls()
        for config in load_extra_configs():
            if config.name in catalog._configs:
                logger.warning("Overriding predefined test configuration", name=config.name)
            catalog._configs[config.name] = config
        return catalog

    def names(self) -> List[str]:
        return list(self._configs)

    def get(self, name: str) -> TestConfiguration:
        try:
            return self._configs[name]
        except KeyError:
            raise UnknownTestError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._configs
