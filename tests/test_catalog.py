import json
import random
from collections import Counter

import pytest

from engine.catalog import STANDARD_SUITE, ScenarioCatalog, load_extra_configs, select_weighted, standalone_suite
from engine.errors import UnknownTestError
from engine.models import Endpoint


def test_weighted_selection_matches_weights():
    endpoints = [
        Endpoint("/a", weight=0.5),
        Endpoint("/b", weight=0.3),
        Endpoint("/c", weight=0.2),
    ]
    rng = random.Random(1234)
    draws = 100_000

    counts = Counter(select_weighted(endpoints, rng).path for _ in range(draws))

    assert abs(counts["/a"] / draws - 0.5) < 0.02
    assert abs(counts["/b"] / draws - 0.3) < 0.02
    assert abs(counts["/c"] / draws - 0.2) < 0.02


def test_zero_weight_item_is_never_selected():
    endpoints = [Endpoint("/never", weight=0.0), Endpoint("/always", weight=1.0)]
    rng = random.Random(7)

    picks = {select_weighted(endpoints, rng).path for _ in range(1000)}

    assert picks == {"/always"}


def test_all_zero_weights_fall_back_to_uniform():
    endpoints = [Endpoint("/a", weight=0), Endpoint("/b", weight=0), Endpoint("/c", weight=0)]
    rng = random.Random(99)

    picks = Counter(select_weighted(endpoints, rng).path for _ in range(3000))

    assert set(picks) == {"/a", "/b", "/c"}
    assert all(count > 800 for count in picks.values())


def test_empty_selection_returns_none():
    assert select_weighted([]) is None


def test_standard_catalog_contains_predefined_tests():
    catalog = ScenarioCatalog()

    assert catalog.names() == list(STANDARD_SUITE)
    basic = catalog.get("basic_user_journey")
    assert basic.concurrency == 10
    assert basic.duration_ms == 60_000
    assert sum(endpoint.weight for endpoint in basic.endpoints) == pytest.approx(1.0)
    assert "api_stress_test" in catalog


def test_unknown_test_name_raises():
    catalog = ScenarioCatalog()

    with pytest.raises(UnknownTestError) as excinfo:
        catalog.get("does_not_exist")

    assert str(excinfo.value) == "Load test configuration 'does_not_exist' not found"
    assert isinstance(excinfo.value, KeyError)


def test_standalone_suite_uses_single_endpoint_configs():
    suite = standalone_suite(concurrency=3, duration_ms=1000, ramp_up_ms=100, ramp_down_ms=100)

    assert [config.name for config in suite] == [
        "Health Check",
        "Home Page",
        "Trip Creation Page",
        "Flight Search API",
        "AI Trip Generation",
    ]
    assert all(config.concurrency == 3 and len(config.endpoints) == 1 for config in suite)
    assert suite[-1].endpoints[0].method == "POST"
    assert suite[-1].endpoints[0].max_response_time_ms == 25_000


def test_extra_configs_from_environment(monkeypatch):
    monkeypatch.setenv(
        "LOADTEST_CONFIGS",
        json.dumps(
            [
                {"name": "smoke", "duration": 1000, "concurrency": 1, "endpoints": [{"path": "/health"}]},
                {"name": "broken", "duration": 1000},
            ]
        ),
    )

    configs = load_extra_configs()
    catalog = ScenarioCatalog.from_env()

    assert [config.name for config in configs] == ["smoke"]
    assert "smoke" in catalog
    assert "basic_user_journey" in catalog


def test_invalid_extra_configs_json_is_ignored(monkeypatch):
    monkeypatch.setenv("LOADTEST_CONFIGS", "{not json")

    assert load_extra_configs() == []
