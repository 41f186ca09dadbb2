import pytest

from engine.errors import ConfigurationError
from engine.models import RUN_TRANSITIONS, Endpoint, RunState, Scenario, ScenarioStep, TestConfiguration


def test_configuration_from_wire_shape():
    config = TestConfiguration.from_dict(
        {
            "name": "checkout",
            "duration": 5000,
            "concurrency": 3,
            "rampUpTime": 1000,
            "endpoints": [
                {"path": "/", "weight": 0.7},
                {"path": "/api/cart", "method": "post", "weight": 0.3, "expectedStatus": 201, "body": {"id": 1}},
            ],
            "userScenarios": [
                {"name": "buy", "weight": 1, "steps": [{"endpoint": "/api/cart", "method": "POST", "delay": 50}]}
            ],
        }
    )

    assert config.duration_ms == 5000
    assert config.ramp_up_ms == 1000
    assert config.ramp_down_ms == 0
    assert config.endpoints[1].method == "POST"
    assert config.endpoints[1].expected_status == (201,)
    assert config.endpoints[1].key == "POST /api/cart"
    assert config.scenarios[0].steps[0].delay_ms == 50
    assert TestConfiguration.from_dict(config.to_dict()) == config


def test_missing_required_fields_are_reported():
    with pytest.raises(ConfigurationError) as excinfo:
        TestConfiguration.from_dict({"name": "incomplete", "concurrency": 2, "endpoints": [{"path": "/"}]})

    assert str(excinfo.value) == "Invalid test configuration. Required: name, duration, concurrency, endpoints"
    assert excinfo.value.missing_fields == ["duration"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"concurrency": -1},
        {"duration": -5},
        {"endpoints": [{"path": "/", "method": "TRACE"}]},
        {"endpoints": [{"method": "GET"}]},
        {"duration": "soon"},
        {"endpoints": [{"path": "/", "expectedStatus": "200"}]},
        {"endpoints": [{"path": "/", "expectedStatus": {"code": 200}}]},
        {"endpoints": [{"path": "/", "expectedStatus": ["ok"]}]},
        {"endpoints": [{"path": "/", "headers": "abc"}]},
        {"endpoints": [{"path": "/", "headers": [["Accept", "text/html"]]}]},
    ],
)
def test_invalid_values_are_rejected(overrides):
    raw = {"name": "bad", "duration": 1000, "concurrency": 1, "endpoints": [{"path": "/"}]}
    raw.update(overrides)

    with pytest.raises(ConfigurationError):
        TestConfiguration.from_dict(raw)


def test_run_transitions_allow_abort_from_every_active_state():
    for state in (RunState.CREATED, RunState.RAMPING_UP, RunState.STEADY, RunState.RAMPING_DOWN):
        assert RunState.ABORTED in RUN_TRANSITIONS[state]

    assert RUN_TRANSITIONS[RunState.ABORTED] == (RunState.FINALIZED,)
    assert RUN_TRANSITIONS[RunState.FINALIZED] == ()


def test_endpoint_status_and_headers_are_normalised():
    endpoint = Endpoint.from_dict(
        {"path": "/api/items", "expectedStatus": [200, "204"], "headers": {"X-Trace": 7}}
    )

    assert endpoint.expected_status == (200, 204)
    assert endpoint.headers == {"X-Trace": "7"}
    assert Endpoint.from_dict({"path": "/", "expectedStatus": 201}).expected_status == (201,)


def test_endpoint_headers_are_read_only():
    source = {"Accept": "application/json"}
    endpoint = Endpoint("/api/items", headers=source)
    source["Accept"] = "text/html"

    assert endpoint.headers["Accept"] == "application/json"
    with pytest.raises(TypeError):
        endpoint.headers["Accept"] = "text/plain"


def test_configurations_are_hashable():
    config = TestConfiguration(
        name="hashable",
        duration_ms=1000,
        concurrency=1,
        endpoints=(Endpoint("/api/cart", method="POST", headers={"Accept": "application/json"}, body={"id": 1}),),
        scenarios=(Scenario("buy", 1.0, (ScenarioStep("/api/cart", "POST", data={"id": 1}),)),),
    )
    same = TestConfiguration.from_dict(config.to_dict())

    assert same == config
    assert hash(same) == hash(config)
    assert len({config, same}) == 1
    assert Endpoint("/", headers={"A": "1"}) != Endpoint("/", headers={"A": "2"})
