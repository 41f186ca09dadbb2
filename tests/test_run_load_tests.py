import json
import os

import pytest

import run_load_tests
from engine.models import Endpoint, TestConfiguration
from services.load_test_controller import TestController
from tests.conftest import respond


@pytest.fixture()
def fast_env(monkeypatch):
    monkeypatch.setenv("LOADTEST_MONITOR_INTERVAL", "0.2")


async def test_suite_writes_reports_and_summary(target_server, tmp_path, fast_env, capsys):
    base_url = await target_server(
        {
            ("GET", "/api/health"): respond(200),
            ("GET", "/"): respond(503),
        }
    )
    configs = [
        TestConfiguration(name="Health Check", duration_ms=300, concurrency=2, endpoints=(Endpoint("/api/health"),)),
        TestConfiguration(name="Home Page", duration_ms=300, concurrency=1, endpoints=(Endpoint("/"),)),
    ]

    reports = await run_load_tests.run_suite(base_url, configs, str(tmp_path), pause_seconds=0)

    assert [report["testName"] for report in reports] == ["Health Check", "Home Page"]
    assert reports[0]["stats"]["failedRequests"] == 0
    assert reports[1]["stats"]["successfulRequests"] == 0
    assert reports[1]["recommendations"][0]["level"] == "HIGH"

    files = sorted(os.listdir(tmp_path))
    assert len(files) == 3
    summary_file = next(name for name in files if name.startswith("load_test_summary_"))
    with open(tmp_path / summary_file, encoding="utf-8") as handle:
        summary = json.load(handle)
    assert summary["overall"]["totalTests"] == 2
    assert summary["overall"]["avgSuccessRate"] == pytest.approx(50.0)

    output = capsys.readouterr().out
    assert "LOAD TEST RESULTS - Health Check" in output


def test_unknown_test_name_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        run_load_tests.main(["http://localhost:1", "--test", "Nope"])

    assert excinfo.value.code == 2


async def test_suite_uses_short_think_time(target_server, tmp_path, fast_env, monkeypatch):
    monkeypatch.setenv("LOADTEST_THINK_TIME_MIN_MS", "1000")
    monkeypatch.setenv("LOADTEST_THINK_TIME_MAX_MS", "4000")
    base_url = await target_server({("GET", "/api/health"): respond(200)})
    created = []

    class RecordingController(TestController):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(run_load_tests, "TestController", RecordingController)
    config = TestConfiguration(name="Health Check", duration_ms=600, concurrency=1, endpoints=(Endpoint("/api/health"),))

    reports = await run_load_tests.run_suite(base_url, [config], str(tmp_path), pause_seconds=0)

    settings = created[0].settings
    assert (settings.think_time_min_ms, settings.think_time_max_ms) == run_load_tests.THINK_TIME_MS == (0, 100)
    # one request per 1-4 s think time would give a single request here
    assert reports[0]["stats"]["totalRequests"] >= 4
