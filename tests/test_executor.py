import asyncio

from aiohttp import web

from engine.errors import ErrorCategory
from engine.executor import RequestExecutor
from engine.models import Endpoint
from tests.conftest import respond


async def test_successful_request_is_measured(target_server):
    base_url = await target_server({("GET", "/health"): respond(200, delay=0.01, body="healthy")})

    async with RequestExecutor(base_url) as executor:
        execution = await executor.execute(Endpoint("/health"))

    assert execution.result.success is True
    assert execution.result.status_code == 200
    assert execution.result.size == len("healthy")
    assert execution.result.duration_ms >= 10
    assert execution.errors == []


async def test_unexpected_status_is_a_failure(target_server):
    base_url = await target_server({("GET", "/broken"): respond(500)})

    async with RequestExecutor(base_url) as executor:
        execution = await executor.execute(Endpoint("/broken"))

    assert execution.result.success is False
    assert execution.result.error == "Unexpected status code: 500"
    assert [error.category for error in execution.errors] == [ErrorCategory.UNEXPECTED_STATUS]


async def test_slow_response_keeps_success_but_records_error(target_server):
    base_url = await target_server({("GET", "/slow"): respond(200, delay=0.2)})

    async with RequestExecutor(base_url) as executor:
        execution = await executor.execute(Endpoint("/slow", max_response_time_ms=100))

    assert execution.result.success is True
    assert len(execution.errors) == 1
    assert execution.errors[0].category is ErrorCategory.RESPONSE_TIME_EXCEEDED
    assert execution.errors[0].error.startswith("Response time exceeded: ")
    assert execution.errors[0].error.endswith("ms > 100ms")


async def test_hard_timeout_yields_synthetic_result(target_server):
    base_url = await target_server({("GET", "/hang"): respond(200, delay=1.0)})

    async with RequestExecutor(base_url, timeout_margin_ms=100) as executor:
        execution = await executor.execute(Endpoint("/hang", max_response_time_ms=100))

    assert execution.result.success is False
    assert execution.result.status_code is None
    assert execution.result.error == "Request timeout after 200ms"
    assert execution.errors[0].category is ErrorCategory.TIMEOUT


async def test_connection_failure_is_classified_as_network():
    async with RequestExecutor("http://127.0.0.1:1") as executor:
        execution = await executor.execute(Endpoint("/health"))

    assert execution.result.success is False
    assert execution.result.status_code is None
    assert execution.result.error.startswith("Connection error: ")
    assert execution.errors[0].category is ErrorCategory.NETWORK


async def test_json_body_and_headers_are_sent(target_server):
    received = {}

    async def echo(request: web.Request) -> web.Response:
        received["body"] = await request.json()
        received["header"] = request.headers.get("X-Trace")
        received["agent"] = request.headers.get("User-Agent")
        return web.json_response({"ok": True}, status=201)

    base_url = await target_server({("POST", "/items"): echo})
    endpoint = Endpoint(
        "/items",
        method="POST",
        headers={"X-Trace": "abc"},
        body={"default": True},
        expected_status=(201,),
    )

    async with RequestExecutor(base_url) as executor:
        execution = await executor.execute(endpoint, {"step": 1})

    assert execution.result.success is True
    assert received == {"body": {"step": 1}, "header": "abc", "agent": "LoadTest/1.0"}


async def test_concurrent_requests_share_one_session(target_server):
    base_url = await target_server({("GET", "/health"): respond(200, delay=0.02)})

    async with RequestExecutor(base_url) as executor:
        session = executor.session
        executions = await asyncio.gather(*(executor.execute(Endpoint("/health")) for _ in range(10)))
        assert executor.session is session

    assert executor.session is None
    assert all(execution.result.success for execution in executions)
