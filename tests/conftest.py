import asyncio
from typing import Awaitable, Callable, Dict, List, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from engine.settings import EngineSettings

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def make_settings(base_url: str, **overrides) -> EngineSettings:
    """Settings tuned for sub-second runs."""

    values = dict(
        base_url=base_url,
        monitor_interval_seconds=0.2,
        timeout_margin_ms=1000,
        think_time_min_ms=5,
        think_time_max_ms=15,
        admin_token="secret",
    )
    values.update(overrides)
    return EngineSettings(**values)


def respond(status: int = 200, delay: float = 0.0, body: str = "ok") -> Handler:
    async def handler(request: web.Request) -> web.Response:
        if delay:
            await asyncio.sleep(delay)
        return web.Response(status=status, text=body)

    return handler


@pytest.fixture()
async def target_server():
    """Factory starting a real HTTP server from ``{(method, path): handler}``."""

    servers: List[TestServer] = []

    async def start(routes: Dict[Tuple[str, str], Handler]) -> str:
        app = web.Application()
        for (method, path), handler in routes.items():
            app.router.add_route(method, path, handler)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/")).rstrip("/")

    yield start

    for server in servers:
        await server.close()
