"""
HTTP request execution for load test workers.

A single ``RequestExecutor`` is shared by every worker of a run. It owns one
pooled ``aiohttp.ClientSession``; each call gets its own hard timeout so a
slow endpoint can only stall the worker that issued it, and only for
``max_response_time + margin``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import ErrorCategory
from .models import BODY_METHODS, Endpoint, RequestResult, TestError, utc_now


@dataclass(slots=True)
class Execution:
    """Outcome of one call: the result plus every error entry it produced."""

    result: RequestResult
    errors: List[TestError] = field(default_factory=list)


class RequestExecutor:
    """Issues single HTTP calls and classifies their outcome."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_margin_ms: int = 5000,
        connector_limit: int = 100,
        user_agent: str = "LoadTest/1.0",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_margin_ms = timeout_margin_ms
        self.connector_limit = connector_limit
        self.user_agent = user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.start_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_session()

    async def start_session(self) -> None:
        """Open the pooled session; workers share it for the lifetime of the run."""

        if self.session is not None:
            return
        connector = aiohttp.TCPConnector(
            limit=self.connector_limit,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        self.session = aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": self.user_agent},
        )

    async def close_session(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    def timeout_for(self, endpoint: Endpoint) -> float:
        """Hard timeout in seconds for one call to ``endpoint``."""

        return (endpoint.max_response_time_ms + self.timeout_margin_ms) / 1000

    def _request_kwargs(self, endpoint: Endpoint, body: Any) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "headers": dict(endpoint.headers),
            "timeout": aiohttp.ClientTimeout(total=self.timeout_for(endpoint)),
        }
        payload = endpoint.body if body is None else body
        if payload is not None and endpoint.method in BODY_METHODS:
            if isinstance(payload, (str, bytes)):
                kwargs["data"] = payload
            else:
                kwargs["json"] = payload
        return kwargs

    async def execute(self, endpoint: Endpoint, body: Any = None) -> Execution:
        """
        Perform one request against ``endpoint``.

        Args:
            endpoint: Target definition (method, path, expectations)
            body: Optional payload overriding the endpoint's default body

        Returns:
            Execution holding the RequestResult and any error entries. Unexpected
            status and exceeded response time are reported independently.
        """
        if not self.session:
            await self.start_session()

        url = f"{self.base_url}{endpoint.path}"
        timestamp = utc_now()
        start = time.perf_counter()

        try:
            async with self.session.request(
                endpoint.method, url, **self._request_kwargs(endpoint, body)
            ) as response:
                payload = await response.read()
                duration_ms = (time.perf_counter() - start) * 1000
        except asyncio.TimeoutError:
            duration_ms = (time.perf_counter() - start) * 1000
            message = f"Request timeout after {int(self.timeout_for(endpoint) * 1000)}ms"
            return self._transport_failure(endpoint, timestamp, duration_ms, message, ErrorCategory.TIMEOUT)
        except (aiohttp.ClientError, OSError, ValueError) as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            message = f"Connection error: {exc or type(exc).__name__}"
            return self._transport_failure(endpoint, timestamp, duration_ms, message, ErrorCategory.NETWORK)

        status = response.status
        success = status in endpoint.expected_status
        errors: List[TestError] = []
        error_message: Optional[str] = None

        if not success:
            error_message = f"Unexpected status code: {status}"
            errors.append(
                TestError(
                    endpoint=endpoint.path,
                    error=error_message,
                    category=ErrorCategory.UNEXPECTED_STATUS,
                    response_time_ms=duration_ms,
                    status_code=status,
                )
            )

        if duration_ms > endpoint.max_response_time_ms:
            errors.append(
                TestError(
                    endpoint=endpoint.path,
                    error=f"Response time exceeded: {int(duration_ms)}ms > {endpoint.max_response_time_ms}ms",
                    category=ErrorCategory.RESPONSE_TIME_EXCEEDED,
                    response_time_ms=duration_ms,
                    status_code=status,
                )
            )

        result = RequestResult(
            endpoint=endpoint.path,
            method=endpoint.method,
            success=success,
            status_code=status,
            duration_ms=duration_ms,
            size=len(payload),
            timestamp=timestamp,
            error=error_message,
        )
        return Execution(result=result, errors=errors)

    @staticmethod
    def _transport_failure(endpoint, timestamp, duration_ms, message, category) -> Execution:
        result = RequestResult(
            endpoint=endpoint.path,
            method=endpoint.method,
            success=False,
            status_code=None,
            duration_ms=duration_ms,
            timestamp=timestamp,
            error=message,
        )
        error = TestError(
            endpoint=endpoint.path,
            error=message,
            category=category,
            response_time_ms=duration_ms,
            timestamp=timestamp,
        )
        return Execution(result=result, errors=[error])
