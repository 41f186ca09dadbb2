"""Periodic process resource sampling during a run."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import psutil
from loguru import logger

from .models import ResourceSample, TestResult, utc_now


class ResourceMonitor:
    """
    Appends a ``ResourceSample`` to a run's result on a fixed timer.

    Reads process-wide counters and the scheduler's active worker count;
    it never touches worker state.
    """

    def __init__(
        self,
        result: TestResult,
        active_workers: Callable[[], int],
        interval_seconds: float = 5.0,
    ) -> None:
        self._result = result
        self._active_workers = active_workers
        self._interval = interval_seconds
        self._process = psutil.Process()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def sample(self) -> ResourceSample:
        cpu = self._process.cpu_times()
        sample = ResourceSample(
            timestamp=utc_now(),
            memory_usage=self._process.memory_info().rss,
            cpu_usage=(cpu.user + cpu.system) * 1000,
            active_connections=self._active_workers(),
        )
        self._result.resource_usage.append(sample)
        return sample

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"resource-monitor-{self._result.run_id}")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sample()
            except psutil.Error:
                logger.exception("Resource sampling failed", run=self._result.run_id)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
