"""
Ramped worker scheduling and the run lifecycle.

A run moves CREATED -> RAMPING_UP -> STEADY -> RAMPING_DOWN -> FINALIZED.
An explicit stop moves it to ABORTED from any non-terminal state, and from
there straight to FINALIZED with everything collected so far retained.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List

from loguru import logger

from .cancellation import CancellationToken
from .errors import InvalidStateTransition
from .executor import RequestExecutor
from .metrics import ACTIVE_WORKERS, MetricsAggregator
from .models import RUN_TRANSITIONS, RunState, TestConfiguration, TestResult, utc_now
from .monitor import ResourceMonitor
from .settings import EngineSettings
from .worker import Worker


def spawn_offsets(config: TestConfiguration) -> List[float]:
    """Activation time in seconds of each worker, relative to run start."""

    interval = config.ramp_up_ms / config.concurrency
    return [((index + 1) * interval) / 1000 for index in range(config.concurrency)]


def expected_active_workers(config: TestConfiguration, elapsed_ms: float) -> int:
    """Workers the ramp-up schedule has activated after ``elapsed_ms``."""

    if elapsed_ms >= config.duration_ms:
        return 0
    if config.ramp_up_ms <= 0:
        return config.concurrency
    elapsed_ms = max(elapsed_ms, 0)
    return min(config.concurrency, int(elapsed_ms * config.concurrency // config.ramp_up_ms))


class TestRun:
    """Everything owned by one execution of a configuration."""

    __test__ = False

    def __init__(self, run_id: str, config: TestConfiguration) -> None:
        self.run_id = run_id
        self.config = config
        self.token = CancellationToken()
        self.result = TestResult(run_id=run_id, test_name=config.name)
        self.aggregator = MetricsAggregator(self.result)
        self.active_workers = 0
        self.abort_requested = False
        # set by stop(); ramp-down waits on it because the token is already raised by then
        self.abort_event = asyncio.Event()

    @property
    def state(self) -> RunState:
        return self.result.state

    def transition(self, target: RunState) -> None:
        current = self.result.state
        if target not in RUN_TRANSITIONS[current]:
            raise InvalidStateTransition(current, target)
        self.result.state = target
        logger.debug("Run state changed", run=self.run_id, previous=current.value, state=target.value)

    def stop(self) -> bool:
        """Request an abort. Returns False when the run was already stopping."""

        if self.abort_requested:
            return False
        self.abort_requested = True
        self.abort_event.set()
        self.token.cancel(CancellationToken.ABORTED)
        return True

    def worker_started(self) -> None:
        self.active_workers += 1
        if self.active_workers > self.result.max_concurrent:
            self.result.max_concurrent = self.active_workers
        ACTIVE_WORKERS.labels(test=self.config.name).inc()

    def worker_finished(self) -> None:
        self.active_workers -= 1
        ACTIVE_WORKERS.labels(test=self.config.name).dec()


class TrafficScheduler:
    """Spawns and retires workers for a run according to its ramp profile."""

    def __init__(
        self,
        settings: EngineSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.clock = clock

    def _executor(self) -> RequestExecutor:
        return RequestExecutor(
            self.settings.base_url,
            timeout_margin_ms=self.settings.timeout_margin_ms,
            connector_limit=self.settings.connector_limit,
            user_agent=self.settings.user_agent,
        )

    async def execute(self, run: TestRun) -> TestResult:
        """Drive ``run`` through its whole lifecycle and return the frozen result."""

        config = run.config
        started = self.clock()
        deadline = started + config.duration_ms / 1000
        run.result.start_time = utc_now()
        monitor = ResourceMonitor(
            run.result,
            active_workers=lambda: run.active_workers,
            interval_seconds=self.settings.monitor_interval_seconds,
        )
        tasks: List[asyncio.Task] = []

        logger.info(
            "Load test started",
            run=run.run_id,
            concurrency=config.concurrency,
            duration_ms=config.duration_ms,
            ramp_up_ms=config.ramp_up_ms,
        )

        try:
            async with self._executor() as executor:
                if run.token.cancelled:
                    run.transition(RunState.ABORTED)
                else:
                    run.transition(RunState.RAMPING_UP)
                    monitor.start()
                    tasks = [
                        asyncio.create_task(
                            self._worker_lifecycle(run, index, offset, executor, deadline),
                            name=f"loadtest-worker-{run.run_id}-{index}",
                        )
                        for index, offset in enumerate(spawn_offsets(config))
                    ]
                    await self._hold(run, deadline)
                    await self._drain(run, tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await monitor.stop()

        elapsed = self.clock() - started
        result = run.aggregator.finalize(elapsed)
        result.end_time = utc_now()
        result.aborted = run.abort_requested
        run.transition(RunState.FINALIZED)

        logger.info(
            "Load test finished",
            run=run.run_id,
            aborted=result.aborted,
            total=result.total_requests,
            failed=result.failed_requests,
            rps=round(result.requests_per_second, 2),
        )
        return result

    async def _hold(self, run: TestRun, deadline: float) -> None:
        """Wait through ramp-up and the steady phase, or until the token is raised."""

        ramp_up = min(run.config.ramp_up_ms, run.config.duration_ms) / 1000
        if ramp_up > 0 and await run.token.sleep(ramp_up):
            return
        run.transition(RunState.STEADY)
        await run.token.sleep(max(deadline - self.clock(), 0))

    async def _drain(self, run: TestRun, tasks: List[asyncio.Task]) -> None:
        if run.abort_requested:
            run.transition(RunState.ABORTED)
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            return

        run.token.cancel(CancellationToken.EXPIRED)
        run.transition(RunState.RAMPING_DOWN)
        await self._grace(run, run.config.ramp_down_ms / 1000)
        pending = [task for task in tasks if not task.done()]
        if pending:
            logger.debug("Waiting for in-flight requests", run=run.run_id, workers=len(pending))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if run.abort_requested:
            run.transition(RunState.ABORTED)

    async def _grace(self, run: TestRun, seconds: float) -> None:
        """Hold the ramp-down window open; in-flight responses keep being recorded."""

        if seconds <= 0 or run.abort_requested:
            return
        try:
            await asyncio.wait_for(run.abort_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return

    async def _worker_lifecycle(
        self,
        run: TestRun,
        index: int,
        offset: float,
        executor: RequestExecutor,
        deadline: float,
    ) -> None:
        if await run.token.sleep(offset) or self.clock() >= deadline:
            return
        worker = Worker(
            index,
            run.config,
            executor,
            run.aggregator,
            run.token,
            deadline,
            think_time_ms=(self.settings.think_time_min_ms, self.settings.think_time_max_ms),
            clock=self.clock,
        )
        run.worker_started()
        try:
            await worker.run()
        finally:
            run.worker_finished()
