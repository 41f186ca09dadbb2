"""A single simulated user generating traffic for one run."""

from __future__ import annotations

import random
import time
from typing import Callable, Optional, Tuple

from loguru import logger

from .cancellation import CancellationToken
from .catalog import resolve_step, select_weighted
from .executor import RequestExecutor
from .metrics import MetricsAggregator
from .models import Endpoint, Scenario, TestConfiguration


class Worker:
    """
    Sequential request loop bound to a run's token and deadline.

    The token and the deadline are checked before every dispatch; all sleeps
    go through the token so a stop wakes the worker at once. Reaction
    latency is therefore bounded by one in-flight request.
    """

    def __init__(
        self,
        worker_id: int,
        config: TestConfiguration,
        executor: RequestExecutor,
        aggregator: MetricsAggregator,
        token: CancellationToken,
        deadline: float,
        *,
        think_time_ms: Tuple[int, int] = (1000, 4000),
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.worker_id = worker_id
        self.config = config
        self.executor = executor
        self.aggregator = aggregator
        self.token = token
        self.deadline = deadline
        self.think_time_ms = think_time_ms
        self.rng = rng or random.Random()
        self.clock = clock
        self.iterations = 0
        self.requests_sent = 0

    def window_open(self) -> bool:
        return not self.token.cancelled and self.clock() < self.deadline

    async def run(self) -> None:
        while self.window_open():
            try:
                await self.run_iteration()
            except Exception:
                # one bad iteration must not end the worker
                logger.exception("Worker iteration failed", test=self.config.name, worker=self.worker_id)
                await self.think()
            self.iterations += 1

    async def run_iteration(self) -> None:
        scenario = select_weighted(self.config.scenarios, self.rng)
        if scenario is not None:
            if not await self._run_scenario(scenario):
                await self.think()
            return

        endpoint = select_weighted(self.config.endpoints, self.rng)
        if endpoint is not None:
            await self._dispatch(endpoint)
        await self.think()

    async def think(self) -> None:
        low, high = self.think_time_ms
        await self.token.sleep(self.rng.uniform(low, high) / 1000)

    async def _run_scenario(self, scenario: Scenario) -> bool:
        """Execute the scenario's steps in order. Returns True if anything was sent."""

        dispatched = False
        for step in scenario.steps:
            if not self.window_open():
                break
            endpoint = resolve_step(self.config, step)
            if endpoint is None:
                logger.debug("Skipping unknown scenario step", scenario=scenario.name, endpoint=step.endpoint)
                continue
            await self._dispatch(endpoint, step.data)
            dispatched = True
            if step.delay_ms and self.window_open():
                await self.token.sleep(step.delay_ms / 1000)
        return dispatched

    async def _dispatch(self, endpoint: Endpoint, body=None) -> None:
        if not self.window_open():
            return
        execution = await self.executor.execute(endpoint, body)
        self.requests_sent += 1
        self.aggregator.record(execution.result, execution.errors)
