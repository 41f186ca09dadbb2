"""Background orchestration of load test runs."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Sequence

from loguru import logger

from engine.cancellation import CancellationToken
from engine.catalog import STANDARD_SUITE, ScenarioCatalog
from engine.models import RunState, TestConfiguration, TestResult, utc_now
from engine.report import ReportGenerator
from engine.scheduler import TestRun, TrafficScheduler
from engine.settings import EngineSettings


class RunRegistry:
    """Active runs and a bounded history of finished results."""

    def __init__(self, history_limit: int = 50) -> None:
        self._lock = asyncio.Lock()
        self._active: Dict[str, TestRun] = {}
        self._history: Deque[TestResult] = deque(maxlen=history_limit)

    def _known(self, run_id: str) -> bool:
        return run_id in self._active or any(result.run_id == run_id for result in self._history)

    async def register(self, config: TestConfiguration) -> TestRun:
        """Create a run with an id of the form ``<name>_<epoch ms>``, unique per registry."""

        async with self._lock:
            stamp = int(time.time() * 1000)
            run_id = f"{config.name}_{stamp}"
            while self._known(run_id):
                stamp += 1
                run_id = f"{config.name}_{stamp}"
            run = TestRun(run_id, config)
            self._active[run_id] = run
            return run

    async def complete(self, run_id: str, result: TestResult) -> None:
        async with self._lock:
            self._active.pop(run_id, None)
            self._history.append(result)

    async def active_runs(self) -> List[TestRun]:
        async with self._lock:
            return list(self._active.values())

    async def history(self) -> List[TestResult]:
        async with self._lock:
            return list(self._history)

    async def find(self, run_id: str) -> Optional[TestResult]:
        async with self._lock:
            for result in reversed(self._history):
                if result.run_id == run_id:
                    return result
            return None


class TestController:
    """Starts, stops and reports on load test runs."""

    __test__ = False

    def __init__(
        self,
        *,
        settings: EngineSettings,
        catalog: Optional[ScenarioCatalog] = None,
        registry: Optional[RunRegistry] = None,
        scheduler: Optional[TrafficScheduler] = None,
    ) -> None:
        self.settings = settings
        self.catalog = catalog or ScenarioCatalog()
        self.registry = registry or RunRegistry(settings.history_limit)
        self.scheduler = scheduler or TrafficScheduler(settings)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._suites: Dict[str, asyncio.Task] = {}
        self._suite_tokens: Dict[str, CancellationToken] = {}

    async def start(self, config: TestConfiguration) -> str:
        """Validate ``config`` and launch it in the background; returns the run id."""

        config.validate()
        run = await self.registry.register(config)
        self._start_run_task(run)
        logger.info("Load test scheduled", run=run.run_id, test=config.name)
        return run.run_id

    async def start_named(self, name: str) -> str:
        return await self.start(self.catalog.get(name))

    async def run(self, config: TestConfiguration) -> Optional[TestResult]:
        """Start ``config`` and wait for its finalized result."""

        run_id = await self.start(config)
        return await self.wait(run_id)

    async def wait(self, run_id: str) -> Optional[TestResult]:
        task = self._tasks.get(run_id)
        if task is not None:
            return await task
        return await self.registry.find(run_id)

    async def start_standard_suite(self, names: Sequence[str] = STANDARD_SUITE) -> str:
        """Run predefined configurations one after another in the background."""

        for name in names:
            self.catalog.get(name)

        suite_id = f"standard_suite_{int(time.time() * 1000)}"
        while suite_id in self._suites:
            suite_id += "_"
        token = CancellationToken()
        self._suite_tokens[suite_id] = token
        task = asyncio.create_task(self._run_suite(suite_id, list(names), token), name=f"loadtest-suite-{suite_id}")
        self._suites[suite_id] = task
        task.add_done_callback(lambda _: self._forget_suite(suite_id))
        logger.info("Standard load tests started", suite=suite_id, tests=len(names))
        return suite_id

    async def stop(self, name: str) -> List[str]:
        """Abort every active run whose id starts with ``name``."""

        stopped: List[str] = []
        for run in await self.registry.active_runs():
            if run.run_id.startswith(name):
                run.stop()
                stopped.append(run.run_id)
        if stopped:
            logger.info("Load tests stopped", name=name, runs=stopped)
        return stopped

    async def stop_all(self) -> List[str]:
        """Abort every active run and halt running suites. No-op when idle."""

        for token in list(self._suite_tokens.values()):
            token.cancel()
        stopped: List[str] = []
        for run in await self.registry.active_runs():
            run.stop()
            stopped.append(run.run_id)
        if stopped:
            logger.info("All load tests stopped", runs=len(stopped))
        return stopped

    async def status(self) -> Dict[str, Any]:
        active = await self.registry.active_runs()
        history = await self.registry.history()
        recent = history[-self.settings.recent_results:] if self.settings.recent_results else []
        return {
            "runningTests": [run.run_id for run in active],
            "recentResults": [result.to_dict() for result in recent],
        }

    async def progress(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Live counters of an active run, or None once it has finished."""

        for run in await self.registry.active_runs():
            if run.run_id == run_id:
                snapshot = run.aggregator.snapshot()
                snapshot["state"] = run.state.value
                snapshot["activeWorkers"] = run.active_workers
                return snapshot
        return None

    async def results(self) -> Dict[str, Any]:
        history = await self.registry.history()
        return {
            "results": [result.to_dict() for result in history],
            "report": ReportGenerator.render(history),
        }

    async def shutdown(self) -> None:
        """Stop everything and wait for background tasks to settle."""

        await self.stop_all()
        tasks = list(self._suites.values()) + list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._suites.clear()
        self._suite_tokens.clear()

    def _start_run_task(self, run: TestRun) -> None:
        task = asyncio.create_task(self._execute(run), name=f"loadtest-run-{run.run_id}")
        self._tasks[run.run_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run.run_id, None))

    def _forget_suite(self, suite_id: str) -> None:
        self._suites.pop(suite_id, None)
        self._suite_tokens.pop(suite_id, None)

    async def _execute(self, run: TestRun) -> TestResult:
        result = run.result
        try:
            result = await self.scheduler.execute(run)
        except Exception:
            logger.exception("Load test failed", run=run.run_id)
            elapsed = (utc_now() - result.start_time).total_seconds()
            result = run.aggregator.finalize(max(elapsed, 0.0))
            result.end_time = utc_now()
            result.aborted = True
            result.state = RunState.FINALIZED
        finally:
            await self.registry.complete(run.run_id, result)
        return result

    async def _run_suite(self, suite_id: str, names: List[str], token: CancellationToken) -> List[TestResult]:
        results: List[TestResult] = []
        for name in names:
            if token.cancelled:
                logger.info("Standard load tests halted", suite=suite_id)
                break
            logger.info("Running standard load test", suite=suite_id, test=name)
            try:
                run_id = await self.start_named(name)
                if token.cancelled:
                    await self.stop(run_id)
                result = await self.wait(run_id)
            except Exception:
                logger.exception("Standard load test failed", suite=suite_id, test=name)
                continue
            if result is not None:
                results.append(result)
                logger.info(
                    "Standard load test completed",
                    suite=suite_id,
                    test=name,
                    successful=result.successful_requests,
                    total=result.total_requests,
                )
        logger.info("Standard load tests finished", suite=suite_id, completed=len(results))
        return results
