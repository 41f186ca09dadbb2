import asyncio

from engine.models import TestResult
from engine.monitor import ResourceMonitor


class WorkerCount:
    def __init__(self) -> None:
        self.value = 0

    def __call__(self) -> int:
        return self.value


async def test_samples_on_a_timer_and_tracks_active_workers():
    result = TestResult(run_id="monitor_1", test_name="monitor")
    workers = WorkerCount()
    monitor = ResourceMonitor(result, workers, interval_seconds=0.05)

    monitor.start()
    await asyncio.sleep(0.01)
    assert len(result.resource_usage) == 1
    assert result.resource_usage[0].active_connections == 0

    workers.value = 3
    await asyncio.sleep(0.12)
    await monitor.stop()

    samples = list(result.resource_usage)
    assert len(samples) >= 3
    assert samples[-1].active_connections == 3
    assert all(sample.memory_usage > 0 for sample in samples)
    assert all(sample.cpu_usage >= 0 for sample in samples)
    assert [sample.timestamp for sample in samples] == sorted(sample.timestamp for sample in samples)
    assert samples[-1].to_dict()["activeConnections"] == 3


async def test_no_samples_after_stop():
    result = TestResult(run_id="monitor_2", test_name="monitor")
    monitor = ResourceMonitor(result, lambda: 0, interval_seconds=0.05)

    monitor.start()
    await asyncio.sleep(0.01)
    await monitor.stop()
    taken = len(result.resource_usage)
    await asyncio.sleep(0.15)

    assert taken >= 1
    assert len(result.resource_usage) == taken


async def test_start_twice_keeps_a_single_sampler():
    result = TestResult(run_id="monitor_3", test_name="monitor")
    monitor = ResourceMonitor(result, lambda: 0, interval_seconds=10)

    monitor.start()
    monitor.start()
    await asyncio.sleep(0.01)
    await monitor.stop()

    assert len(result.resource_usage) == 1
