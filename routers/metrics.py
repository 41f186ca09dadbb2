"""Prometheus scrape endpoint for the load test engine.

Request counters and latency histograms are updated by the engine as results
are recorded. Run-level gauges are refreshed from the controller's registry
at scrape time, so they always reflect the current set of runs.
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Gauge, generate_latest

router = APIRouter(tags=["monitoring"])

ACTIVE_RUNS = Gauge("loadtest_active_runs", "Load test runs that have not finalized yet")
RETAINED_RESULTS = Gauge("loadtest_retained_results", "Finalized results kept in the run history")
LAST_RUN_SUCCESS_RATE = Gauge(
    "loadtest_last_run_success_rate",
    "Success rate (percent) of the most recently finalized run",
)


async def _refresh_run_gauges(request: Request) -> None:
    controller = getattr(request.app.state, "load_test_controller", None)
    if controller is None:
        return
    active = await controller.registry.active_runs()
    history = await controller.registry.history()
    ACTIVE_RUNS.set(len(active))
    RETAINED_RESULTS.set(len(history))
    if history:
        latest = history[-1]
        rate = latest.successful_requests / latest.total_requests * 100 if latest.total_requests else 0.0
        LAST_RUN_SUCCESS_RATE.set(rate)


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    await _refresh_run_gauges(request)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
