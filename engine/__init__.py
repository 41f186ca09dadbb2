"""Load traffic generation engine."""

from .cancellation import CancellationToken
from .catalog import STANDARD_SUITE, ScenarioCatalog, select_weighted, standalone_suite
from .errors import (
    ConfigurationError,
    ErrorCategory,
    InvalidStateTransition,
    LoadTestError,
    UnknownTestError,
)
from .executor import RequestExecutor
from .metrics import MetricsAggregator
from .models import Endpoint, RunState, Scenario, ScenarioStep, TestConfiguration, TestResult
from .report import ReportGenerator
from .scheduler import TestRun, TrafficScheduler
from .settings import EngineSettings, load_settings

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "Endpoint",
    "EngineSettings",
    "ErrorCategory",
    "InvalidStateTransition",
    "LoadTestError",
    "MetricsAggregator",
    "ReportGenerator",
    "RequestExecutor",
    "RunState",
    "STANDARD_SUITE",
    "Scenario",
    "ScenarioCatalog",
    "ScenarioStep",
    "TestConfiguration",
    "TestResult",
    "TestRun",
    "TrafficScheduler",
    "UnknownTestError",
    "load_settings",
    "select_weighted",
    "standalone_suite",
]
