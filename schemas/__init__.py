"""Pydantic schemas for API requests and responses."""

from .load_test import (
    LoadTestAction,
    LoadTestActionResponse,
    LoadTestDataResponse,
    RunCustomTestRequest,
    RunStandardTestsRequest,
    RunTestRequest,
    StopAllTestsRequest,
    StopTestRequest,
    load_test_action_adapter,
)

__all__ = [
    "LoadTestAction",
    "LoadTestActionResponse",
    "LoadTestDataResponse",
    "RunCustomTestRequest",
    "RunStandardTestsRequest",
    "RunTestRequest",
    "StopAllTestsRequest",
    "StopTestRequest",
    "load_test_action_adapter",
]
