"""Pydantic schemas for the load test administration endpoints."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from engine.errors import ConfigurationError
from engine.models import TestConfiguration


class NamedTest(BaseModel):
    name: str = Field(..., min_length=1, description="Predefined test name or run id prefix")


class RunStandardTestsRequest(BaseModel):
    action: Literal["run_standard_tests"]


class RunTestRequest(BaseModel):
    action: Literal["run_test"]
    config: NamedTest


class RunCustomTestRequest(BaseModel):
    action: Literal["run_custom_test"]
    config: Optional[Dict[str, Any]] = None

    def to_configuration(self) -> TestConfiguration:
        if not self.config:
            raise ConfigurationError("Test configuration required", ["config"])
        return TestConfiguration.from_dict(self.config)


class StopTestRequest(BaseModel):
    action: Literal["stop_test"]
    config: NamedTest


class StopAllTestsRequest(BaseModel):
    action: Literal["stop_all_tests"]


LoadTestAction = Annotated[
    Union[
        RunStandardTestsRequest,
        RunTestRequest,
        RunCustomTestRequest,
        StopTestRequest,
        StopAllTestsRequest,
    ],
    Field(discriminator="action"),
]

load_test_action_adapter: TypeAdapter = TypeAdapter(LoadTestAction)


class LoadTestActionResponse(BaseModel):
    success: bool = True
    message: str
    run_ids: List[str] = Field(default_factory=list, serialization_alias="runIds")


class LoadTestDataResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
