"""
Error taxonomy for the load traffic engine.

Per-request failures are never raised: they are classified into an
``ErrorCategory`` and recorded on the run's result. Exceptions in this module
are reserved for problems the caller has to deal with synchronously, such as
an invalid test configuration or a request for an unknown predefined test.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Categorization of recorded errors.

    NETWORK: Transport failures (connection refused, DNS, reset)
    TIMEOUT: The request hit its hard timeout
    UNEXPECTED_STATUS: A response arrived but its status was not expected
    RESPONSE_TIME_EXCEEDED: Status acceptable but latency breached the bound
    CONFIGURATION: Invalid or incomplete test configuration
    AUTHORIZATION: Operator check rejected an administrative request
    """

    NETWORK = "network"
    TIMEOUT = "timeout"
    UNEXPECTED_STATUS = "unexpected_status"
    RESPONSE_TIME_EXCEEDED = "response_time_exceeded"
    CONFIGURATION = "configuration"
    AUTHORIZATION = "authorization"


class LoadTestError(Exception):
    """Base class for errors surfaced to callers of the engine."""

    category: ErrorCategory = ErrorCategory.CONFIGURATION


class ConfigurationError(LoadTestError, ValueError):
    """Raised when a test configuration is missing required fields or is invalid."""

    def __init__(self, message: str, missing_fields=None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


class UnknownTestError(LoadTestError, KeyError):
    """Raised when a predefined test configuration name does not exist."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Load test configuration '{self.name}' not found"


class InvalidStateTransition(LoadTestError, RuntimeError):
    """Raised when a run is moved through its lifecycle out of order."""

    def __init__(self, current, target):
        super().__init__(f"Cannot transition run from {current.value} to {target.value}")
        self.current = current
        self.target = target
