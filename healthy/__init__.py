"""healthy — periodic health checks with retry, backoff and failure escalation."""

from .errors import CheckFailed, ConfigError, ContextCancelled, HealthyError
from .health import (
    DEFAULT_FAILURE_OPTIONS,
    Checker,
    FailureOptions,
    FuncTask,
    HttpCheck,
    RetryingTask,
    RunContext,
    Task,
    with_retries,
)

__all__ = [
    "DEFAULT_FAILURE_OPTIONS",
    "CheckFailed",
    "Checker",
    "ConfigError",
    "ContextCancelled",
    "FailureOptions",
    "FuncTask",
    "HealthyError",
    "HttpCheck",
    "RetryingTask",
    "RunContext",
    "Task",
    "with_retries",
]
