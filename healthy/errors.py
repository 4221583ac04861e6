"""Exception types shared across the healthy package."""

from __future__ import annotations


class HealthyError(Exception):
    """Base class for errors raised by healthy itself."""


class CheckFailed(HealthyError):
    """A health check ran to completion and found the target unhealthy."""


class ContextCancelled(HealthyError):
    """A guarded await was cut short because its RunContext was cancelled."""


class ConfigError(HealthyError):
    """The checks configuration file is malformed."""
