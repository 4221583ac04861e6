"""Health subsystem — tasks, jittered schedules and the failure-escalating checker."""

from .checker import DEFAULT_FAILURE_OPTIONS, Checker, ExecRule, FailureOptions, Notifier
from .http import HttpCheck
from .schedule import PeriodSchedule, create_period_schedule, generate_delay
from .tasks import FuncTask, RetryingTask, RunContext, Task, with_retries
