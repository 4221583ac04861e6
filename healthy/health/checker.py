"""Checker: runs registered tasks on their own schedules and escalates failures.

Lifecycle:
    checker = Checker(notifier=..., logger=...)
    checker.add_task(task, period=60, flex=5)
    await checker.run()
    ...
    await checker.stop()

Every rule gets exactly one control loop per run/stop cycle. A loop pulls a
tick, runs its task, and updates the rule's failure counter. Consecutive
failures below the threshold push a doubling backoff delay into the schedule;
the failure that reaches the threshold notifies once, after which the rule
stays quiet on its regular schedule until the next success.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol

from .schedule import ScheduleFactory, create_period_schedule
from .tasks import RunContext, Task

logger = logging.getLogger(__name__)


# ── Policy ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FailureOptions:
    """When to report a failing task and how fast to retry it."""

    report_failures_count: int = 3  # consecutive failures before notifying
    first_retry_delay: float = 3.0  # seconds; doubles on each further failure

    def __post_init__(self) -> None:
        if self.report_failures_count < 1:
            raise ValueError("report_failures_count must be at least 1")
        if self.first_retry_delay < 0:
            raise ValueError("first_retry_delay must not be negative")


DEFAULT_FAILURE_OPTIONS = FailureOptions()


class Notifier(Protocol):
    """Receives the failure that pushed a task over its report threshold."""

    async def notify(self, task_name: str, error: BaseException) -> None: ...


# ── Execution rule ───────────────────────────────────────────────────────────


@dataclass(eq=False)
class ExecRule:
    """One registered task together with its schedule and failure state."""

    task: Task
    schedule_factory: ScheduleFactory
    failure_options: FailureOptions
    failures_count: int = 0
    cancellation: asyncio.Event = field(default_factory=asyncio.Event)
    retries: asyncio.Queue[float | None] = field(
        default_factory=lambda: asyncio.Queue(maxsize=1),
    )

    def next_retry_delay(self) -> float:
        return self.failure_options.first_retry_delay * (1 << (self.failures_count - 1))

    def open_schedule(self) -> AsyncIterator[str]:
        """Fresh cancel signal, override queue and tick stream for a new cycle."""
        self.cancellation = asyncio.Event()
        self.retries = asyncio.Queue(maxsize=1)
        return self.schedule_factory(self.retries, self.cancellation)

    def push_retry(self, delay: float) -> None:
        """Queue a backoff override, replacing any override not yet applied."""
        with contextlib.suppress(asyncio.QueueEmpty):
            self.retries.get_nowait()
        self.retries.put_nowait(delay)

    def close_retries(self) -> None:
        with contextlib.suppress(asyncio.QueueEmpty):
            self.retries.get_nowait()
        self.retries.put_nowait(None)


# ── Checker ──────────────────────────────────────────────────────────────────


class Checker:
    """Runs configured tasks with their schedules.

    ``add_task`` must not be called once ``run`` has been awaited, and ``run``
    must not be called again until ``stop`` has returned.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        logger: logging.Logger | None = None,
        default_failure_options: FailureOptions | None = None,
    ) -> None:
        self.notifier = notifier
        self.logger = logger  # per-outcome sink; lifecycle goes to the module logger
        self.default_failure_options = default_failure_options or DEFAULT_FAILURE_OPTIONS
        self._rules: list[ExecRule] = []
        self._loops: list[asyncio.Task[None]] = []

    @property
    def rules(self) -> tuple[ExecRule, ...]:
        return tuple(self._rules)

    @property
    def running(self) -> bool:
        return bool(self._loops)

    # -- registration ----------------------------------------------------------

    def add_task(
        self,
        task: Task,
        period: float,
        flex: float = 0.0,
        options: FailureOptions | None = None,
    ) -> ExecRule:
        """Register ``task`` to run every ``period ± flex`` seconds."""
        if period < 0 or flex < 0:
            raise ValueError("period and flex must not be negative")
        factory = functools.partial(create_period_schedule, period, flex)
        return self.add_rule(task, factory, options)

    def add_rule(
        self,
        task: Task,
        schedule_factory: ScheduleFactory,
        options: FailureOptions | None = None,
    ) -> ExecRule:
        """Register ``task`` driven by a custom tick stream factory."""
        rule = ExecRule(
            task=task,
            schedule_factory=schedule_factory,
            failure_options=options or self.default_failure_options,
        )
        self._rules.append(rule)
        return rule

    # -- lifecycle -------------------------------------------------------------

    async def run(self, ctx: RunContext | None = None) -> None:
        """Start one control loop per rule and return immediately."""
        ctx = ctx or RunContext()
        for rule in self._rules:
            ticks = rule.open_schedule()
            self._loops.append(
                asyncio.create_task(
                    self._control_loop(rule, ticks, ctx),
                    name=f"healthy-{rule.task.name}",
                )
            )
        logger.info("Checker started: %d tasks", len(self._rules))

    async def stop(self) -> None:
        """Cancel all schedules and wait for every control loop to finish.

        A task run that is in flight completes before this returns; no run
        starts afterwards.
        """
        for rule in self._rules:
            rule.cancellation.set()
        loops, self._loops = self._loops, []
        if loops:
            results = await asyncio.gather(*loops, return_exceptions=True)
            for loop, result in zip(loops, results):
                if result is not None:
                    logger.error("Control loop %s ended abnormally: %r", loop.get_name(), result)
        logger.info("Checker stopped")

    # -- control loop ----------------------------------------------------------

    async def _control_loop(
        self, rule: ExecRule, ticks: AsyncIterator[str], ctx: RunContext,
    ) -> None:
        try:
            async for _ in ticks:
                await self._execute(rule, ctx)
        finally:
            rule.close_retries()

    async def _execute(self, rule: ExecRule, ctx: RunContext) -> None:
        name = rule.task.name
        try:
            await rule.task.run(ctx)
        except Exception as exc:
            if self.logger is not None:
                self.logger.info("Task %s failed with %s", name, exc)
            threshold = rule.failure_options.report_failures_count
            if rule.failures_count < threshold:
                rule.failures_count += 1
                if rule.failures_count == threshold:
                    await self._notify(name, exc)
                else:
                    rule.push_retry(rule.next_retry_delay())
            return

        rule.failures_count = 0
        if self.logger is not None:
            self.logger.info("Task %s succeeded", name)

    async def _notify(self, task_name: str, error: BaseException) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(task_name, error)
        except Exception:
            logger.exception("Notifier error for task %s", task_name)
