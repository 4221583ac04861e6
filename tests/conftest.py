"""Shared test fixtures and doubles."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable

import pytest

from healthy.health.schedule import TICK
from healthy.health.tasks import RunContext


class ScriptedTask:
    """Task whose runs succeed (``None``) or raise the scripted exception, cyclically."""

    def __init__(self, outcomes: Iterable[Exception | None], name: str = "test func") -> None:
        self.outcomes = list(outcomes)
        self._name = name
        self.calls = 0
        self.contexts: list[RunContext] = []

    @property
    def name(self) -> str:
        return self._name

    async def run(self, ctx: RunContext) -> None:
        outcome = self.outcomes[self.calls % len(self.outcomes)]
        self.calls += 1
        self.contexts.append(ctx)
        if outcome is not None:
            raise outcome


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, BaseException]] = []

    async def notify(self, task_name: str, error: BaseException) -> None:
        self.calls.append((task_name, error))


class ScriptedSchedule:
    """Finite tick stream that records every backoff override it is handed.

    Ignores cancellation so a test can ``run`` then ``stop`` and still see
    every scripted tick processed.
    """

    def __init__(self, ticks: int, retries: asyncio.Queue, overrides: list[float]) -> None:
        self.remaining = ticks
        self.retries = retries
        self.overrides = overrides

    def __aiter__(self) -> ScriptedSchedule:
        return self

    async def __anext__(self) -> str:
        with contextlib.suppress(asyncio.QueueEmpty):
            delay = self.retries.get_nowait()
            if delay is not None:
                self.overrides.append(delay)
        if self.remaining <= 0:
            raise StopAsyncIteration
        self.remaining -= 1
        await asyncio.sleep(0)
        return TICK


class ScriptedScheduleFactory:
    """Hands out one ScriptedSchedule per run cycle with the given tick counts."""

    def __init__(self, *ticks_per_cycle: int) -> None:
        self.ticks_per_cycle = list(ticks_per_cycle)
        self.overrides: list[float] = []
        self.cycles = 0

    def __call__(self, retries: asyncio.Queue, cancel: asyncio.Event) -> ScriptedSchedule:
        ticks = self.ticks_per_cycle[self.cycles] if self.cycles < len(self.ticks_per_cycle) else 0
        self.cycles += 1
        return ScriptedSchedule(ticks, retries, self.overrides)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
