"""Jittered periodic tick stream.

A schedule emits one tick right away and then one every ``period ± flex``
seconds. Ticks are consumed with ``async for``. A delay pushed into the
``retries`` queue resets the running timer so the next tick fires after that
delay instead; this is how backoff reuses the single timer. Setting the
``cancel`` event stops the timer and ends the iteration for good.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import AsyncIterator
from typing import Protocol

logger = logging.getLogger(__name__)

TICK = "tick"
_CLOSED = object()


def generate_delay(period: float, flex: float, rng: random.Random | None = None) -> float:
    """Return ``period`` shifted by a uniform sample from ``[-flex, flex]``."""
    if flex <= 0:
        return period
    sample = (rng or random).uniform(-flex, flex)
    return max(0.0, period + sample)


class ScheduleFactory(Protocol):
    """Builds a fresh tick stream bound to a rule's override queue and cancel signal."""

    def __call__(
        self, retries: asyncio.Queue[float | None], cancel: asyncio.Event,
    ) -> AsyncIterator[str]: ...


class PeriodSchedule:
    """Async iterator of ticks driven by a single resettable loop timer."""

    def __init__(
        self,
        period: float,
        flex: float,
        retries: asyncio.Queue[float | None],
        cancel: asyncio.Event,
        rng: random.Random | None = None,
    ) -> None:
        self.period = period
        self.flex = flex
        self._rng = rng
        self._retries = retries
        self._cancel = cancel
        self._loop = asyncio.get_running_loop()
        self._ticks: asyncio.Queue[object] = asyncio.Queue(maxsize=1)
        self._closed = False

        self._timer: asyncio.TimerHandle | None = self._loop.call_later(
            self._next_delay(), self._fire,
        )
        self._watchers = [
            self._loop.create_task(self._watch_cancel()),
            self._loop.create_task(self._watch_retries()),
        ]
        self._ticks.put_nowait(TICK)

        if cancel.is_set():
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def reset(self, delay: float) -> None:
        """Reschedule the next tick to fire ``delay`` seconds from now."""
        if self._closed:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(max(0.0, delay), self._fire)

    def close(self) -> None:
        """Stop the timer and end the stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for watcher in self._watchers:
            if watcher is not asyncio.current_task():
                watcher.cancel()
        # Pending ticks are dropped so nothing runs after cancellation.
        while not self._ticks.empty():
            self._ticks.get_nowait()
        self._ticks.put_nowait(_CLOSED)

    def __aiter__(self) -> PeriodSchedule:
        return self

    async def __anext__(self) -> str:
        item = await self._ticks.get()
        if item is _CLOSED:
            self._ticks.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return TICK

    # -- internals -------------------------------------------------------------

    def _next_delay(self) -> float:
        return generate_delay(self.period, self.flex, self._rng)

    def _fire(self) -> None:
        if self._closed:
            return
        # A tick the consumer has not picked up yet already covers this one.
        with contextlib.suppress(asyncio.QueueFull):
            self._ticks.put_nowait(TICK)
        self._timer = self._loop.call_later(self._next_delay(), self._fire)

    async def _watch_cancel(self) -> None:
        await self._cancel.wait()
        self.close()

    async def _watch_retries(self) -> None:
        while True:
            delay = await self._retries.get()
            if delay is None:
                return
            logger.debug("Next tick overridden: %.3fs", delay)
            self.reset(delay)


def create_period_schedule(
    period: float,
    flex: float,
    retries: asyncio.Queue[float | None],
    cancel: asyncio.Event,
    rng: random.Random | None = None,
) -> PeriodSchedule:
    """Start a tick stream. Must be called from a running event loop."""
    return PeriodSchedule(period, flex, retries, cancel, rng=rng)
