"""Task contract, run context and the retry decorator.

A task is anything with a ``name`` and an ``async run(ctx)`` coroutine that
raises when the check fails. The checker never looks inside a task; it only
counts the exceptions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar, runtime_checkable

from ..errors import ContextCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Run context ──────────────────────────────────────────────────────────────


class RunContext:
    """Cancellation scope handed to every task run.

    The owner cancels it; tasks observe it either by polling ``cancelled`` or
    by wrapping their own awaits in :meth:`guard`.
    """

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._cancelled.wait()

    async def guard(self, aw: Awaitable[T], timeout: float | None = None) -> T:
        """Await ``aw`` unless the context is cancelled or ``timeout`` expires.

        Raises ``ContextCancelled`` on cancellation and ``TimeoutError`` on
        timeout. In both cases the wrapped awaitable is cancelled.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise ContextCancelled("context cancelled")

        work = asyncio.ensure_future(aw)
        watcher = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {work, watcher}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            watcher.cancel()

        if work in done:
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        if watcher in done:
            raise ContextCancelled("context cancelled")
        raise TimeoutError(f"timed out after {timeout}s")


# ── Task contract ────────────────────────────────────────────────────────────


@runtime_checkable
class Task(Protocol):
    """A named, independently schedulable unit of fallible work."""

    @property
    def name(self) -> str: ...

    async def run(self, ctx: RunContext) -> None: ...


class FuncTask:
    """Adapts a plain coroutine function to the Task protocol."""

    def __init__(self, name: str, fn: Callable[[RunContext], Awaitable[None]]) -> None:
        self._name = name
        self._fn = fn

    @property
    def name(self) -> str:
        return self._name

    async def run(self, ctx: RunContext) -> None:
        await self._fn(ctx)


# ── Retries ──────────────────────────────────────────────────────────────────


class RetryingTask:
    """Re-runs the wrapped task until it succeeds or attempts run out.

    Only the exception from the final attempt propagates.
    """

    def __init__(self, task: Task, max_attempts: int) -> None:
        self.task = task
        self.max_attempts = max(1, max_attempts)

    @property
    def name(self) -> str:
        return self.task.name

    async def run(self, ctx: RunContext) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.task.run(ctx)
                return
            except Exception as exc:
                if attempt == self.max_attempts:
                    raise
                logger.debug(
                    "Attempt %d/%d of %s failed: %s",
                    attempt, self.max_attempts, self.name, exc,
                )


def with_retries(task: Task | None, max_attempts: int) -> RetryingTask:
    """Wrap ``task`` so a single run makes up to ``max_attempts`` attempts."""
    if task is None:
        raise TypeError("task must not be None")
    return RetryingTask(task, max_attempts)
