"""
Cooperative periodic tasks.

A task runs its function, then waits ``interval`` seconds before the next
run: runs never overlap and a slow run delays the next one instead of
piling up. ``stop()`` lets a run in progress finish.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger()

TaskFunc = Callable[[], "Awaitable[Any] | Any"]


class PeriodicTask:
    """Run a sync or async callable on a fixed interval."""

    def __init__(self, name: str, interval: float, func: TaskFunc) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._func = func
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(self._run_loop(), name=self.name)
        logger.info("periodic_task_started", task=self.name, interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("periodic_task_stopped", task=self.name, runs=self.runs)

    async def run_once(self) -> None:
        """Run the function once; errors are logged and counted."""
        try:
            result = self._func()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self.failures += 1
            logger.error(
                "periodic_task_failed",
                task=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
        finally:
            self.runs += 1

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
