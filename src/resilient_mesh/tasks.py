"""
Cancellable periodic background task.

Used for the registry sweep and for per-instance lease renewal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async action every ``interval`` seconds until stopped."""

    def __init__(
        self,
        interval: float,
        action: Callable[[], Awaitable[object]],
        name: str = "periodic-task",
        run_immediately: bool = False,
    ):
        if interval <= 0:
            raise ValueError("Interval must be positive")

        self.interval = interval
        self.action = action
        self.name = name
        self.run_immediately = run_immediately

        self._task: asyncio.Task | None = None
        self._stopping = False
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop on the running event loop."""
        if self.running:
            return

        self._stopping = False
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.debug("Periodic task %s started (interval=%ss)", self.name, self.interval)

    async def stop(self) -> None:
        """Stop the loop; no invocation happens after this returns."""
        self._stopping = True
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.debug("Periodic task %s stopped", self.name)

    async def _loop(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)

        while not self._stopping:
            await self._run_once()
            await asyncio.sleep(self.interval)

    async def _run_once(self) -> None:
        self.runs += 1
        try:
            await self.action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.error("Periodic task %s failed: %s", self.name, e)
