"""
Periodic background tasks (cache sweep, heartbeat).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs an async callable every `interval_seconds` until stopped.

    An error inside one tick is logged and the loop carries on with the next.
    The first tick runs one interval after start(), not immediately.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self._func = func
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False
        self.ticks = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info(f"Started periodic task {self.name} (every {self._interval}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        self._running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped periodic task {self.name}")

    async def run_once(self) -> None:
        """Run a single tick, logging rather than raising on error."""
        try:
            await self._func()
            self.ticks += 1
        except Exception as e:
            self.errors += 1
            logger.error(f"Periodic task {self.name} failed: {e}", exc_info=True)

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            await self.run_once()
