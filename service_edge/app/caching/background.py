"""
Fire-and-forget work that must still finish before the process exits.
"""

import asyncio
from typing import Awaitable, Set

from shared.logging import get_logger


class BackgroundTasks:
    """Tracks detached coroutines so shutdown can wait for them."""

    def __init__(self):
        self.logger = get_logger("edge.background")
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[None], *, name: str = "background") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every spawned task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.warning("Background task cancelled", task=name)
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Background task failed", task=name, error=str(exc))
