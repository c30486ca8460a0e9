"""
Task Registry - Tracks detached background work.

Fire-and-forget refreshes and the transaction listener run as tracked asyncio
tasks so they can be awaited (tests, shutdown) instead of raced.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from structlog import get_logger

logger = get_logger(__name__)


class TaskRegistry:
    """
    Owns background asyncio tasks until they finish.

    Usage:
        tasks = TaskRegistry()
        tasks.spawn(refresh(), name="background_refresh")
        await tasks.wait_idle()
        await tasks.shutdown()
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule a coroutine on the running loop and track it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, exclude: set[asyncio.Task[Any]] | None = None) -> None:
        """
        Wait until every tracked task has finished.

        Tasks spawned while waiting are awaited too. Tasks in exclude
        (e.g. a long-lived listener) are ignored.
        """
        exclude = exclude or set()
        while True:
            waiting = [t for t in self._tasks if t not in exclude and not t.done()]
            if not waiting:
                return
            await asyncio.gather(*waiting, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every tracked task and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
