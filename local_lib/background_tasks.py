"""Fire-and-forget async task tracking for long-lived services.

Submit coroutines without blocking. Failures are logged with traceback from
done callbacks and counted; they never propagate into the submitter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

__all__ = [
    'BackgroundTaskGroup',
]

logger = logging.getLogger(__name__)


class BackgroundTaskGroup:
    """Track background tasks for the lifetime of a service.

    Tasks are submitted via submit() and dropped from the group once done.
    Unlike a per-operation group, one failed task does not poison the group:
    the error is logged and counted, and later submissions run normally.
    Coroutines are expected to handle their own domain errors; anything that
    escapes is a bug and is logged here.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self.failed_count = 0

    def submit(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule a coroutine and return its task. Must be called on the event loop."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        """Callback: log escaped errors, discard completed tasks."""
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failed_count += 1
            logger.error(f'[{self._name}] Background task {task.get_name()} failed: {exc}', exc_info=exc)

    def cancel_all(self) -> None:
        """Cancel all outstanding tasks."""
        for task in self._tasks:
            task.cancel()

    async def drain(self) -> None:
        """Await all outstanding tasks, including cancelled ones."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def pending_count(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)
