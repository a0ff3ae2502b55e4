"""
Task Supervisor - Runs detached background work and logs its outcome.

Single Responsibility: fire-and-forget task creation with completion tracking,
so a failing background unit (webhook delivery, logout relaunch, reconnect,
bootstrap) is logged and never reaches the code path that spawned it.
"""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class TaskSupervisor:
    """
    Spawns and tracks background tasks.

    Responsibilities:
        - Create asyncio tasks for coroutines (fire-and-forget)
        - Keep strong references until completion
        - Log failures via completion callbacks
        - Cancel everything still running on shutdown

    Usage:
        supervisor = TaskSupervisor()
        supervisor.spawn(deliver(...), name="webhook:message_received")
    """

    _tasks: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    @property
    def active(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """
        Schedule a coroutine as a supervised task.

        Args:
            coro: Coroutine to run
            name: Task name used in logs

        Returns:
            Created asyncio.Task for optional monitoring
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_completion)
        return task

    def _on_completion(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task cancelled: %s", task.get_name())
            return

        exception = task.exception()
        if exception:
            logger.error(
                "Background task failed: %s, error=%s",
                task.get_name(),
                exception,
                exc_info=exception,
            )
        else:
            logger.debug("Background task completed: %s", task.get_name())

    async def join(self) -> None:
        """Wait for all currently tracked tasks to finish (used by tests)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        # let done-callbacks run
        await asyncio.sleep(0)

    async def shutdown(self) -> None:
        """Cancel every task still running and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Task supervisor shut down (%d tasks cancelled)", len(tasks))
