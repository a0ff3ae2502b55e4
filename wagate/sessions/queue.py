"""
Outbound Queue - per-session FIFO serializer for send operations.

Single Responsibility: run submitted coroutine factories one at a time, in
submission order, resolving each caller's future with its own outcome.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

Task = Callable[[], Awaitable[Any]]


class OutboundQueue:
    """
    Strict FIFO with exactly one in-flight task.

    A failing task rejects only its own future; the drain loop carries on
    with the next entry. The queue is unbounded, callers bound the
    submission rate (rate limiting, anti-spam).

    Usage:
        queue = OutboundQueue()
        result = await queue.push(lambda: connection.send(jid, content))
    """

    def __init__(self):
        self._items: deque[tuple[Task, asyncio.Future]] = deque()
        self._running = False
        self._drain_task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        """Tasks waiting to run (excluding the one in flight)."""
        return len(self._items)

    @property
    def running(self) -> bool:
        """Whether the drain loop is currently active."""
        return self._running

    def push(self, task: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """
        Submit a task.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            Future resolved with the task's result or its exception
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._items.append((task, future))
        if not self._running:
            self._running = True
            self._drain_task = loop.create_task(
                self._drain(), name="outbound-queue-drain"
            )
        return future

    async def _drain(self) -> None:
        try:
            while self._items:
                task, future = self._items.popleft()
                if future.cancelled():
                    continue
                try:
                    result = await task()
                except Exception as exc:
                    if not future.cancelled():
                        future.set_exception(exc)
                else:
                    if not future.cancelled():
                        future.set_result(result)
        finally:
            self._running = False
