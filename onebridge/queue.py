"""Rate-limited queue — serializes runtime calls with a fixed spacing.

Calls made through the ``*_rate_limited`` action variants land here.
Tasks run strictly in enqueue order, one every ``interval`` seconds,
each started without waiting for the previous call's result.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger("onebridge.queue")


@dataclass(frozen=True)
class QueueTask:
    method: str
    args: tuple


class RateLimitedQueue:
    """FIFO queue drained by a single background consumer.

    Usage:
        queue = RateLimitedQueue(invoke=router.invoke, interval=0.5)
        queue.enqueue(QueueTask("send_group_msg", (123, "hi")))
    """

    def __init__(self, invoke: Callable[[QueueTask], Any], interval: float = 0.5):
        """Initialize queue.

        Args:
            invoke: Starts the runtime call for a task. Its result is not
                awaited; awaitables are left to run in the background.
            interval: Delay in seconds after each task before the next.
        """
        self._invoke = invoke
        self.interval = interval
        self._tasks: deque[QueueTask] = deque()
        self._running = False
        self._consumer: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def enqueue(self, task: QueueTask):
        """Append a task and start the consumer if it is idle."""
        self._tasks.append(task)
        logger.debug(f"Queued {task.method} ({len(self._tasks)} pending)")
        if self._running:
            return
        self._running = True
        self._consumer = asyncio.create_task(self._drain())

    async def _drain(self):
        try:
            while self._tasks:
                task = self._tasks.popleft()
                try:
                    self._invoke(task)
                except Exception as e:
                    logger.error(f"Queued call {task.method} failed: {type(e).__name__}: {e}")
                await asyncio.sleep(self.interval)
        finally:
            self._running = False
            self._consumer = None

    async def close(self):
        """Stop the consumer. Pending tasks are dropped."""
        if self._consumer:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
        if self._tasks:
            logger.warning(f"Dropping {len(self._tasks)} queued calls on shutdown")
            self._tasks.clear()
