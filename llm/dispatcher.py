"""
Delayed turn dispatch.

Each inbound message becomes an independent asyncio task that waits a short
artificial delay before the turn runs. Ordering within a conversation is
enforced by the orchestrator's conversation lock, not here.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Set

logger = logging.getLogger(__name__)


class TurnDispatcher:
    """Schedules turn processing as background tasks."""

    def __init__(self, handler: Callable[..., Awaitable[object]], delay_seconds: float = 2.0):
        """
        Args:
            handler: Coroutine function run for each dispatched message
            delay_seconds: Delay before the handler runs
        """
        self.handler = handler
        self.delay_seconds = delay_seconds
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, message) -> asyncio.Task:
        """Schedule one message. Must be called from a running event loop."""
        task = asyncio.get_running_loop().create_task(
            self._run(message),
            name=f"turn:{message.conversation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, message):
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        return await self.handler(message)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Dispatched {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Dispatched {task.get_name()} failed: {exc!r}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched turn to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
