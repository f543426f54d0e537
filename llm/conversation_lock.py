"""
Per-conversation single-writer locks.

Turns for the same conversation run one at a time; turns for different
conversations run concurrently. Locks are reference-counted and dropped
once no turn holds or waits on them.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0


class ConversationLockManager:
    """Arena of asyncio locks keyed by conversation id."""

    def __init__(self):
        self._entries: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def lock(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock for the duration of the block."""
        entry = self._entries.get(conversation_id)
        if entry is None:
            entry = _LockEntry()
            self._entries[conversation_id] = entry
        entry.refs += 1

        try:
            if entry.lock.locked():
                logger.debug(f"Waiting for turn in progress on conversation {conversation_id}")
            async with entry.lock:
                yield
        finally:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(conversation_id, None)

    def is_locked(self, conversation_id: str) -> bool:
        entry = self._entries.get(conversation_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
