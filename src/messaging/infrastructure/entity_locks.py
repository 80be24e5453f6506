"""
Per-entity mutual exclusion.

Transitions on one message, recipient or conversation are serialized by
holding the lock for its (kind, id). Locks are created on demand and
dropped once nobody holds or waits for them.

Lock order when nesting: message before recipient. Conversation locks are
never held while a message lock is requested.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class EntityLockManager:

    def __init__(self) -> None:
        self._locks: dict[tuple[str, Hashable], asyncio.Lock] = {}
        self._users: dict[tuple[str, Hashable], int] = {}

    @asynccontextmanager
    async def hold(self, kind: str, entity_id: Hashable) -> AsyncIterator[None]:
        key = (kind, entity_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def conversation(self, conversation_id: int):
        return self.hold("conversation", conversation_id)

    def message(self, message_id: int):
        return self.hold("message", message_id)

    def recipient(self, recipient_id: int):
        return self.hold("recipient", recipient_id)

    def __len__(self) -> int:
        return len(self._locks)
