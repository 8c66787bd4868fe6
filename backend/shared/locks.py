"""
Per-key async locking.

Mutations of one invoice (or one subscription) are serialised in-process
with a lock keyed by its identifier. Different keys never contend.

The lock is reentrant for the task that holds it, so a component that
already holds an invoice's lock can call another component that takes the
same lock (e.g. the payment processor calling the ledger's settlement).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional


class _Entry:
    __slots__ = ("lock", "owner", "depth", "waiters")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.owner: Optional[asyncio.Task] = None
        self.depth = 0
        self.waiters = 0


class KeyedLock:
    """Task-reentrant asyncio lock per string key."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()

        if entry.owner is task and task is not None:
            entry.depth += 1
            try:
                yield
            finally:
                entry.depth -= 1
            return

        entry.waiters += 1
        try:
            await entry.lock.acquire()
        finally:
            entry.waiters -= 1
        entry.owner = task
        entry.depth = 1
        try:
            yield
        finally:
            entry.depth = 0
            entry.owner = None
            entry.lock.release()
            if entry.waiters == 0 and not entry.lock.locked():
                self._entries.pop(key, None)

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()
