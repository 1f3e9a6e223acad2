"""Per-key asyncio locking."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
import asyncio


class KeyedLock:
    """
    Serializes work per key inside one process.

    Locks are created on first use and dropped once no task holds or waits
    on them, so the table only grows with concurrently active keys.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def active_keys(self) -> int:
        return len(self._locks)
