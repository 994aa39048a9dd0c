from __future__ import annotations

from asyncio import Lock
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Async mutual exclusion per key, with locks created and dropped on demand.

    A lock lives only while somebody holds or waits for it, so idle matches
    cost nothing and a released lock is never reused from another event loop.
    Bookkeeping happens between awaits, which keeps it atomic on one loop.
    """

    def __init__(self) -> None:
        self._locks: dict[str, tuple[Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = Lock()
        self._locks[key] = (lock, users + 1)

        try:
            async with lock:
                yield
        finally:
            current, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (current, users - 1)

    def active_keys(self) -> set[str]:
        return set(self._locks)


match_locks = KeyedLock()


def match_lock(match_id: str):
    """Critical section for every status-reading, score-mutating operation on a match."""

    return match_locks.hold(match_id)
