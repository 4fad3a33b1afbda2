from __future__ import annotations

import asyncio
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from .errors import SwitchConflictError


class KeyedLock:
    """
    One `asyncio.Lock` per key, created on first use.

    Holders of the same key run one at a time; different keys never wait on
    each other. Locks are kept for the lifetime of the instance, which is
    fine for a handful of account identities.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    def locked(self, key: str) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self.lock_for(key):
            yield


@asynccontextmanager
async def hold_exclusive(lock: asyncio.Lock, *, blocking: bool = False, what: str = "resource") -> AsyncIterator[None]:
    """
    Hold `lock` for the duration of the block.

    - If `blocking`, waits for the lock.
    - If not, raises SwitchConflictError when the lock is already held.
      Checking `locked()` and acquiring happen without yielding to the event
      loop, so no other task can slip in between.
    The lock is released on every exit path, including cancellation.
    """
    if not blocking and lock.locked():
        raise SwitchConflictError(f"{what} is busy; another operation is in progress")
    await lock.acquire()
    try:
        yield
    finally:
        lock.release()


__all__ = ["KeyedLock", "hold_exclusive"]
