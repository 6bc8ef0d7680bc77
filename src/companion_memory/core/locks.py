# src/companion_memory/core/locks.py
import asyncio
import weakref
from contextlib import asynccontextmanager


class OwnerLockRegistry:
    """One asyncio lock per owner, created on demand.

    Locks are held weakly; an owner nobody is waiting on costs nothing.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, owner_id: str) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[owner_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, owner_id: str):
        lock = self.get(owner_id)
        async with lock:
            yield

