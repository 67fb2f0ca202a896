import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class SessionLockRegistry:
    """
    Per-session mutual exclusion for everything that writes a session.

    One `asyncio.Lock` is kept per session id while at least one task holds
    or waits for it, and dropped afterwards so idle sessions cost nothing.
    Waiters acquire in FIFO order, which makes history order equal to the
    order in which turns entered the lock. The registry is process-local.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)
