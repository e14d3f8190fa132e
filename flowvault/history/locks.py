"""Per-process operation locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

logger = structlog.get_logger()


class ProcessLockManager:
    """Hands out one exclusive asyncio lock per process id.

    Locks are created on first use and dropped once nobody holds or waits
    for them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, process_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(process_id, asyncio.Lock())
        self._holders[process_id] = self._holders.get(process_id, 0) + 1
        try:
            if lock.locked():
                logger.debug("Waiting for process lock", process_id=process_id)
            async with lock:
                yield
        finally:
            self._holders[process_id] -= 1
            if not self._holders[process_id]:
                del self._holders[process_id]
                del self._locks[process_id]

    def is_locked(self, process_id: str) -> bool:
        lock = self._locks.get(process_id)
        return lock is not None and lock.locked()
