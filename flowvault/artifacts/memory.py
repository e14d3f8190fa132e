"""In-memory artifact backend."""

import asyncio
from typing import Dict, List

import structlog

from . import ArtifactBackend, ArtifactNotFoundError

logger = structlog.get_logger()


class InMemoryBackend(ArtifactBackend):
    """Keeps artifacts in a dict. Used for tests and single-process setups."""

    def __init__(self):
        self._objects: Dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def read(self, key: str) -> bytes:
        async with self._lock:
            if key not in self._objects:
                raise ArtifactNotFoundError(key)
            return self._objects[key]

    async def write(self, key: str, data: bytes) -> None:
        async with self._lock:
            self._objects[key] = bytes(data)
        logger.debug("Stored artifact in memory", key=key, size=len(data))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._objects.pop(key, None)

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return key in self._objects

    async def list_keys(self, prefix: str) -> List[str]:
        async with self._lock:
            return sorted(key for key in self._objects if key.startswith(prefix))
