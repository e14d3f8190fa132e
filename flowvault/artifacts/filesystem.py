"""File system storage backend for task artifacts."""

import os
from pathlib import Path
from typing import List
from uuid import uuid4

import aiofiles
import aiofiles.os
import structlog

from . import ArtifactBackend, ArtifactNotFoundError, StorageWriteError

logger = structlog.get_logger()


class FileSystemBackend(ArtifactBackend):
    """File system storage backend implementation."""

    def __init__(self, base_path: str):
        """Initialize filesystem backend."""
        self.base_path = Path(base_path)

        # Create base directory if it doesn't exist
        self.base_path.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Initialized filesystem artifact backend",
            base_path=str(self.base_path)
        )

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Artifact key escapes storage root: {key}")
        return path

    async def read(self, key: str) -> bytes:
        """Read artifact bytes from disk."""
        file_path = self._path_for(key)

        if not file_path.exists():
            raise ArtifactNotFoundError(key)

        async with aiofiles.open(file_path, 'rb') as f:
            data = await f.read()

        logger.debug("Read artifact", key=key, size=len(data))
        return data

    async def write(self, key: str, data: bytes) -> None:
        """Write artifact bytes, replacing the file atomically."""
        file_path = self._path_for(key)
        temp_path = file_path.with_name(f".{file_path.name}.{uuid4().hex}.tmp")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)

            await aiofiles.os.replace(temp_path, file_path)

        except OSError as e:
            logger.error("Failed to write artifact", key=key, error=str(e))
            if temp_path.exists():
                os.unlink(temp_path)
            raise StorageWriteError(f"Failed to write artifact {key}: {e}")

        logger.debug("Stored artifact", key=key, size=len(data))

    async def delete(self, key: str) -> None:
        """Delete artifact file and any directories left empty."""
        file_path = self._path_for(key)

        try:
            if file_path.exists():
                await aiofiles.os.remove(file_path)

                # Remove empty parent directories, a concurrent writer may refill them
                try:
                    parent = file_path.parent
                    while parent != self.base_path.resolve() and not any(parent.iterdir()):
                        parent.rmdir()
                        parent = parent.parent
                except OSError:
                    pass

                logger.debug("Deleted artifact", key=key)

        except OSError as e:
            logger.error("Failed to delete artifact", key=key, error=str(e))
            raise StorageWriteError(f"Failed to delete artifact {key}: {e}")

    async def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    async def list_keys(self, prefix: str) -> List[str]:
        """List keys below the directory part of prefix that start with prefix."""
        root = self.base_path.resolve()
        search_dir = self._path_for(prefix).parent if prefix else root
        if not search_dir.exists():
            return []

        keys = []
        for path in search_dir.rglob("*"):
            if not path.is_file() or path.name.endswith(".tmp"):
                continue
            key = path.relative_to(root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)
