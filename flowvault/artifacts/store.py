"""Artifact store addressing task files by process, file name and variant."""

import asyncio
import hashlib
from typing import Dict, Iterable, List, Optional, Set, Union

import structlog

from . import (
    ArtifactBackend,
    ArtifactNotFoundError,
    ArtifactVariant,
    StorageReadError,
    StorageWriteError,
    TaskKind,
    artifact_key,
)

logger = structlog.get_logger()

TaskContent = Dict[ArtifactVariant, Optional[bytes]]

_VARIANT_KINDS = {
    ArtifactVariant.HTML: TaskKind.USER_TASK,
    ArtifactVariant.JSON: TaskKind.USER_TASK,
    ArtifactVariant.JS: TaskKind.SCRIPT_TASK,
    ArtifactVariant.TS: TaskKind.SCRIPT_TASK,
    ArtifactVariant.XML: TaskKind.SCRIPT_TASK,
}


def checksum(data: Optional[bytes]) -> Optional[str]:
    """SHA-256 of artifact content, used in log output."""
    if data is None:
        return None
    return hashlib.sha256(data).hexdigest()


class ArtifactStore:
    """Reads, writes and deletes task artifacts on top of a storage backend.

    An artifact is addressed by ``(process_id, file_name, variant)``; the
    variant determines which task kind the file belongs to. Task level
    helpers operate on every variant of a task at once.
    """

    def __init__(self, backend: ArtifactBackend):
        self.backend = backend
        self.logger = logger.bind(component="artifact_store")

    def _key(self, process_id: str, file_name: str, variant: ArtifactVariant) -> str:
        return artifact_key(process_id, _VARIANT_KINDS[variant], file_name, variant)

    async def read(self, process_id: str, file_name: str, variant: ArtifactVariant) -> bytes:
        """Read one artifact variant, raising ArtifactNotFoundError if it is missing."""
        key = self._key(process_id, file_name, variant)
        try:
            return await self.backend.read(key)
        except (ArtifactNotFoundError, StorageReadError):
            raise
        except Exception as e:
            self.logger.error("Failed to read artifact", key=key, error=str(e))
            raise StorageReadError(f"Failed to read artifact {key}: {e}", process_id=process_id) from e

    async def write(
        self,
        process_id: str,
        file_name: str,
        variant: ArtifactVariant,
        data: Union[bytes, str],
    ) -> None:
        """Write one artifact variant."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        key = self._key(process_id, file_name, variant)
        try:
            await self.backend.write(key, data)
        except StorageWriteError:
            raise
        except Exception as e:
            self.logger.error("Failed to write artifact", key=key, error=str(e))
            raise StorageWriteError(f"Failed to write artifact {key}: {e}", process_id=process_id)

    async def delete(self, process_id: str, file_name: str, variant: ArtifactVariant) -> None:
        """Delete one artifact variant. Missing artifacts are ignored."""
        key = self._key(process_id, file_name, variant)
        try:
            await self.backend.delete(key)
        except StorageWriteError:
            raise
        except Exception as e:
            self.logger.error("Failed to delete artifact", key=key, error=str(e))
            raise StorageWriteError(f"Failed to delete artifact {key}: {e}", process_id=process_id)

    async def exists(self, process_id: str, file_name: str, variant: ArtifactVariant) -> bool:
        return await self.backend.exists(self._key(process_id, file_name, variant))

    async def _read_optional(
        self, process_id: str, file_name: str, variant: ArtifactVariant
    ) -> Optional[bytes]:
        try:
            return await self.read(process_id, file_name, variant)
        except ArtifactNotFoundError:
            return None

    async def read_task(
        self,
        process_id: str,
        kind: TaskKind,
        file_name: str,
        variants: Optional[Iterable[ArtifactVariant]] = None,
    ) -> TaskContent:
        """Read the variants of a task concurrently. Missing variants map to None."""
        variants = tuple(variants or kind.required_variants)
        contents = await asyncio.gather(
            *(self._read_optional(process_id, file_name, variant) for variant in variants)
        )
        return dict(zip(variants, contents))

    async def write_task(
        self,
        process_id: str,
        kind: TaskKind,
        file_name: str,
        contents: TaskContent,
    ) -> List[ArtifactVariant]:
        """Write every present variant of a task and return the variants written."""
        written = []
        for variant in kind.all_variants:
            data = contents.get(variant)
            if data is None:
                continue
            await self.write(process_id, file_name, variant, data)
            written.append(variant)

        self.logger.debug(
            "Stored task artifacts",
            process_id=process_id,
            kind=kind.value,
            file_name=file_name,
            variants=[variant.value for variant in written],
        )
        return written

    async def delete_task(self, process_id: str, kind: TaskKind, file_name: str) -> None:
        """Delete all variants of a task, companion files included."""
        for variant in kind.all_variants:
            await self.delete(process_id, file_name, variant)

        self.logger.debug(
            "Deleted task artifacts",
            process_id=process_id,
            kind=kind.value,
            file_name=file_name,
        )

    async def copy_task(
        self,
        process_id: str,
        kind: TaskKind,
        source_name: str,
        target_name: str,
    ) -> List[ArtifactVariant]:
        """Copy the task files of source_name to target_name, skipping missing variants."""
        contents = await self.read_task(process_id, kind, source_name, kind.all_variants)
        return await self.write_task(process_id, kind, target_name, contents)

    async def list_file_names(self, process_id: str, kind: TaskKind) -> Set[str]:
        """Return the distinct file names that have at least one stored variant."""
        prefix = f"{process_id}/{kind.directory}/"
        names = set()
        for key in await self.backend.list_keys(prefix):
            file_part = key[len(prefix):]
            if "/" in file_part or "." not in file_part:
                continue
            names.add(file_part.rsplit(".", 1)[0])
        return names

    async def close(self) -> None:
        await self.backend.close()
