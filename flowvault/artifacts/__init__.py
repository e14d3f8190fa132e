"""Task artifact storage system."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Tuple

from flowvault.exceptions import ArtifactNotFoundError, StorageReadError, StorageWriteError


class ArtifactVariant(str, Enum):
    """File variants stored for a task implementation."""
    HTML = "html"
    JSON = "json"
    JS = "js"
    TS = "ts"
    XML = "xml"


class TaskKind(str, Enum):
    """Task kinds whose implementation lives in external files."""
    USER_TASK = "userTask"
    SCRIPT_TASK = "scriptTask"

    @property
    def required_variants(self) -> Tuple[ArtifactVariant, ...]:
        """Variants compared for dedup and copied into new versions."""
        if self is TaskKind.USER_TASK:
            return (ArtifactVariant.HTML, ArtifactVariant.JSON)
        return (ArtifactVariant.JS, ArtifactVariant.TS)

    @property
    def companion_variants(self) -> Tuple[ArtifactVariant, ...]:
        """Variants that travel with the task on delete and rollback only."""
        if self is TaskKind.SCRIPT_TASK:
            return (ArtifactVariant.XML,)
        return ()

    @property
    def all_variants(self) -> Tuple[ArtifactVariant, ...]:
        return self.required_variants + self.companion_variants

    @property
    def directory(self) -> str:
        return "user-tasks" if self is TaskKind.USER_TASK else "script-tasks"


def artifact_key(process_id: str, kind: TaskKind, file_name: str, variant: ArtifactVariant) -> str:
    """Build the storage key of a single artifact variant."""
    return f"{process_id}/{kind.directory}/{file_name}.{variant.value}"


class ArtifactBackend(ABC):
    """Abstract base class for artifact storage backends."""

    @abstractmethod
    async def read(self, key: str) -> bytes:
        """Read the bytes stored under key; raise ArtifactNotFoundError if missing."""
        pass

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """Store data under key, replacing any previous content."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str) -> List[str]:
        """List all keys starting with prefix."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


# Import implementations
from .memory import InMemoryBackend
from .filesystem import FileSystemBackend
from .s3 import S3Backend
from .store import ArtifactStore


__all__ = [
    'ArtifactVariant',
    'TaskKind',
    'artifact_key',
    'ArtifactBackend',
    'ArtifactNotFoundError',
    'StorageReadError',
    'StorageWriteError',
    'InMemoryBackend',
    'FileSystemBackend',
    'S3Backend',
    'ArtifactStore',
]
