"""Version lineage storage.

A lineage store keeps, per process, the editable draft document and the
append-only list of committed versions together with their documents.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import structlog

from flowvault.exceptions import (
    ConflictError,
    ProcessNotFoundError,
    VersionConflictError,
    VersionNotFoundError,
)

from .models import ProcessRecord, VersionMetadata

logger = structlog.get_logger()


class LineageStore(ABC):
    """Abstract base class for lineage stores."""

    async def initialize(self) -> None:
        """Prepare the store for use."""
        return None

    async def close(self) -> None:
        """Release store resources."""
        return None

    @abstractmethod
    async def create_process(self, process_id: str, bpmn: str) -> ProcessRecord:
        """Register a new process with its initial draft."""
        pass

    @abstractmethod
    async def get_process(self, process_id: str) -> ProcessRecord:
        """Load a process with its version list and draft."""
        pass

    @abstractmethod
    async def list_processes(self) -> List[str]:
        pass

    @abstractmethod
    async def delete_process(self, process_id: str) -> None:
        pass

    @abstractmethod
    async def append_version(
        self,
        process_id: str,
        metadata: VersionMetadata,
        bpmn: str,
        draft: Optional[str] = None,
    ) -> None:
        """Append a version and its document.

        When ``draft`` is given the process draft is replaced in the same
        atomic step.
        """
        pass

    @abstractmethod
    async def get_version_bpmn(self, process_id: str, version_id: str) -> str:
        """Return a version's document or raise VersionNotFoundError."""
        pass

    @abstractmethod
    async def replace_draft(self, process_id: str, bpmn: str) -> None:
        pass

    async def list_versions(self, process_id: str) -> List[VersionMetadata]:
        """Versions of a process in creation order."""
        process = await self.get_process(process_id)
        return list(process.versions)

    async def get_draft(self, process_id: str) -> str:
        process = await self.get_process(process_id)
        return process.bpmn


class InMemoryLineageStore(LineageStore):
    """Lineage store holding everything in memory."""

    def __init__(self):
        self._processes: Dict[str, ProcessRecord] = {}
        self._documents: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="memory_lineage_store")

    def _get(self, process_id: str) -> ProcessRecord:
        if process_id not in self._processes:
            raise ProcessNotFoundError(process_id)
        return self._processes[process_id]

    async def create_process(self, process_id: str, bpmn: str) -> ProcessRecord:
        async with self._lock:
            if process_id in self._processes:
                raise ConflictError(f"Process {process_id} already exists", {"process_id": process_id})
            record = ProcessRecord(id=process_id, bpmn=bpmn)
            self._processes[process_id] = record
        self.logger.info("Created process", process_id=process_id)
        return record.model_copy(deep=True)

    async def get_process(self, process_id: str) -> ProcessRecord:
        async with self._lock:
            return self._get(process_id).model_copy(deep=True)

    async def list_processes(self) -> List[str]:
        async with self._lock:
            return sorted(self._processes)

    async def delete_process(self, process_id: str) -> None:
        async with self._lock:
            record = self._get(process_id)
            for version in record.versions:
                self._documents.pop((process_id, version.version_id), None)
            del self._processes[process_id]
        self.logger.info("Deleted process", process_id=process_id)

    async def append_version(
        self,
        process_id: str,
        metadata: VersionMetadata,
        bpmn: str,
        draft: Optional[str] = None,
    ) -> None:
        async with self._lock:
            record = self._get(process_id)
            if record.has_version(metadata.version_id):
                raise VersionConflictError(
                    f"Version {metadata.version_id} already exists for process {process_id}",
                    {"process_id": process_id, "version_id": metadata.version_id},
                )
            update = {"versions": record.versions + [metadata]}
            if draft is not None:
                update["bpmn"] = draft
            self._documents[(process_id, metadata.version_id)] = bpmn
            self._processes[process_id] = record.model_copy(update=update)

        self.logger.info("Appended version", process_id=process_id, version_id=metadata.version_id)

    async def get_version_bpmn(self, process_id: str, version_id: str) -> str:
        async with self._lock:
            self._get(process_id)
            try:
                return self._documents[(process_id, version_id)]
            except KeyError:
                raise VersionNotFoundError(process_id, version_id)

    async def replace_draft(self, process_id: str, bpmn: str) -> None:
        async with self._lock:
            record = self._get(process_id)
            self._processes[process_id] = record.model_copy(update={"bpmn": bpmn})
        self.logger.debug("Replaced draft", process_id=process_id)
