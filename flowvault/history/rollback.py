"""Promotion of a committed version to the editable draft.

The draft always references canonical file names while versions reference
``{file_name}-{version_id}`` names, so the draft's files can be replaced
without touching anything a version points to. Rollback stages the target
version's files in memory, writes them under canonical names, swaps the
draft document and only then reclaims files the old draft used. A failure
before the swap restores the overwritten draft files and leaves the old
draft in place.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import structlog

from flowvault.artifacts import ArtifactStore, TaskKind
from flowvault.artifacts.store import TaskContent
from flowvault.bpmn import (
    BpmnSource,
    get_definitions_version_information,
    get_task_file_name_mapping,
    get_used_file_names,
    is_versioned_file_name,
    set_definitions_version_information,
    set_task_file_name,
    to_bpmn_object,
    to_bpmn_xml,
    unversioned_file_name,
)
from flowvault.exceptions import NotFoundError, StorageWriteError

from .lineage import LineageStore
from .locks import ProcessLockManager
from .models import RollbackResult

logger = structlog.get_logger()


@dataclass
class EditableBpmn:
    """Draft document derived from a version, with the file renames it implies."""
    bpmn: str
    changed_user_task_file_names: Dict[str, str] = field(default_factory=dict)
    changed_script_task_file_names: Dict[str, str] = field(default_factory=dict)

    def changed_file_names(self, kind: TaskKind) -> Dict[str, str]:
        if kind is TaskKind.USER_TASK:
            return self.changed_user_task_file_names
        return self.changed_script_task_file_names


def convert_to_editable_bpmn(bpmn: BpmnSource, version_ids: Optional[Iterable[str]] = None) -> EditableBpmn:
    """Turn a version document into a draft document.

    The version identity is removed and the draft is marked as based on the
    version. Versioned file references are renamed to their canonical names;
    with ``version_ids`` only a known version suffix is stripped, which keeps
    dashes inside logical file names.
    """
    if version_ids is not None:
        version_ids = list(version_ids)
    document = to_bpmn_object(bpmn).copy()
    version_id = get_definitions_version_information(document).version_id

    set_definitions_version_information(
        document,
        version_id=None,
        version_name=None,
        version_description=None,
        version_created_on=None,
        version_based_on=version_id,
    )

    editable = EditableBpmn(bpmn="")
    for kind in TaskKind:
        changed = editable.changed_file_names(kind)
        for task_id, info in get_task_file_name_mapping(document, kind).items():
            if info.file_name and is_versioned_file_name(info.file_name, version_ids):
                canonical_name = unversioned_file_name(info.file_name, version_ids)
                changed[info.file_name] = canonical_name
                set_task_file_name(document, kind, task_id, canonical_name)

    editable.bpmn = to_bpmn_xml(document)
    return editable


@dataclass
class _StagedFile:
    kind: TaskKind
    file_name: str
    contents: TaskContent
    backup: Optional[TaskContent] = None


class RollbackManager:
    """Replaces a process draft with a reconstruction of a committed version."""

    def __init__(
        self,
        lineage_store: LineageStore,
        artifact_store: ArtifactStore,
        locks: Optional[ProcessLockManager] = None,
        reclaim_artifacts: bool = True,
    ):
        self.lineage_store = lineage_store
        self.artifact_store = artifact_store
        self.locks = locks or ProcessLockManager()
        self.reclaim_artifacts = reclaim_artifacts
        self.logger = logger.bind(component="rollback_manager")

    async def _stage(self, process_id: str, editable: EditableBpmn) -> List[_StagedFile]:
        """Read everything the new draft needs, and back up what it will overwrite."""
        staged = []
        for kind in TaskKind:
            for old_name, new_name in editable.changed_file_names(kind).items():
                contents = await self.artifact_store.read_task(
                    process_id, kind, old_name, kind.all_variants
                )
                current = await self.artifact_store.read_task(
                    process_id, kind, new_name, kind.all_variants
                )
                backup = current if any(data is not None for data in current.values()) else None
                staged.append(_StagedFile(kind=kind, file_name=new_name, contents=contents, backup=backup))
        return staged

    async def _write_contents(self, process_id: str, kind: TaskKind, file_name: str, contents: TaskContent) -> None:
        await self.artifact_store.write_task(process_id, kind, file_name, contents)
        for variant in kind.all_variants:
            if contents.get(variant) is None:
                await self.artifact_store.delete(process_id, file_name, variant)

    async def _restore(self, process_id: str, written: List[_StagedFile]) -> None:
        """Undo staged writes. Errors are logged, the original failure is what gets raised."""
        for staged in reversed(written):
            try:
                if staged.backup is not None:
                    await self._write_contents(process_id, staged.kind, staged.file_name, staged.backup)
                else:
                    await self.artifact_store.delete_task(process_id, staged.kind, staged.file_name)
            except Exception as e:
                self.logger.error(
                    "Failed to restore draft task files",
                    process_id=process_id,
                    file_name=staged.file_name,
                    error=str(e),
                )

    async def _protected_file_names(
        self, process_id: str, kind: TaskKind, names: Set[str], version_ids: List[str]
    ) -> Set[str]:
        """Names among ``names`` that a committed version references."""
        if not any(is_versioned_file_name(name, version_ids) for name in names):
            return set()

        protected: Set[str] = set()
        try:
            for version in await self.lineage_store.list_versions(process_id):
                bpmn = await self.lineage_store.get_version_bpmn(process_id, version.version_id)
                protected.update(get_used_file_names(bpmn, kind))
        except NotFoundError as e:
            # without the full lineage every versioned name has to be kept
            self.logger.warning(
                "Could not read version lineage, keeping versioned draft files",
                process_id=process_id,
                error=str(e),
            )
            return {name for name in names if is_versioned_file_name(name, version_ids)}
        return protected & names

    async def select_as_latest_version(self, process_id: str, version_id: str) -> RollbackResult:
        """Make ``version_id`` the new editable draft of the process."""
        async with self.locks.acquire(process_id):
            process = await self.lineage_store.get_process(process_id)
            version_bpmn = await self.lineage_store.get_version_bpmn(process_id, version_id)

            self.logger.info("Rolling back process draft", process_id=process_id, version_id=version_id)

            version_ids = [version.version_id for version in process.versions]
            editable = convert_to_editable_bpmn(version_bpmn, version_ids)
            staged = await self._stage(process_id, editable)

            written: List[_StagedFile] = []
            try:
                for item in staged:
                    written.append(item)
                    await self._write_contents(process_id, item.kind, item.file_name, item.contents)
                await self.lineage_store.replace_draft(process_id, editable.bpmn)

            except Exception as e:
                self.logger.error(
                    "Rollback failed before the draft swap, restoring draft files",
                    process_id=process_id,
                    version_id=version_id,
                    error=str(e),
                )
                await self._restore(process_id, written)
                if isinstance(e, StorageWriteError):
                    raise
                raise StorageWriteError(f"Rollback to {version_id} failed: {e}", process_id=process_id) from e

            result = RollbackResult(
                process_id=process_id,
                version_id=version_id,
                bpmn=editable.bpmn,
                changed_user_task_file_names=editable.changed_user_task_file_names,
                changed_script_task_file_names=editable.changed_script_task_file_names,
            )

            if self.reclaim_artifacts:
                await self._reclaim(process_id, process.bpmn, editable.bpmn, version_ids, result)

            self.logger.info(
                "Process draft rolled back",
                process_id=process_id,
                version_id=version_id,
                deleted=len(result.deleted_file_names),
            )
            return result

    async def _reclaim(
        self, process_id: str, old_bpmn: str, new_bpmn: str, version_ids: List[str], result: RollbackResult
    ) -> None:
        """Delete files only the replaced draft used. Failures leave orphans, not errors."""
        for kind in TaskKind:
            old_names = set(get_used_file_names(old_bpmn, kind))
            stale = old_names - set(get_used_file_names(new_bpmn, kind))
            stale -= await self._protected_file_names(process_id, kind, stale, version_ids)

            for file_name in sorted(stale):
                try:
                    await self.artifact_store.delete_task(process_id, kind, file_name)
                    result.deleted_file_names.append(file_name)
                except StorageWriteError as e:
                    self.logger.warning(
                        "Failed to reclaim replaced draft task files",
                        process_id=process_id,
                        file_name=file_name,
                        error=str(e),
                    )
                    result.reclaim_errors.append(file_name)
