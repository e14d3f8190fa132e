"""Process version control for FlowVault.

Cutting a version freezes the editable draft into an immutable document.
Task files referenced by the draft are stored under versioned names
(``{file_name}-{version_id}``) unless the version the draft is based on
already holds byte-identical content for the same task, in which case its
file is reused. Dedup only looks at the direct predecessor.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import structlog

from flowvault.artifacts import ArtifactStore, TaskKind
from flowvault.artifacts.store import TaskContent, checksum
from flowvault.bpmn import (
    USER_TASK_IMPLEMENTATION,
    BpmnDiff,
    BpmnDocument,
    BpmnSource,
    are_versions_equal,
    diff,
    get_definitions_version_information,
    get_task_file_name_mapping,
    get_used_file_names,
    set_definitions_version_information,
    set_task_file_name,
    to_bpmn_object,
    to_bpmn_xml,
    versioned_file_name,
)
from flowvault.exceptions import (
    InconsistentLineageError,
    NotFoundError,
    SnapshotParseError,
    StorageWriteError,
    VersionConflictError,
    VersionNotFoundError,
)

from .lineage import LineageStore
from .locks import ProcessLockManager
from .models import OrphanSweepResult, ProcessRecord, VersionCutResult, VersionMetadata

logger = structlog.get_logger()


@dataclass
class PendingWrite:
    """Task content that has to be stored under a new versioned name."""
    kind: TaskKind
    file_name: str
    contents: TaskContent


@dataclass
class TaskVersioningPlan:
    """Resolved file names and pending writes for one task kind."""
    kind: TaskKind
    file_names: List[str] = field(default_factory=list)
    writes: List[PendingWrite] = field(default_factory=list)
    reused: Dict[str, str] = field(default_factory=dict)  # task id -> reused file name


class ProcessVersionManager:
    """Manager for process version control operations."""

    def __init__(
        self,
        lineage_store: LineageStore,
        artifact_store: ArtifactStore,
        locks: Optional[ProcessLockManager] = None,
        user_task_implementation: str = USER_TASK_IMPLEMENTATION,
    ):
        self.lineage_store = lineage_store
        self.artifact_store = artifact_store
        self.locks = locks or ProcessLockManager()
        self.user_task_implementation = user_task_implementation
        self.logger = logger.bind(component="process_version_manager")

    # Lineage

    async def get_local_version_bpmn(
        self, process: ProcessRecord, version_id: str
    ) -> Optional[BpmnDocument]:
        """Load a version's document if the process knows the version locally.

        Returns None when the process has no versions, does not list the
        version, or the listed version's document cannot be read.
        """
        if not process.versions:
            return None

        if not process.has_version(version_id):
            return None

        try:
            bpmn = await self.lineage_store.get_version_bpmn(process.id, version_id)
            return to_bpmn_object(bpmn)
        except (VersionNotFoundError, SnapshotParseError) as e:
            self.logger.warning(
                "Based-on version is listed but unreadable, skipping dedup",
                process_id=process.id,
                version_id=version_id,
                error=str(e),
            )
            return None

    async def _resolve_based_on(
        self, process: ProcessRecord, based_on: Optional[str]
    ) -> Optional[BpmnDocument]:
        if based_on is None:
            return None
        if not process.has_version(based_on):
            raise InconsistentLineageError(process.id, based_on)
        return await self.get_local_version_bpmn(process, based_on)

    async def _load_based_on(
        self, process: ProcessRecord, based_on: Optional[str]
    ) -> Optional[BpmnDocument]:
        try:
            return await self._resolve_based_on(process, based_on)
        except InconsistentLineageError as e:
            self.logger.warning(
                "Draft is based on an unknown version, skipping dedup",
                process_id=process.id,
                based_on=e.based_on,
            )
            return None

    # Planning and applying

    def _is_versionable(self, kind: TaskKind, implementation: Optional[str]) -> bool:
        if kind is TaskKind.USER_TASK:
            return implementation == self.user_task_implementation
        return True

    async def _plan_task_versions(
        self,
        process: ProcessRecord,
        kind: TaskKind,
        version_id: str,
        document: BpmnDocument,
        based_on_document: Optional[BpmnDocument],
    ) -> TaskVersioningPlan:
        """Resolve file names for all tasks of a kind and rewrite their references.

        Only reads from the artifact store; writes are collected in the plan.
        A referenced file without any stored variant raises ``NotFoundError``.
        """
        plan = TaskVersioningPlan(kind=kind)
        mapping = get_task_file_name_mapping(document, kind)
        based_on_mapping = (
            get_task_file_name_mapping(based_on_document, kind) if based_on_document else {}
        )

        for task_id, info in mapping.items():
            if not info.file_name or not self._is_versionable(kind, info.implementation):
                continue

            version_file_name = versioned_file_name(info.file_name, version_id)
            ancestor = based_on_mapping.get(task_id)

            if ancestor is not None and ancestor.file_name:
                contents, ancestor_contents = await asyncio.gather(
                    self.artifact_store.read_task(process.id, kind, info.file_name),
                    self.artifact_store.read_task(process.id, kind, ancestor.file_name),
                )
            else:
                contents = await self.artifact_store.read_task(process.id, kind, info.file_name)
                ancestor_contents = None

            if all(data is None for data in contents.values()):
                self.logger.error(
                    "Task references a file without stored content",
                    process_id=process.id,
                    task_id=task_id,
                    file_name=info.file_name,
                )
                raise NotFoundError(
                    f"No stored content for {kind.value} {task_id} file {info.file_name}",
                    {"process_id": process.id, "task_id": task_id, "file_name": info.file_name},
                )

            if ancestor_contents is not None and ancestor_contents == contents:
                version_file_name = ancestor.file_name
                plan.reused[task_id] = ancestor.file_name
            else:
                plan.writes.append(PendingWrite(kind=kind, file_name=version_file_name, contents=contents))

            set_task_file_name(
                document,
                kind,
                task_id,
                version_file_name,
                self.user_task_implementation if kind is TaskKind.USER_TASK else None,
            )
            plan.file_names.append(version_file_name)

        self.logger.debug(
            "Planned task versions",
            process_id=process.id,
            kind=kind.value,
            version_id=version_id,
            file_names=plan.file_names,
            reused=len(plan.reused),
            writes=len(plan.writes),
        )
        return plan

    async def _apply_plans(self, process_id: str, plans: List[TaskVersioningPlan]) -> List[str]:
        """Store all pending writes of the given plans. Any failure aborts the whole set."""
        written: List[str] = []
        done: Set[tuple] = set()
        for plan in plans:
            for pending in plan.writes:
                if (pending.kind, pending.file_name) in done:
                    continue
                try:
                    variants = await self.artifact_store.write_task(
                        process_id, pending.kind, pending.file_name, pending.contents
                    )
                except Exception as e:
                    self.logger.error(
                        "Failed to store versioned task files, aborting",
                        process_id=process_id,
                        file_name=pending.file_name,
                        orphaned=written,
                        error=str(e),
                    )
                    if isinstance(e, StorageWriteError):
                        raise
                    raise StorageWriteError(
                        f"Failed to store task files {pending.file_name}: {e}",
                        process_id=process_id,
                    ) from e
                done.add((pending.kind, pending.file_name))
                if not variants:
                    continue
                written.append(pending.file_name)
                self.logger.debug(
                    "Stored versioned task files",
                    process_id=process_id,
                    file_name=pending.file_name,
                    checksums={
                        variant.value: checksum(data) for variant, data in pending.contents.items()
                    },
                )
        return written

    async def _version_tasks(
        self,
        process: ProcessRecord,
        kind: TaskKind,
        version_id: str,
        bpmn: BpmnDocument,
        dry_run: bool,
    ) -> List[str]:
        info = get_definitions_version_information(bpmn)
        based_on_document = await self._load_based_on(process, info.version_based_on)
        plan = await self._plan_task_versions(process, kind, version_id, bpmn, based_on_document)
        if not dry_run:
            await self._apply_plans(process.id, [plan])
        return plan.file_names

    async def version_user_tasks(
        self,
        process: ProcessRecord,
        version_id: str,
        bpmn: BpmnDocument,
        dry_run: bool = False,
    ) -> List[str]:
        """Version the HTML user tasks of ``bpmn`` in place and return the resolved file names."""
        return await self._version_tasks(process, TaskKind.USER_TASK, version_id, bpmn, dry_run)

    async def version_script_tasks(
        self,
        process: ProcessRecord,
        version_id: str,
        bpmn: BpmnDocument,
        dry_run: bool = False,
    ) -> List[str]:
        """Version the script tasks of ``bpmn`` in place and return the resolved file names."""
        return await self._version_tasks(process, TaskKind.SCRIPT_TASK, version_id, bpmn, dry_run)

    # Versions

    async def create_version(
        self,
        process_id: str,
        version_id: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        dry_run: bool = False,
        skip_if_unchanged: bool = False,
    ) -> VersionCutResult:
        """Cut a new version from the process draft.

        Both task kinds are planned before any file is written. Files are
        written before the version is appended, and the draft's based-on
        pointer moves to the new version in the same lineage update. With
        ``skip_if_unchanged`` a draft identical to its based-on version
        returns that version instead of creating a new one.
        """
        async with self.locks.acquire(process_id):
            process = await self.lineage_store.get_process(process_id)
            document = to_bpmn_object(process.bpmn).copy()
            draft_info = get_definitions_version_information(document)

            if draft_info.version_id:
                raise VersionConflictError(
                    f"Draft of process {process_id} already carries version {draft_info.version_id}",
                    {"process_id": process_id, "version_id": draft_info.version_id},
                )

            created_on = datetime.now(timezone.utc)
            version_id = version_id or str(int(created_on.timestamp() * 1000))
            if process.has_version(version_id):
                raise VersionConflictError(
                    f"Version {version_id} already exists for process {process_id}",
                    {"process_id": process_id, "version_id": version_id},
                )

            metadata = VersionMetadata(
                version_id=version_id,
                name=name,
                description=description,
                based_on=draft_info.version_based_on,
                created_on=created_on,
            )

            self.logger.info(
                "Creating process version",
                process_id=process_id,
                version_id=version_id,
                based_on=metadata.based_on,
                dry_run=dry_run,
            )

            set_definitions_version_information(
                document,
                version_id=version_id,
                version_name=name,
                version_description=description,
                version_based_on=metadata.based_on,
                version_created_on=created_on.isoformat(),
            )

            based_on_document = await self._load_based_on(process, metadata.based_on)
            user_plan = await self._plan_task_versions(
                process, TaskKind.USER_TASK, version_id, document, based_on_document
            )
            script_plan = await self._plan_task_versions(
                process, TaskKind.SCRIPT_TASK, version_id, document, based_on_document
            )

            if (
                skip_if_unchanged
                and based_on_document is not None
                and are_versions_equal(document, based_on_document)
            ):
                self.logger.info(
                    "Draft is unchanged from its based-on version, no version created",
                    process_id=process_id,
                    based_on=metadata.based_on,
                )
                return VersionCutResult(
                    process_id=process_id,
                    version_id=metadata.based_on,
                    bpmn=to_bpmn_xml(based_on_document),
                    user_task_file_names=user_plan.file_names,
                    script_task_file_names=script_plan.file_names,
                    created=False,
                    dry_run=dry_run,
                )

            version_bpmn = to_bpmn_xml(document)
            if dry_run:
                return VersionCutResult(
                    process_id=process_id,
                    version_id=version_id,
                    bpmn=version_bpmn,
                    user_task_file_names=user_plan.file_names,
                    script_task_file_names=script_plan.file_names,
                    written_file_names=sorted({w.file_name for w in user_plan.writes + script_plan.writes}),
                    created=False,
                    dry_run=True,
                )

            written = await self._apply_plans(process_id, [user_plan, script_plan])

            draft = set_definitions_version_information(process.bpmn, version_based_on=version_id)
            await self.lineage_store.append_version(process_id, metadata, version_bpmn, draft=draft)

            self.logger.info(
                "Process version created",
                process_id=process_id,
                version_id=version_id,
                written=len(written),
                reused=len(user_plan.reused) + len(script_plan.reused),
            )

            return VersionCutResult(
                process_id=process_id,
                version_id=version_id,
                bpmn=version_bpmn,
                metadata=metadata,
                user_task_file_names=user_plan.file_names,
                script_task_file_names=script_plan.file_names,
                written_file_names=written,
                created=True,
            )

    async def update_process_version_based_on(self, process_id: str, version_based_on: str) -> str:
        """Point the draft's based-on stamp at ``version_based_on`` and return the new draft."""
        async with self.locks.acquire(process_id):
            process = await self.lineage_store.get_process(process_id)
            if not process.has_version(version_based_on):
                raise VersionNotFoundError(process_id, version_based_on)

            bpmn = set_definitions_version_information(process.bpmn, version_based_on=version_based_on)
            await self.lineage_store.replace_draft(process_id, bpmn)
            return bpmn

    async def list_versions(self, process_id: str) -> List[VersionMetadata]:
        return await self.lineage_store.list_versions(process_id)

    async def get_version_bpmn(self, process_id: str, version_id: str) -> str:
        return await self.lineage_store.get_version_bpmn(process_id, version_id)

    async def compare_versions(self, process_id: str, version_from: str, version_to: str) -> BpmnDiff:
        """Structural diff between two committed versions."""
        bpmn_from, bpmn_to = await asyncio.gather(
            self.lineage_store.get_version_bpmn(process_id, version_from),
            self.lineage_store.get_version_bpmn(process_id, version_to),
        )
        result = diff(bpmn_from, bpmn_to)
        self.logger.debug(
            "Compared process versions",
            process_id=process_id,
            version_from=version_from,
            version_to=version_to,
            summary=result.summary(),
        )
        return result

    async def is_draft_unchanged(self, process_id: str, bpmn: Optional[BpmnSource] = None) -> bool:
        """Check whether the draft (as it would be versioned) equals its based-on version."""
        process = await self.lineage_store.get_process(process_id)
        document = to_bpmn_object(bpmn if bpmn is not None else process.bpmn).copy()
        based_on = get_definitions_version_information(document).version_based_on
        based_on_document = await self._load_based_on(process, based_on)
        if based_on_document is None:
            return False

        # resolve file names the way a version cut would, without writing
        await self.version_user_tasks(process, "unversioned", document, dry_run=True)
        await self.version_script_tasks(process, "unversioned", document, dry_run=True)
        return are_versions_equal(document, based_on_document)

    # Maintenance

    async def collect_orphaned_artifacts(
        self, process_id: str, dry_run: bool = False
    ) -> OrphanSweepResult:
        """Delete task files referenced by neither the draft nor any committed version.

        Such files are left behind by aborted version cuts and rollbacks.
        """
        async with self.locks.acquire(process_id):
            process = await self.lineage_store.get_process(process_id)
            documents = [process.bpmn]
            for version in process.versions:
                documents.append(
                    await self.lineage_store.get_version_bpmn(process_id, version.version_id)
                )

            result = OrphanSweepResult(process_id=process_id, dry_run=dry_run)
            for kind in TaskKind:
                referenced: Set[str] = set()
                for document in documents:
                    referenced.update(get_used_file_names(document, kind))

                stored = await self.artifact_store.list_file_names(process_id, kind)
                orphans = sorted(stored - referenced)
                if not dry_run:
                    for file_name in orphans:
                        await self.artifact_store.delete_task(process_id, kind, file_name)

                if kind is TaskKind.USER_TASK:
                    result.user_task_file_names = orphans
                else:
                    result.script_task_file_names = orphans

            self.logger.info(
                "Collected orphaned task files",
                process_id=process_id,
                count=result.total,
                dry_run=dry_run,
            )
            return result
