"""Process version history: lineage, version cutting and rollback."""

from .lineage import InMemoryLineageStore, LineageStore
from .locks import ProcessLockManager
from .models import (
    OrphanSweepResult,
    ProcessRecord,
    RollbackResult,
    VersionCutResult,
    VersionMetadata,
)
from .rollback import EditableBpmn, RollbackManager, convert_to_editable_bpmn
from .sql import SqlLineageStore
from .version_control import ProcessVersionManager

__all__ = [
    "InMemoryLineageStore",
    "LineageStore",
    "SqlLineageStore",
    "ProcessLockManager",
    "OrphanSweepResult",
    "ProcessRecord",
    "RollbackResult",
    "VersionCutResult",
    "VersionMetadata",
    "EditableBpmn",
    "RollbackManager",
    "convert_to_editable_bpmn",
    "ProcessVersionManager",
]
