"""FlowVault - process version management engine."""

from flowvault.config import Settings, get_settings
from flowvault.engine import VersioningEngine
from flowvault.exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    ConflictError,
    FlowVaultError,
    InconsistentLineageError,
    NotFoundError,
    ProcessNotFoundError,
    SnapshotParseError,
    StorageReadError,
    StorageWriteError,
    VersionConflictError,
    VersionNotFoundError,
)

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "VersioningEngine",
    "ArtifactNotFoundError",
    "ConfigurationError",
    "ConflictError",
    "FlowVaultError",
    "InconsistentLineageError",
    "NotFoundError",
    "ProcessNotFoundError",
    "SnapshotParseError",
    "StorageReadError",
    "StorageWriteError",
    "VersionConflictError",
    "VersionNotFoundError",
]
