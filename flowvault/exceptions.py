"""Base exceptions for FlowVault."""

from typing import Any, Dict, Optional


class FlowVaultError(Exception):
    """Base exception for all FlowVault errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(FlowVaultError):
    """Raised when there's a configuration error."""
    pass


class NotFoundError(FlowVaultError):
    """Raised when a resource is not found."""
    pass


class ProcessNotFoundError(NotFoundError):
    """Raised when a process is unknown to the lineage store."""

    def __init__(self, process_id: str):
        super().__init__(f"Process {process_id} not found", {"process_id": process_id})
        self.process_id = process_id


class VersionNotFoundError(NotFoundError):
    """Raised when a version snapshot cannot be found."""

    def __init__(self, process_id: str, version_id: str):
        super().__init__(
            f"Version {version_id} of process {process_id} not found",
            {"process_id": process_id, "version_id": version_id},
        )
        self.process_id = process_id
        self.version_id = version_id


class ArtifactNotFoundError(NotFoundError):
    """Raised when an artifact variant does not exist."""

    def __init__(self, key: str):
        super().__init__(f"Artifact not found: {key}", {"key": key})
        self.key = key


class StorageReadError(FlowVaultError):
    """Raised when an artifact cannot be read for a reason other than being missing."""

    def __init__(self, message: str, process_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.process_id = process_id
        if process_id is not None:
            self.details["process_id"] = process_id


class StorageWriteError(FlowVaultError):
    """Raised when an artifact or snapshot write fails."""

    def __init__(self, message: str, process_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.process_id = process_id
        if process_id is not None:
            self.details["process_id"] = process_id


class InconsistentLineageError(FlowVaultError):
    """Raised when a based-on pointer references a version the process does not list."""

    def __init__(self, process_id: str, based_on: str):
        super().__init__(
            f"Process {process_id} is based on unknown version {based_on}",
            {"process_id": process_id, "based_on": based_on},
        )
        self.process_id = process_id
        self.based_on = based_on


class ConflictError(FlowVaultError):
    """Raised when a resource already exists."""
    pass


class VersionConflictError(ConflictError):
    """Raised when a version id is already taken or a snapshot is already versioned."""
    pass


class SnapshotParseError(FlowVaultError):
    """Raised when a process document cannot be parsed."""
    pass
