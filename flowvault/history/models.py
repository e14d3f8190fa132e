"""Process version data models."""

import re
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VersionMetadata(BaseModel):
    """Immutable record of a committed process version."""

    version_id: str = Field(..., description="Version id, unique per process")
    name: Optional[str] = Field(default=None, description="Human readable version name")
    description: Optional[str] = Field(default=None, description="Version description")
    based_on: Optional[str] = Field(default=None, description="Version this one was cut from")
    created_on: datetime = Field(..., description="Creation timestamp")

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator('version_id')
    @classmethod
    def validate_version_id(cls, v):
        """Version ids become file name suffixes and storage key segments."""
        if not v or not v.strip():
            raise ValueError("Version id cannot be empty")
        if not re.match(r'^[A-Za-z0-9_.\-]+$', v):
            raise ValueError("Version id contains invalid characters")
        return v

    def is_initial_version(self) -> bool:
        """Check if this is an initial version (no predecessor)."""
        return self.based_on is None


class ProcessRecord(BaseModel):
    """A process with its version lineage and editable draft."""

    id: str = Field(..., description="Process id")
    versions: List[VersionMetadata] = Field(default_factory=list, description="Versions in creation order")
    bpmn: str = Field(..., description="Editable draft document")

    model_config = ConfigDict(from_attributes=True)

    def has_version(self, version_id: str) -> bool:
        return any(version.version_id == version_id for version in self.versions)

    def get_version(self, version_id: str) -> Optional[VersionMetadata]:
        for version in self.versions:
            if version.version_id == version_id:
                return version
        return None

    @property
    def latest_version(self) -> Optional[VersionMetadata]:
        return self.versions[-1] if self.versions else None


class VersionCutResult(BaseModel):
    """Outcome of cutting a version from the draft."""

    process_id: str
    version_id: str
    bpmn: str = Field(..., description="Version document with resolved file references")
    metadata: Optional[VersionMetadata] = Field(
        default=None, description="Appended metadata, None for dry runs and skipped versions"
    )
    user_task_file_names: List[str] = Field(default_factory=list)
    script_task_file_names: List[str] = Field(default_factory=list)
    written_file_names: List[str] = Field(
        default_factory=list, description="File names that received new artifacts"
    )
    created: bool = Field(default=False, description="Whether a new version was committed")
    dry_run: bool = False


class RollbackResult(BaseModel):
    """Outcome of promoting a version to the editable draft."""

    process_id: str
    version_id: str
    bpmn: str = Field(..., description="New draft document")
    changed_user_task_file_names: Dict[str, str] = Field(default_factory=dict)
    changed_script_task_file_names: Dict[str, str] = Field(default_factory=dict)
    deleted_file_names: List[str] = Field(default_factory=list)
    reclaim_errors: List[str] = Field(default_factory=list)


class OrphanSweepResult(BaseModel):
    """Artifacts found (and removed unless dry run) by the orphan sweep."""

    process_id: str
    user_task_file_names: List[str] = Field(default_factory=list)
    script_task_file_names: List[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.user_task_file_names) + len(self.script_task_file_names)
