"""Versioning engine wiring stores and orchestrators together."""

from typing import Optional

import structlog

from flowvault.artifacts import (
    ArtifactBackend,
    ArtifactStore,
    FileSystemBackend,
    InMemoryBackend,
    S3Backend,
)
from flowvault.config import Settings, get_settings
from flowvault.exceptions import ConfigurationError
from flowvault.history import (
    InMemoryLineageStore,
    LineageStore,
    ProcessLockManager,
    ProcessVersionManager,
    RollbackManager,
    SqlLineageStore,
)

logger = structlog.get_logger()


def create_artifact_backend(settings: Settings) -> ArtifactBackend:
    """Build the artifact backend selected in settings."""
    backend = settings.artifact_backend.lower()
    if backend == "memory":
        return InMemoryBackend()
    if backend == "filesystem":
        return FileSystemBackend(settings.artifact_path)
    if backend == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("s3_bucket is required for the s3 artifact backend")
        return S3Backend(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    raise ConfigurationError(f"Unknown artifact backend: {settings.artifact_backend}")


def create_lineage_store(settings: Settings) -> LineageStore:
    """Build the lineage store selected in settings."""
    backend = settings.lineage_backend.lower()
    if backend == "memory":
        return InMemoryLineageStore()
    if backend == "sql":
        return SqlLineageStore(settings.database_url, echo=settings.database_echo)
    raise ConfigurationError(f"Unknown lineage backend: {settings.lineage_backend}")


class VersioningEngine:
    """Owns the stores, the process locks and both orchestrators.

    Construct once at startup, call ``initialize`` before use and ``close``
    on shutdown (or use it as an async context manager).
    """

    def __init__(
        self,
        artifact_store: ArtifactStore,
        lineage_store: LineageStore,
        user_task_implementation: Optional[str] = None,
        reclaim_artifacts: bool = True,
    ):
        self.artifact_store = artifact_store
        self.lineage_store = lineage_store
        self.locks = ProcessLockManager()

        version_kwargs = {}
        if user_task_implementation:
            version_kwargs["user_task_implementation"] = user_task_implementation

        self.versions = ProcessVersionManager(
            lineage_store, artifact_store, locks=self.locks, **version_kwargs
        )
        self.rollback = RollbackManager(
            lineage_store, artifact_store, locks=self.locks, reclaim_artifacts=reclaim_artifacts
        )
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "VersioningEngine":
        settings = settings or get_settings()
        return cls(
            artifact_store=ArtifactStore(create_artifact_backend(settings)),
            lineage_store=create_lineage_store(settings),
            user_task_implementation=settings.user_task_implementation,
            reclaim_artifacts=settings.rollback_reclaim_artifacts,
        )

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.lineage_store.initialize()
        self._initialized = True
        logger.info(
            "Versioning engine initialized",
            artifact_backend=type(self.artifact_store.backend).__name__,
            lineage_store=type(self.lineage_store).__name__,
        )

    async def close(self) -> None:
        await self.artifact_store.close()
        await self.lineage_store.close()
        self._initialized = False
        logger.info("Versioning engine closed")

    async def __aenter__(self) -> "VersioningEngine":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
