"""SQLAlchemy backed lineage store."""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import (
    DateTime, ForeignKey, Integer, MetaData, String, Text, UniqueConstraint, delete, select
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from flowvault.exceptions import (
    ConflictError,
    ProcessNotFoundError,
    StorageWriteError,
    VersionConflictError,
    VersionNotFoundError,
)

from .lineage import LineageStore
from .models import ProcessRecord, VersionMetadata

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for lineage tables."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


class ProcessModel(Base):
    """Process with its editable draft."""

    __tablename__ = "processes"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    bpmn: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


class ProcessVersionModel(Base):
    """Committed process version. Rows are never updated."""

    __tablename__ = "process_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    process_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("processes.id", ondelete="CASCADE"), nullable=False
    )
    version_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    based_on: Mapped[Optional[str]] = mapped_column(String(255))
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bpmn: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("process_id", "version_id", name="uq_process_versions_process_version"),
    )

    def to_metadata(self) -> VersionMetadata:
        return VersionMetadata(
            version_id=self.version_id,
            name=self.name,
            description=self.description,
            based_on=self.based_on,
            created_on=self.created_on,
        )


class SqlLineageStore(LineageStore):
    """Lineage store on an async SQLAlchemy engine."""

    def __init__(self, database_url: str, echo: bool = False, engine: Optional[AsyncEngine] = None):
        self.database_url = database_url
        self.engine = engine or create_async_engine(database_url, echo=echo, pool_pre_ping=True)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.logger = logger.bind(component="sql_lineage_store")

    async def initialize(self) -> None:
        """Create lineage tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.logger.info("Lineage tables ready")

    async def close(self) -> None:
        await self.engine.dispose()

    async def _load(self, session: AsyncSession, process_id: str) -> ProcessModel:
        process = await session.get(ProcessModel, process_id)
        if process is None:
            raise ProcessNotFoundError(process_id)
        return process

    async def _version_rows(self, session: AsyncSession, process_id: str) -> List[ProcessVersionModel]:
        result = await session.execute(
            select(ProcessVersionModel)
            .where(ProcessVersionModel.process_id == process_id)
            .order_by(ProcessVersionModel.id)
        )
        return list(result.scalars())

    async def create_process(self, process_id: str, bpmn: str) -> ProcessRecord:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    if await session.get(ProcessModel, process_id) is not None:
                        raise ConflictError(
                            f"Process {process_id} already exists", {"process_id": process_id}
                        )
                    session.add(ProcessModel(id=process_id, bpmn=bpmn))
        except IntegrityError as e:
            raise ConflictError(f"Process {process_id} already exists", {"process_id": process_id}) from e
        except SQLAlchemyError as e:
            self.logger.error("Failed to create process", process_id=process_id, error=str(e))
            raise StorageWriteError(f"Failed to create process: {e}", process_id=process_id) from e

        self.logger.info("Created process", process_id=process_id)
        return ProcessRecord(id=process_id, bpmn=bpmn)

    async def get_process(self, process_id: str) -> ProcessRecord:
        async with self.session_maker() as session:
            process = await self._load(session, process_id)
            rows = await self._version_rows(session, process_id)
            return ProcessRecord(
                id=process.id,
                bpmn=process.bpmn,
                versions=[row.to_metadata() for row in rows],
            )

    async def list_processes(self) -> List[str]:
        async with self.session_maker() as session:
            result = await session.execute(select(ProcessModel.id).order_by(ProcessModel.id))
            return list(result.scalars())

    async def delete_process(self, process_id: str) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await self._load(session, process_id)
                await session.execute(
                    delete(ProcessVersionModel).where(ProcessVersionModel.process_id == process_id)
                )
                await session.execute(delete(ProcessModel).where(ProcessModel.id == process_id))
        self.logger.info("Deleted process", process_id=process_id)

    async def append_version(
        self,
        process_id: str,
        metadata: VersionMetadata,
        bpmn: str,
        draft: Optional[str] = None,
    ) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    process = await self._load(session, process_id)
                    existing = await session.execute(
                        select(ProcessVersionModel.id).where(
                            ProcessVersionModel.process_id == process_id,
                            ProcessVersionModel.version_id == metadata.version_id,
                        )
                    )
                    if existing.first() is not None:
                        raise VersionConflictError(
                            f"Version {metadata.version_id} already exists for process {process_id}",
                            {"process_id": process_id, "version_id": metadata.version_id},
                        )

                    session.add(ProcessVersionModel(
                        process_id=process_id,
                        version_id=metadata.version_id,
                        name=metadata.name,
                        description=metadata.description,
                        based_on=metadata.based_on,
                        created_on=metadata.created_on,
                        bpmn=bpmn,
                    ))
                    if draft is not None:
                        process.bpmn = draft

        except IntegrityError as e:
            raise VersionConflictError(
                f"Version {metadata.version_id} already exists for process {process_id}",
                {"process_id": process_id, "version_id": metadata.version_id},
            ) from e
        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to append version",
                process_id=process_id,
                version_id=metadata.version_id,
                error=str(e),
            )
            raise StorageWriteError(f"Failed to append version: {e}", process_id=process_id) from e

        self.logger.info("Appended version", process_id=process_id, version_id=metadata.version_id)

    async def get_version_bpmn(self, process_id: str, version_id: str) -> str:
        async with self.session_maker() as session:
            await self._load(session, process_id)
            result = await session.execute(
                select(ProcessVersionModel.bpmn).where(
                    ProcessVersionModel.process_id == process_id,
                    ProcessVersionModel.version_id == version_id,
                )
            )
            bpmn = result.scalar_one_or_none()
            if bpmn is None:
                raise VersionNotFoundError(process_id, version_id)
            return bpmn

    async def replace_draft(self, process_id: str, bpmn: str) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    process = await self._load(session, process_id)
                    process.bpmn = bpmn
        except SQLAlchemyError as e:
            self.logger.error("Failed to replace draft", process_id=process_id, error=str(e))
            raise StorageWriteError(f"Failed to replace draft: {e}", process_id=process_id) from e

        self.logger.debug("Replaced draft", process_id=process_id)
