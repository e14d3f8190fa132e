"""Test lineage stores and version models."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from pydantic import ValidationError

from flowvault.exceptions import (
    ConflictError,
    ProcessNotFoundError,
    VersionConflictError,
    VersionNotFoundError,
)
from flowvault.history import (
    InMemoryLineageStore,
    ProcessRecord,
    SqlLineageStore,
    VersionMetadata,
)

from conftest import build_bpmn


def _metadata(version_id: str, based_on=None) -> VersionMetadata:
    return VersionMetadata(
        version_id=version_id,
        name=f"Version {version_id}",
        based_on=based_on,
        created_on=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Each lineage store implementation, initialized."""
    if request.param == "memory":
        lineage = InMemoryLineageStore()
    else:
        lineage = SqlLineageStore(f"sqlite+aiosqlite:///{tmp_path / 'lineage.db'}")
    await lineage.initialize()
    yield lineage
    await lineage.close()


@pytest.mark.unit
class TestVersionMetadata:
    """Test version metadata model."""

    def test_initial_version(self):
        assert _metadata("v1").is_initial_version()
        assert not _metadata("v2", based_on="v1").is_initial_version()

    def test_frozen(self):
        metadata = _metadata("v1")
        with pytest.raises(ValidationError):
            metadata.name = "changed"

    @pytest.mark.parametrize("version_id", ["", "  ", "v 1", "v1/2"])
    def test_invalid_version_id(self, version_id):
        with pytest.raises(ValidationError):
            _metadata(version_id)

    def test_process_record_lookup(self):
        record = ProcessRecord(id="p1", bpmn="<x/>", versions=[_metadata("v1"), _metadata("v2", "v1")])

        assert record.has_version("v2")
        assert not record.has_version("v3")
        assert record.get_version("v2").based_on == "v1"
        assert record.get_version("v3") is None
        assert record.latest_version.version_id == "v2"
        assert ProcessRecord(id="p2", bpmn="<x/>").latest_version is None


@pytest.mark.integration
class TestLineageStore:
    """Behaviour shared by all lineage stores."""

    @pytest.mark.asyncio
    async def test_create_and_get_process(self, store):
        draft = build_bpmn(user_tasks={"T1": "formA"})
        record = await store.create_process("p1", draft)

        assert record.id == "p1"
        assert record.versions == []

        loaded = await store.get_process("p1")
        assert loaded.bpmn == draft
        assert await store.list_processes() == ["p1"]

    @pytest.mark.asyncio
    async def test_duplicate_process(self, store):
        await store.create_process("p1", build_bpmn())
        with pytest.raises(ConflictError):
            await store.create_process("p1", build_bpmn())

    @pytest.mark.asyncio
    async def test_unknown_process(self, store):
        with pytest.raises(ProcessNotFoundError):
            await store.get_process("missing")
        with pytest.raises(ProcessNotFoundError):
            await store.replace_draft("missing", build_bpmn())

    @pytest.mark.asyncio
    async def test_append_versions_in_order(self, store):
        await store.create_process("p1", build_bpmn())
        await store.append_version("p1", _metadata("v1"), build_bpmn(version_id="v1"))
        await store.append_version("p1", _metadata("v2", "v1"), build_bpmn(version_id="v2"))

        versions = await store.list_versions("p1")
        assert [version.version_id for version in versions] == ["v1", "v2"]
        assert versions[1].based_on == "v1"
        assert versions[1].name == "Version v2"
        assert await store.get_version_bpmn("p1", "v2") == build_bpmn(version_id="v2")

    @pytest.mark.asyncio
    async def test_append_replaces_draft(self, store):
        await store.create_process("p1", build_bpmn())
        await store.append_version(
            "p1", _metadata("v1"), build_bpmn(version_id="v1"), draft=build_bpmn(based_on="v1")
        )

        assert await store.get_draft("p1") == build_bpmn(based_on="v1")

    @pytest.mark.asyncio
    async def test_append_without_draft_keeps_draft(self, store):
        draft = build_bpmn(user_tasks={"T1": "formA"})
        await store.create_process("p1", draft)
        await store.append_version("p1", _metadata("v1"), build_bpmn(version_id="v1"))

        assert await store.get_draft("p1") == draft

    @pytest.mark.asyncio
    async def test_duplicate_version(self, store):
        draft = build_bpmn()
        await store.create_process("p1", draft)
        await store.append_version("p1", _metadata("v1"), build_bpmn(version_id="v1"))

        with pytest.raises(VersionConflictError):
            await store.append_version(
                "p1", _metadata("v1"), build_bpmn(version_id="v1"), draft=build_bpmn(based_on="v1")
            )

        assert len(await store.list_versions("p1")) == 1
        assert await store.get_draft("p1") == draft

    @pytest.mark.asyncio
    async def test_missing_version_document(self, store):
        await store.create_process("p1", build_bpmn())
        with pytest.raises(VersionNotFoundError):
            await store.get_version_bpmn("p1", "v1")

    @pytest.mark.asyncio
    async def test_replace_draft(self, store):
        await store.create_process("p1", build_bpmn())
        await store.replace_draft("p1", build_bpmn(based_on="v7"))

        assert await store.get_draft("p1") == build_bpmn(based_on="v7")

    @pytest.mark.asyncio
    async def test_delete_process(self, store):
        await store.create_process("p1", build_bpmn())
        await store.append_version("p1", _metadata("v1"), build_bpmn(version_id="v1"))
        await store.delete_process("p1")

        assert await store.list_processes() == []
        with pytest.raises(ProcessNotFoundError):
            await store.get_version_bpmn("p1", "v1")

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        await store.create_process("p1", build_bpmn())
        record = await store.get_process("p1")
        record.versions.append(_metadata("v1"))

        assert await store.list_versions("p1") == []
