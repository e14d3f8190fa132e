"""Pytest configuration and fixtures."""

from typing import Dict, Optional, Tuple, Union

import pytest

from flowvault.artifacts import ArtifactStore, ArtifactVariant, InMemoryBackend
from flowvault.bpmn import USER_TASK_IMPLEMENTATION
from flowvault.history import (
    InMemoryLineageStore,
    ProcessLockManager,
    ProcessVersionManager,
    RollbackManager,
)

UserTaskRef = Union[str, Tuple[str, Optional[str]]]

_HEADER = (
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" '
    'xmlns:bpmndi="http://www.omg.org/spec/BPMN/20100524/DI" '
    'xmlns:dc="http://www.omg.org/spec/DD/20100524/DC" '
    'xmlns:di="http://www.omg.org/spec/DD/20100524/DI" '
    'xmlns:fv="https://flowvault.dev/schema/bpmn" '
    'id="Definitions_1" targetNamespace="https://flowvault.dev/tests"{stamps}>'
)


def build_bpmn(
    user_tasks: Optional[Dict[str, UserTaskRef]] = None,
    script_tasks: Optional[Dict[str, str]] = None,
    based_on: Optional[str] = None,
    version_id: Optional[str] = None,
    start_x: int = 100,
) -> str:
    """Build a small order handling process.

    ``user_tasks`` maps task ids to a file name, or to ``(file_name, implementation)``
    for tasks that are not HTML backed.
    """
    stamps = ""
    if based_on:
        stamps += f' fv:versionBasedOn="{based_on}"'
    if version_id:
        stamps += f' fv:version="{version_id}"'

    tasks = []
    for task_id, task in (user_tasks or {}).items():
        if isinstance(task, tuple):
            file_name, implementation = task
        else:
            file_name, implementation = task, USER_TASK_IMPLEMENTATION
        attributes = f'id="{task_id}" name="Review {task_id}"'
        if implementation:
            attributes += f' implementation="{implementation}"'
        if file_name:
            attributes += f' fv:fileName="{file_name}"'
        tasks.append(f"<bpmn:userTask {attributes}/>")

    for task_id, file_name in (script_tasks or {}).items():
        tasks.append(
            f'<bpmn:scriptTask id="{task_id}" name="Compute {task_id}" fv:fileName="{file_name}"/>'
        )

    return "".join([
        _HEADER.format(stamps=stamps),
        '<bpmn:process id="Process_1" isExecutable="true">',
        '<bpmn:startEvent id="StartEvent_1" name="Order received"/>',
        *tasks,
        '<bpmn:endEvent id="EndEvent_1"/>',
        '<bpmn:sequenceFlow id="Flow_1" sourceRef="StartEvent_1" targetRef="EndEvent_1"/>',
        "</bpmn:process>",
        '<bpmndi:BPMNDiagram id="Diagram_1">',
        '<bpmndi:BPMNPlane id="Plane_1" bpmnElement="Process_1">',
        '<bpmndi:BPMNShape id="StartEvent_1_di" bpmnElement="StartEvent_1">',
        f'<dc:Bounds x="{start_x}" y="100" width="36" height="36"/>',
        "</bpmndi:BPMNShape>",
        '<bpmndi:BPMNEdge id="Flow_1_di" bpmnElement="Flow_1">',
        '<di:waypoint x="136" y="118"/><di:waypoint x="300" y="118"/>',
        "</bpmndi:BPMNEdge>",
        "</bpmndi:BPMNPlane>",
        "</bpmndi:BPMNDiagram>",
        "</bpmn:definitions>",
    ])


async def write_user_task(
    store: ArtifactStore, process_id: str, file_name: str, html: str, data: str
) -> None:
    await store.write(process_id, file_name, ArtifactVariant.HTML, html)
    await store.write(process_id, file_name, ArtifactVariant.JSON, data)


async def write_script_task(
    store: ArtifactStore,
    process_id: str,
    file_name: str,
    js: str,
    ts: str,
    xml: Optional[str] = None,
) -> None:
    await store.write(process_id, file_name, ArtifactVariant.JS, js)
    await store.write(process_id, file_name, ArtifactVariant.TS, ts)
    if xml is not None:
        await store.write(process_id, file_name, ArtifactVariant.XML, xml)


@pytest.fixture
def sample_bpmn():
    """Draft with one HTML user task and one script task."""
    return build_bpmn(user_tasks={"T1": "formA"}, script_tasks={"S1": "calc"})


@pytest.fixture
def artifact_store():
    """Artifact store on the in-memory backend."""
    return ArtifactStore(InMemoryBackend())


@pytest.fixture
def lineage_store():
    """In-memory lineage store."""
    return InMemoryLineageStore()


@pytest.fixture
def process_locks():
    return ProcessLockManager()


@pytest.fixture
def version_manager(lineage_store, artifact_store, process_locks):
    """Create ProcessVersionManager for testing."""
    return ProcessVersionManager(lineage_store, artifact_store, locks=process_locks)


@pytest.fixture
def rollback_manager(lineage_store, artifact_store, process_locks):
    """Create RollbackManager sharing the version manager's locks."""
    return RollbackManager(lineage_store, artifact_store, locks=process_locks)
