"""BPMN document parsing, serialization and version/task metadata access.

Version stamps are stored as extension attributes on ``bpmn:definitions``;
task implementation files are referenced through the ``fileName`` extension
attribute of ``bpmn:userTask`` and ``bpmn:scriptTask`` elements.
"""

import copy
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from flowvault.artifacts import TaskKind
from flowvault.exceptions import NotFoundError, SnapshotParseError

BPMN_NS = "http://www.omg.org/spec/BPMN/20100524/MODEL"
BPMNDI_NS = "http://www.omg.org/spec/BPMN/20100524/DI"
DC_NS = "http://www.omg.org/spec/DD/20100524/DC"
DI_NS = "http://www.omg.org/spec/DD/20100524/DI"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
FLOWVAULT_NS = "https://flowvault.dev/schema/bpmn"

for _prefix, _uri in (
    ("bpmn", BPMN_NS),
    ("bpmndi", BPMNDI_NS),
    ("dc", DC_NS),
    ("di", DI_NS),
    ("xsi", XSI_NS),
    ("fv", FLOWVAULT_NS),
):
    ET.register_namespace(_prefix, _uri)

USER_TASK_IMPLEMENTATION = "https://html.spec.whatwg.org/"

FILE_NAME_ATTR = f"{{{FLOWVAULT_NS}}}fileName"

_TASK_TAGS = {
    TaskKind.USER_TASK: f"{{{BPMN_NS}}}userTask",
    TaskKind.SCRIPT_TASK: f"{{{BPMN_NS}}}scriptTask",
}

# python field -> definitions attribute
_VERSION_ATTRIBUTES = {
    "version_id": f"{{{FLOWVAULT_NS}}}version",
    "version_name": f"{{{FLOWVAULT_NS}}}versionName",
    "version_description": f"{{{FLOWVAULT_NS}}}versionDescription",
    "version_based_on": f"{{{FLOWVAULT_NS}}}versionBasedOn",
    "version_created_on": f"{{{FLOWVAULT_NS}}}versionCreatedOn",
}

IDENTITY_FIELDS = ("version_id", "version_name", "version_description", "version_created_on")


class BpmnDocument:
    """Parsed BPMN document."""

    def __init__(self, root: ET.Element):
        if root.tag != f"{{{BPMN_NS}}}definitions":
            raise SnapshotParseError(f"Expected bpmn:definitions root, got {root.tag}")
        self.root = root

    def copy(self) -> "BpmnDocument":
        return BpmnDocument(copy.deepcopy(self.root))

    def find_by_id(self, element_id: str) -> Optional[ET.Element]:
        for element in self.root.iter():
            if element.get("id") == element_id:
                return element
        return None

    def __repr__(self) -> str:
        return f"BpmnDocument(id={self.root.get('id')!r})"


BpmnSource = Union[str, bytes, BpmnDocument]


@dataclass
class VersionInformation:
    """Version stamp stored in a document's definitions element."""
    version_id: Optional[str] = None
    version_name: Optional[str] = None
    version_description: Optional[str] = None
    version_based_on: Optional[str] = None
    version_created_on: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


class TaskFileInfo(NamedTuple):
    """File reference of a task."""
    file_name: Optional[str]
    implementation: Optional[str]


def to_bpmn_object(bpmn: BpmnSource) -> BpmnDocument:
    """Parse BPMN XML into a document. Documents are returned unchanged."""
    if isinstance(bpmn, BpmnDocument):
        return bpmn
    try:
        root = ET.fromstring(bpmn)
    except ET.ParseError as e:
        raise SnapshotParseError(f"Invalid BPMN document: {e}")
    return BpmnDocument(root)


def to_bpmn_xml(bpmn: BpmnSource) -> str:
    """Serialize a document back to XML text."""
    if isinstance(bpmn, (str, bytes)):
        bpmn = to_bpmn_object(bpmn)
    return ET.tostring(bpmn.root, encoding="unicode")


def _as_document(bpmn: BpmnSource) -> Tuple[BpmnDocument, bool]:
    return to_bpmn_object(bpmn), not isinstance(bpmn, BpmnDocument)


def _result(document: BpmnDocument, was_text: bool) -> BpmnSource:
    return to_bpmn_xml(document) if was_text else document


def get_definitions_version_information(bpmn: BpmnSource) -> VersionInformation:
    document = to_bpmn_object(bpmn)
    return VersionInformation(
        **{field: document.root.get(attribute) for field, attribute in _VERSION_ATTRIBUTES.items()}
    )


def set_definitions_version_information(bpmn: BpmnSource, **fields: Optional[str]) -> BpmnSource:
    """Set version stamp fields on the definitions element.

    Only the given fields are touched; passing ``None`` removes the stamp.
    XML input returns XML, document input is modified in place and returned.
    """
    unknown = set(fields) - set(_VERSION_ATTRIBUTES)
    if unknown:
        raise TypeError(f"Unknown version fields: {', '.join(sorted(unknown))}")

    document, was_text = _as_document(bpmn)
    for field, value in fields.items():
        attribute = _VERSION_ATTRIBUTES[field]
        if value is None:
            document.root.attrib.pop(attribute, None)
        else:
            document.root.set(attribute, str(value))
    return _result(document, was_text)


def get_task_file_name_mapping(bpmn: BpmnSource, kind: TaskKind) -> Dict[str, TaskFileInfo]:
    """Map every task of the given kind to its file reference."""
    document = to_bpmn_object(bpmn)
    mapping = {}
    for task in document.root.iter(_TASK_TAGS[kind]):
        task_id = task.get("id")
        if not task_id:
            continue
        mapping[task_id] = TaskFileInfo(
            file_name=task.get(FILE_NAME_ATTR) or None,
            implementation=task.get("implementation"),
        )
    return mapping


def get_user_task_file_name_mapping(bpmn: BpmnSource) -> Dict[str, TaskFileInfo]:
    return get_task_file_name_mapping(bpmn, TaskKind.USER_TASK)


def get_script_task_file_name_mapping(bpmn: BpmnSource) -> Dict[str, TaskFileInfo]:
    return get_task_file_name_mapping(bpmn, TaskKind.SCRIPT_TASK)


def get_used_file_names(bpmn: BpmnSource, kind: TaskKind) -> List[str]:
    """Distinct file names referenced by tasks of the given kind."""
    names = {info.file_name for info in get_task_file_name_mapping(bpmn, kind).values()}
    return sorted(name for name in names if name)


def _find_task(document: BpmnDocument, kind: TaskKind, task_id: str) -> ET.Element:
    for task in document.root.iter(_TASK_TAGS[kind]):
        if task.get("id") == task_id:
            return task
    raise NotFoundError(f"{kind.value} {task_id} not found in process document", {"task_id": task_id})


def set_task_file_name(
    bpmn: BpmnSource,
    kind: TaskKind,
    task_id: str,
    file_name: Optional[str],
    implementation: Optional[str] = None,
) -> BpmnSource:
    document, was_text = _as_document(bpmn)
    task = _find_task(document, kind, task_id)
    if file_name:
        task.set(FILE_NAME_ATTR, file_name)
    else:
        task.attrib.pop(FILE_NAME_ATTR, None)
    if implementation is not None:
        task.set("implementation", implementation)
    return _result(document, was_text)


def set_user_task_data(
    bpmn: BpmnSource,
    task_id: str,
    file_name: Optional[str],
    implementation: Optional[str] = None,
) -> BpmnSource:
    return set_task_file_name(bpmn, TaskKind.USER_TASK, task_id, file_name, implementation)


def set_script_task_data(bpmn: BpmnSource, task_id: str, file_name: Optional[str]) -> BpmnSource:
    return set_task_file_name(bpmn, TaskKind.SCRIPT_TASK, task_id, file_name)


def versioned_file_name(file_name: str, version_id: str) -> str:
    return f"{file_name}-{version_id}"


def unversioned_file_name(file_name: str, version_ids: Optional[Iterable[str]] = None) -> str:
    """Canonical draft name of a versioned file name.

    With ``version_ids`` the longest matching ``-{version_id}`` suffix is
    stripped and names without one are returned unchanged, so logical names
    may contain dashes. Without it the part before the first dash is used.
    """
    if version_ids is None:
        return file_name.split("-", 1)[0]
    for version_id in sorted(set(version_ids), key=len, reverse=True):
        suffix = f"-{version_id}"
        if file_name.endswith(suffix) and len(file_name) > len(suffix):
            return file_name[:-len(suffix)]
    return file_name


def is_versioned_file_name(file_name: str, version_ids: Optional[Iterable[str]] = None) -> bool:
    if version_ids is None:
        return "-" in file_name
    return unversioned_file_name(file_name, version_ids) != file_name
