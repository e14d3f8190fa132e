"""Structural diff between two BPMN documents.

Semantic elements (anything with an ``id`` outside the diagram interchange
namespaces) are matched by id and classified as added, removed or changed.
Diagram shapes and edges are matched by the element they render and reported
as layout changes.
"""

import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .codec import (
    BPMNDI_NS,
    DC_NS,
    DI_NS,
    BpmnSource,
    get_definitions_version_information,
    set_definitions_version_information,
    to_bpmn_object,
)

_DIAGRAM_NAMESPACES = (BPMNDI_NS, DC_NS, DI_NS)


class ChangeType(str, Enum):
    """Types of attribute level changes."""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class BpmnDiff(BaseModel):
    """Difference between two BPMN documents, keyed by element id."""

    added: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    removed: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    changed: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    layout_changed: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed or self.layout_changed)

    @property
    def is_empty(self) -> bool:
        return not self.has_changes

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.changed)} changed, "
            f"{len(self.removed)} removed, {len(self.layout_changed)} layout changed"
        )


def _namespace(tag: str) -> Optional[str]:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _local_name(tag: str) -> str:
    return tag.split("}", 1)[-1]


def _is_diagram_element(element: ET.Element) -> bool:
    return _namespace(element.tag) in _DIAGRAM_NAMESPACES


def _content(element: ET.Element) -> Dict[str, Any]:
    """Comparable content of an element, excluding children that carry their own id."""
    children = [
        _content(child)
        for child in element
        if child.get("id") is None and not _is_diagram_element(child)
    ]
    return {
        "type": _local_name(element.tag),
        "attributes": dict(element.attrib),
        "text": (element.text or "").strip(),
        "children": children,
    }


def _semantic_elements(root: ET.Element) -> Dict[str, ET.Element]:
    elements = {}
    stack = [root]
    while stack:
        element = stack.pop()
        if _is_diagram_element(element):
            continue
        element_id = element.get("id")
        if element_id is not None:
            elements[element_id] = element
        stack.extend(element)
    return elements


def _float(value: Optional[str]) -> Optional[float]:
    return float(value) if value is not None else None


def _layout(root: ET.Element) -> Dict[str, Dict[str, Any]]:
    layout = {}
    for shape in root.iter(f"{{{BPMNDI_NS}}}BPMNShape"):
        bounds = shape.find(f"{{{DC_NS}}}Bounds")
        if bounds is None or not shape.get("bpmnElement"):
            continue
        layout[shape.get("bpmnElement")] = {
            "bounds": {key: _float(bounds.get(key)) for key in ("x", "y", "width", "height")}
        }
    for edge in root.iter(f"{{{BPMNDI_NS}}}BPMNEdge"):
        if not edge.get("bpmnElement"):
            continue
        layout[edge.get("bpmnElement")] = {
            "waypoints": [
                (_float(point.get("x")), _float(point.get("y")))
                for point in edge.findall(f"{{{DI_NS}}}waypoint")
            ]
        }
    return layout


def _deep_diff(obj1: Any, obj2: Any, path: List[Any]) -> List[Dict[str, Any]]:
    """Recursively calculate deep differences."""
    changes = []

    if isinstance(obj1, dict) and isinstance(obj2, dict):
        for key in sorted(set(obj1) | set(obj2), key=str):
            current_path = path + [key]

            if key not in obj1:
                changes.append({
                    "type": ChangeType.ADDED,
                    "path": current_path,
                    "old_value": None,
                    "new_value": obj2[key]
                })
            elif key not in obj2:
                changes.append({
                    "type": ChangeType.REMOVED,
                    "path": current_path,
                    "old_value": obj1[key],
                    "new_value": None
                })
            elif obj1[key] != obj2[key]:
                changes.extend(_deep_diff(obj1[key], obj2[key], current_path))

    elif isinstance(obj1, list) and isinstance(obj2, list):
        for i in range(max(len(obj1), len(obj2))):
            current_path = path + [i]

            if i >= len(obj1):
                changes.append({
                    "type": ChangeType.ADDED,
                    "path": current_path,
                    "old_value": None,
                    "new_value": obj2[i]
                })
            elif i >= len(obj2):
                changes.append({
                    "type": ChangeType.REMOVED,
                    "path": current_path,
                    "old_value": obj1[i],
                    "new_value": None
                })
            elif obj1[i] != obj2[i]:
                changes.extend(_deep_diff(obj1[i], obj2[i], current_path))

    elif obj1 != obj2:
        changes.append({
            "type": ChangeType.MODIFIED,
            "path": path,
            "old_value": obj1,
            "new_value": obj2
        })

    return changes


def diff(bpmn_a: BpmnSource, bpmn_b: BpmnSource) -> BpmnDiff:
    """Compare two documents; ``added`` holds elements only present in ``bpmn_b``."""
    root_a = to_bpmn_object(bpmn_a).root
    root_b = to_bpmn_object(bpmn_b).root
    result = BpmnDiff()

    elements_a = _semantic_elements(root_a)
    elements_b = _semantic_elements(root_b)

    for element_id, element in elements_b.items():
        if element_id not in elements_a:
            result.added[element_id] = {"type": _local_name(element.tag)}

    for element_id, element in elements_a.items():
        if element_id not in elements_b:
            result.removed[element_id] = {"type": _local_name(element.tag)}
            continue
        changes = _deep_diff(_content(element), _content(elements_b[element_id]), [])
        if changes:
            result.changed[element_id] = {
                "type": _local_name(elements_b[element_id].tag),
                "changes": changes,
            }

    layout_a = _layout(root_a)
    layout_b = _layout(root_b)
    # a diagram entry present on one side only reports None for the other
    for element_id in sorted(set(layout_a) | set(layout_b)):
        old_layout = layout_a.get(element_id)
        new_layout = layout_b.get(element_id)
        if old_layout != new_layout:
            result.layout_changed[element_id] = {"old": old_layout, "new": new_layout}

    return result


def equals(bpmn_a: BpmnSource, bpmn_b: BpmnSource) -> bool:
    return diff(bpmn_a, bpmn_b).is_empty


def stamp_version_identity(bpmn: BpmnSource, other: BpmnSource) -> BpmnSource:
    """Copy the version stamp of ``other`` onto a copy of ``bpmn``."""
    document = to_bpmn_object(bpmn).copy()
    info = get_definitions_version_information(other)
    return set_definitions_version_information(document, **info.as_dict())


def are_versions_equal(bpmn: BpmnSource, other_bpmn: BpmnSource) -> bool:
    """Check whether ``bpmn`` matches the version ``other_bpmn`` apart from its stamp.

    Returns False when ``other_bpmn`` carries no version id.
    """
    info = get_definitions_version_information(other_bpmn)
    if not info.version_id:
        return False

    stamped = stamp_version_identity(bpmn, other_bpmn)
    return equals(other_bpmn, stamped)


__all__ = [
    "ChangeType",
    "BpmnDiff",
    "diff",
    "equals",
    "stamp_version_identity",
    "are_versions_equal",
]
