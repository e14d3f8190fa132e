"""BPMN snapshot codec and structural differ."""

from .codec import (
    USER_TASK_IMPLEMENTATION,
    BpmnDocument,
    BpmnSource,
    TaskFileInfo,
    VersionInformation,
    get_definitions_version_information,
    get_script_task_file_name_mapping,
    get_task_file_name_mapping,
    get_used_file_names,
    get_user_task_file_name_mapping,
    is_versioned_file_name,
    set_definitions_version_information,
    set_script_task_data,
    set_task_file_name,
    set_user_task_data,
    to_bpmn_object,
    to_bpmn_xml,
    unversioned_file_name,
    versioned_file_name,
)
from .differ import (
    BpmnDiff,
    ChangeType,
    are_versions_equal,
    diff,
    equals,
    stamp_version_identity,
)

__all__ = [
    "USER_TASK_IMPLEMENTATION",
    "BpmnDocument",
    "BpmnSource",
    "TaskFileInfo",
    "VersionInformation",
    "get_definitions_version_information",
    "get_script_task_file_name_mapping",
    "get_task_file_name_mapping",
    "get_used_file_names",
    "get_user_task_file_name_mapping",
    "is_versioned_file_name",
    "set_definitions_version_information",
    "set_script_task_data",
    "set_task_file_name",
    "set_user_task_data",
    "to_bpmn_object",
    "to_bpmn_xml",
    "unversioned_file_name",
    "versioned_file_name",
    "BpmnDiff",
    "ChangeType",
    "are_versions_equal",
    "diff",
    "equals",
    "stamp_version_identity",
]
