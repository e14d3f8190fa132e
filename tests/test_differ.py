"""Test structural BPMN diff and version equality."""

import pytest

from flowvault.bpmn import (
    ChangeType,
    are_versions_equal,
    diff,
    equals,
    get_definitions_version_information,
    set_definitions_version_information,
    stamp_version_identity,
    to_bpmn_object,
)

from conftest import build_bpmn


@pytest.mark.unit
class TestDiff:
    """Test diff between documents."""

    def test_identical_documents(self, sample_bpmn):
        result = diff(sample_bpmn, sample_bpmn)

        assert result.is_empty
        assert not result.has_changes
        assert equals(sample_bpmn, sample_bpmn)

    def test_added_and_removed_elements(self):
        before = build_bpmn(user_tasks={"T1": "formA"})
        after = build_bpmn(user_tasks={"T2": "formB"})
        result = diff(before, after)

        assert result.added == {"T2": {"type": "userTask"}}
        assert result.removed == {"T1": {"type": "userTask"}}

    def test_changed_attribute(self):
        before = build_bpmn(user_tasks={"T1": "formA"})
        after = build_bpmn(user_tasks={"T1": "formB"})
        result = diff(before, after)

        assert list(result.changed) == ["T1"]
        change = result.changed["T1"]["changes"][0]
        assert change["type"] == ChangeType.MODIFIED
        assert change["old_value"] == "formA"
        assert change["new_value"] == "formB"

    def test_layout_change(self):
        result = diff(build_bpmn(start_x=100), build_bpmn(start_x=160))

        assert not result.changed
        assert result.layout_changed["StartEvent_1"]["old"]["bounds"]["x"] == 100.0
        assert result.layout_changed["StartEvent_1"]["new"]["bounds"]["x"] == 160.0
        assert not equals(build_bpmn(start_x=100), build_bpmn(start_x=160))

    def test_layout_only_on_one_side(self):
        with_shape = build_bpmn()
        without_shape = to_bpmn_object(build_bpmn())
        plane = without_shape.find_by_id("Plane_1")
        plane.remove(without_shape.find_by_id("StartEvent_1_di"))

        removed = diff(with_shape, without_shape)
        added = diff(without_shape, with_shape)

        assert not removed.changed
        assert removed.layout_changed["StartEvent_1"]["old"]["bounds"]["x"] == 100.0
        assert removed.layout_changed["StartEvent_1"]["new"] is None
        assert added.layout_changed["StartEvent_1"]["old"] is None
        assert "Flow_1" not in removed.layout_changed
        assert not equals(with_shape, without_shape)

    def test_summary(self):
        result = diff(build_bpmn(user_tasks={"T1": "formA"}), build_bpmn())
        assert result.summary() == "0 added, 0 changed, 1 removed, 0 layout changed"


@pytest.mark.unit
class TestVersionEquality:
    """Test equality of a draft against a committed version."""

    def test_stamp_version_identity(self, sample_bpmn):
        version = set_definitions_version_information(
            sample_bpmn, version_id="v1", version_name="First", version_created_on="2024-01-01T00:00:00+00:00"
        )
        stamped = stamp_version_identity(sample_bpmn, version)

        info = get_definitions_version_information(stamped)
        assert info.version_id == "v1"
        assert info.version_name == "First"
        assert get_definitions_version_information(sample_bpmn).version_id is None

    def test_draft_equals_its_version(self):
        version = build_bpmn(user_tasks={"T1": "formA-v1"}, version_id="v1")
        draft = build_bpmn(user_tasks={"T1": "formA-v1"}, based_on="v1")

        assert are_versions_equal(draft, version)

    def test_content_change_is_not_equal(self):
        version = build_bpmn(user_tasks={"T1": "formA-v1"}, version_id="v1")
        draft = build_bpmn(user_tasks={"T1": "formA-v2"}, based_on="v1")

        assert not are_versions_equal(draft, version)

    def test_other_without_version_id(self, sample_bpmn):
        assert not are_versions_equal(sample_bpmn, sample_bpmn)
