"""Tests for the conversation data model."""

import pytest

from branchat.core.conversation import ConversationNode, Role, StopReason, snapshot_path


class TestStopReason:
    @pytest.mark.parametrize(
        "finish_reason, expected",
        [
            ("stop", StopReason.STOP),
            ("length", StopReason.LENGTH),
            ("content_filter", StopReason.CONTENT_FILTER),
            ("tool_calls", StopReason.ERROR),
            ("", StopReason.NONE),
            (None, StopReason.NONE),
        ],
    )
    def test_from_finish_reason(self, finish_reason, expected):
        assert StopReason.from_finish_reason(finish_reason) == expected

    def test_every_reason_has_a_label(self):
        labels = {reason.label for reason in StopReason}
        assert len(labels) == len(StopReason)
        assert StopReason.LENGTH.label == "Maximum length exceeded"


class TestNode:
    def test_root_has_no_parent(self):
        assert ConversationNode(id="r", role=Role.SYSTEM).is_root
        assert not ConversationNode(id="u", role=Role.USER, parent_id="r").is_root

    def test_snapshot_does_not_alias_children(self):
        node = ConversationNode(id="u", role=Role.USER, child_ids=["a"])
        copy = node.snapshot()
        copy.child_ids.append("b")
        assert node.child_ids == ["a"]

    def test_snapshot_with_changes(self):
        node = ConversationNode(id="a", role=Role.ASSISTANT, content="old")
        assert node.snapshot(content="new").content == "new"
        assert node.content == "old"

    def test_to_message(self):
        node = ConversationNode(id="u", role=Role.USER, content="hi")
        assert node.to_message() == {"role": "user", "content": "hi"}

    def test_timestamp_is_utc_iso(self):
        assert ConversationNode(id="x", role=Role.USER).timestamp.endswith("+00:00")

    def test_snapshot_path_copies_every_node(self):
        nodes = [ConversationNode(id="r", role=Role.SYSTEM)]
        copied = snapshot_path(nodes)
        assert copied == nodes
        assert copied[0] is not nodes[0]
