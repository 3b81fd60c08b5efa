"""Tree navigation over the conversation service.

Computes the active root-to-leaf path and moves between sibling variants.
All lookups are id-based against a fresh path snapshot; the navigator keeps
no node references between calls.

Switching variant lands on the sibling's leftmost descendant: a variant is a
whole alternate sub-conversation, so the view should continue at its latest
message rather than stop at its first one.
"""

from __future__ import annotations

import logging

from branchat.app.service import ConversationService
from branchat.core.conversation import ConversationNode, snapshot_path
from branchat.core.errors import NodeNotFound, ServiceUnavailable

logger = logging.getLogger(__name__)

DIRECTIONS = (-1, 1)


def _check_direction(direction: int) -> None:
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be -1 or +1, got {direction!r}")


def _find(path: list[ConversationNode], node_id: str) -> ConversationNode | None:
    if not node_id:
        return None
    return next((node for node in path if node.id == node_id), None)


class TreeNavigator:
    """Path and variant queries over a ConversationService."""

    def __init__(self, service: ConversationService):
        self._service = service

    # ─── Path ─────────────────────────────────────────────────────────

    def get_path(self) -> list[ConversationNode]:
        """Current root-to-leaf path, root first, as fresh snapshots."""
        try:
            return snapshot_path(self._service.get_current_path())
        except Exception as e:
            raise ServiceUnavailable(f"Failed to load messages: {e}") from e

    def current_node_id(self) -> str:
        return self._service.get_current_node_id()

    def root_node_id(self) -> str:
        return self._service.get_root_node_id()

    def slice_path_from(
        self, node_id: str, path: list[ConversationNode] | None = None
    ) -> list[ConversationNode]:
        """Suffix of path starting at node_id; the whole path if it is absent."""
        if path is None:
            path = self.get_path()
        for index, node in enumerate(path):
            if node.id == node_id:
                return path[index:]
        return list(path)

    # ─── Variants ─────────────────────────────────────────────────────

    def _locate(self, node_id: str, path: list[ConversationNode] | None) -> tuple[ConversationNode, ConversationNode | None]:
        """Return (node, parent) from path. parent is None for the root."""
        if path is None:
            path = self.get_path()
        node = _find(path, node_id)
        if node is None:
            raise NodeNotFound(node_id)
        if node.is_root:
            return node, None
        parent = _find(path, node.parent_id)
        if parent is None:
            raise NodeNotFound(node.parent_id)
        return node, parent

    def get_variant_position(
        self, node_id: str, path: list[ConversationNode] | None = None
    ) -> tuple[int, int]:
        """(index, total) of node_id among its parent's children.

        The root, and a parent with no recorded children, count as 1 of 1.
        """
        node, parent = self._locate(node_id, path)
        if parent is None or not parent.child_ids:
            return 0, 1
        try:
            return parent.child_ids.index(node.id), len(parent.child_ids)
        except ValueError:
            raise NodeNotFound(node_id) from None

    def variant_label(self, node_id: str, path: list[ConversationNode] | None = None) -> str:
        """Display form of the variant position, e.g. "2/3"."""
        if not node_id:
            return "1/1"
        index, total = self.get_variant_position(node_id, path)
        return f"{index + 1}/{total}"

    def can_switch_variant(
        self, node_id: str, direction: int, path: list[ConversationNode] | None = None
    ) -> bool:
        """True iff node_id has a sibling in that direction. Unknown ids are False."""
        _check_direction(direction)
        try:
            node, parent = self._locate(node_id, path)
        except NodeNotFound:
            return False
        if parent is None or node.id not in parent.child_ids:
            return False
        target = parent.child_ids.index(node.id) + direction
        return 0 <= target < len(parent.child_ids)

    def leftmost_descendant(self, node_id: str) -> str:
        """Follow child index 0 from node_id until a childless node."""
        seen = {node_id}
        children = self._service.get_child_nodes(node_id)
        while children:
            node_id = children[0]
            if node_id in seen:
                raise ServiceUnavailable(f"Cycle in conversation tree at {node_id!r}")
            seen.add(node_id)
            children = self._service.get_child_nodes(node_id)
        return node_id

    def switch_variant(self, node_id: str, direction: int) -> str | None:
        """Activate the sibling variant in `direction`, landing on its leaf.

        Returns the new active leaf id, or None when there is no sibling in
        that direction.
        """
        _check_direction(direction)
        node, parent = self._locate(node_id, None)
        if parent is None or node.id not in parent.child_ids:
            return None
        target = parent.child_ids.index(node.id) + direction
        if not 0 <= target < len(parent.child_ids):
            return None
        leaf_id = self.leftmost_descendant(parent.child_ids[target])
        self.switch_to_node(leaf_id)
        logger.debug("switched variant %s -> leaf %s", node_id, leaf_id)
        return leaf_id

    def switch_to_node(self, node_id: str) -> None:
        """Make node_id the active leaf."""
        if not node_id or not self._service.switch_to_node(node_id):
            raise NodeNotFound(node_id)
