"""Shared builders for conversation trees and services in tests."""

from collections.abc import Callable

from branchat.app.responders import ScriptedResponder
from branchat.app.service import InMemoryConversationService
from branchat.core.conversation import ConversationNode, Role
from branchat.io.settings import ApiSettings


def sequential_ids(prefix: str = "n") -> Callable[[], str]:
    """Deterministic id factory: n1, n2, n3, ..."""
    counter = 0

    def next_id() -> str:
        nonlocal counter
        counter += 1
        return f"{prefix}{counter}"

    return next_id


def plain_text(tokens) -> str:
    """Concatenate inline token payloads, dropping markup."""
    return "".join(token.text for token in tokens)


def make_service(
    deltas=("Hel", "lo!"),
    finish_reason="stop",
    *,
    error: Exception | None = None,
    fail_after: int | None = None,
    delay: float = 0.0,
    settings: ApiSettings | None = None,
) -> tuple[InMemoryConversationService, ScriptedResponder]:
    """In-memory service with a scripted responder and sequential ids.

    Returns:
        Tuple: (service, responder). The responder records each request.
    """
    responder = ScriptedResponder(
        deltas, finish_reason, error=error, fail_after=fail_after, delay=delay
    )
    service = InMemoryConversationService(
        responder, settings or ApiSettings(), id_factory=sequential_ids()
    )
    return service, responder


class TreeService:
    """ConversationService over a hand-built node map.

    Counts calls so tests can assert on what the navigator queried, and can
    be told to fail path reads to exercise error recovery.
    """

    def __init__(self, nodes: dict[str, ConversationNode], root_id: str, current_id: str):
        self.nodes = nodes
        self.root_id = root_id
        self.current_id = current_id
        self.fail_path = False
        self.path_calls = 0
        self.stop_calls = 0
        self.listeners: list = []

    def get_current_path(self) -> list[ConversationNode]:
        self.path_calls += 1
        if self.fail_path:
            raise RuntimeError("store offline")
        path = []
        node = self.nodes.get(self.current_id)
        while node is not None:
            path.append(node.snapshot())
            node = self.nodes.get(node.parent_id)
        path.reverse()
        return path

    def get_child_nodes(self, node_id: str) -> list[str]:
        node = self.nodes.get(node_id)
        return list(node.child_ids) if node is not None else []

    def switch_to_node(self, node_id: str) -> bool:
        if node_id not in self.nodes:
            return False
        self.current_id = node_id
        return True

    def get_current_node_id(self) -> str:
        return self.current_id

    def get_root_node_id(self) -> str:
        return self.root_id

    async def add_user_message(self, text: str) -> None:
        raise NotImplementedError

    async def generate_response(self) -> str:
        raise NotImplementedError

    def stop_generation(self) -> None:
        self.stop_calls += 1

    def add_stream_listener(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)


def make_tree(
    edges: dict[str, list[str]],
    *,
    current: str,
    root: str = "root",
    roles: dict[str, Role] | None = None,
) -> TreeService:
    """Build a TreeService from parent -> [children] edges.

    The root is a SYSTEM node; below it roles alternate user/assistant by
    depth unless overridden in `roles`. Content is "<id> text".
    """
    roles = roles or {}
    nodes: dict[str, ConversationNode] = {}

    def add(node_id: str, parent_id: str, depth: int) -> None:
        if depth == 0:
            default_role = Role.SYSTEM
        else:
            default_role = Role.USER if depth % 2 else Role.ASSISTANT
        nodes[node_id] = ConversationNode(
            id=node_id,
            role=roles.get(node_id, default_role),
            content=f"{node_id} text",
            parent_id=parent_id,
            child_ids=list(edges.get(node_id, [])),
        )
        for child_id in edges.get(node_id, []):
            add(child_id, node_id, depth + 1)

    add(root, "", 0)
    return TreeService(nodes, root, current)
