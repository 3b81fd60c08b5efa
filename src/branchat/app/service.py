"""Conversation service: the owner of the conversation tree.

The chat core only ever talks to a ConversationService. The protocol is the
contract; InMemoryConversationService is the reference implementation used
by the CLI and the tests. It keeps every conversation in memory (no
persistence format) and delegates text generation to a Responder.

// [LAW:one-source-of-truth] The service owns the tree. Everything it hands
// out is a snapshot; callers never get references into its node map.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from branchat.app.responders import Responder
from branchat.core.conversation import (
    ConversationNode,
    Role,
    StopReason,
    snapshot_path,
    utc_now_iso,
)
from branchat.io.settings import ApiSettings

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_TITLE = "New chat"

StreamListener = Callable[[str], None]


class ConversationService(Protocol):
    """What the chat core needs from whoever owns the conversation tree."""

    def get_current_path(self) -> list[ConversationNode]: ...

    def get_child_nodes(self, node_id: str) -> list[str]: ...

    def switch_to_node(self, node_id: str) -> bool: ...

    def get_current_node_id(self) -> str: ...

    def get_root_node_id(self) -> str: ...

    async def add_user_message(self, text: str) -> None: ...

    async def generate_response(self) -> str: ...

    def stop_generation(self) -> None: ...

    def add_stream_listener(self, listener: StreamListener) -> Callable[[], None]: ...


@dataclass(frozen=True)
class ConversationInfo:
    id: str
    title: str
    created_at: str


@runtime_checkable
class ConversationManager(Protocol):
    """Optional service surface for managing whole conversations."""

    @property
    def current_conversation_id(self) -> str: ...

    def get_conversation_list(self) -> list[ConversationInfo]: ...

    def create_conversation(self, title: str) -> str: ...

    def load_conversation(self, conversation_id: str) -> bool: ...

    def delete_conversation(self, conversation_id: str) -> bool: ...

    def update_conversation_title(self, conversation_id: str, title: str) -> bool: ...

    def delete_node(self, node_id: str) -> bool: ...

    def get_settings(self) -> ApiSettings: ...


# ─── In-memory implementation ────────────────────────────────────────────────


@dataclass
class _Conversation:
    info: ConversationInfo
    root_id: str
    current_id: str
    nodes: dict[str, ConversationNode] = field(default_factory=dict)

    def find(self, node_id: str) -> ConversationNode | None:
        if not node_id:
            return None
        return self.nodes.get(node_id)

    def path_from_root(self, node_id: str) -> list[ConversationNode]:
        path: list[ConversationNode] = []
        node = self.find(node_id)
        while node is not None:
            path.append(node)
            node = self.find(node.parent_id)
        path.reverse()
        return path


def _random_id() -> str:
    return uuid.uuid4().hex[:16]


class InMemoryConversationService:
    """Conversation tree store plus streaming generation.

    Every conversation is rooted at a SYSTEM node carrying the system prompt.
    New messages become children of the current node and then the current
    node themselves, so editing or regenerating from an earlier node
    produces a sibling variant.
    """

    def __init__(
        self,
        responder: Responder,
        settings: ApiSettings | None = None,
        *,
        id_factory: Callable[[], str] | None = None,
    ):
        self._responder = responder
        self._settings = settings or ApiSettings()
        self._new_id = id_factory or _random_id
        self._conversations: dict[str, _Conversation] = {}
        self._conversation_id = ""
        self._listeners: list[StreamListener] = []
        self._cancel_event: threading.Event | None = None
        self.create_conversation(DEFAULT_CONVERSATION_TITLE)

    @property
    def _current(self) -> _Conversation:
        return self._conversations[self._conversation_id]

    # ─── Tree reads ───────────────────────────────────────────────────

    def get_current_path(self) -> list[ConversationNode]:
        conv = self._current
        return snapshot_path(conv.path_from_root(conv.current_id))

    def get_child_nodes(self, node_id: str) -> list[str]:
        node = self._current.find(node_id)
        return list(node.child_ids) if node is not None else []

    def get_node(self, node_id: str) -> ConversationNode | None:
        node = self._current.find(node_id)
        return node.snapshot() if node is not None else None

    def get_current_node_id(self) -> str:
        return self._current.current_id

    def get_root_node_id(self) -> str:
        return self._current.root_id

    # ─── Tree writes ──────────────────────────────────────────────────

    def switch_to_node(self, node_id: str) -> bool:
        conv = self._current
        if conv.find(node_id) is None:
            return False
        conv.current_id = node_id
        return True

    def _add_node(self, conv: _Conversation, role: Role, content: str) -> str:
        """Append a child of the current node and make it current."""
        if not content and role != Role.SYSTEM:
            return ""
        node_id = self._new_id()
        parent = conv.find(conv.current_id)
        if parent is not None:
            parent.child_ids.append(node_id)
        conv.nodes[node_id] = ConversationNode(
            id=node_id,
            role=role,
            content=content,
            parent_id=conv.current_id,
        )
        conv.current_id = node_id
        return node_id

    async def add_user_message(self, text: str) -> None:
        node_id = self._add_node(self._current, Role.USER, text)
        if node_id:
            logger.debug("added user node %s", node_id)

    def delete_node(self, node_id: str) -> bool:
        """Remove a node and its subtree. The root cannot be deleted."""
        conv = self._current
        node = conv.find(node_id)
        if node is None or node_id == conv.root_id:
            return False
        parent = conv.find(node.parent_id)
        if parent is not None and node_id in parent.child_ids:
            parent.child_ids.remove(node_id)
        doomed = [node_id]
        while doomed:
            victim = conv.nodes.pop(doomed.pop(), None)
            if victim is not None:
                doomed.extend(victim.child_ids)
        if conv.find(conv.current_id) is None:
            conv.current_id = node.parent_id
        return True

    # ─── Streaming generation ─────────────────────────────────────────

    def add_stream_listener(self, listener: StreamListener) -> Callable[[], None]:
        """Register a delta listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, delta: str) -> None:
        for listener in list(self._listeners):
            listener(delta)

    async def generate_response(self) -> str:
        """Generate an assistant reply under the current node.

        The assistant node is created on the first non-empty delta and its
        content tracks the accumulated text from then on. Returns the full
        (possibly partial, if stopped) reply text.
        """
        conv = self._current
        messages = [node.to_message() for node in conv.path_from_root(conv.current_id)]
        cancel_event = threading.Event()
        self._cancel_event = cancel_event

        parts: list[str] = []
        assistant: ConversationNode | None = None
        stop_reason = StopReason.NONE
        try:
            stream = self._responder.stream(messages, self._settings, cancel_event)
            async with contextlib.aclosing(stream):
                async for chunk in stream:
                    if cancel_event.is_set():
                        break
                    if chunk.finish_reason:
                        stop_reason = StopReason.from_finish_reason(chunk.finish_reason)
                    if not chunk.content:
                        continue
                    parts.append(chunk.content)
                    text = "".join(parts)
                    if assistant is None:
                        assistant = conv.find(self._add_node(conv, Role.ASSISTANT, text))
                    else:
                        assistant.content = text
                    self._emit(chunk.content)
        except Exception:
            if assistant is not None:
                assistant.stop_reason = StopReason.ERROR
            raise
        finally:
            if self._cancel_event is cancel_event:
                self._cancel_event = None

        if cancel_event.is_set():
            stop_reason = StopReason.USER_STOPPED
        if assistant is not None:
            assistant.stop_reason = stop_reason if stop_reason != StopReason.NONE else StopReason.DONE
        logger.info(
            "generation finished chars=%d stop_reason=%s",
            sum(len(p) for p in parts),
            stop_reason.value,
        )
        return "".join(parts)

    def stop_generation(self) -> None:
        """Ask the in-flight generation to stop. No-op when idle."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    # ─── Conversations ────────────────────────────────────────────────

    @property
    def current_conversation_id(self) -> str:
        return self._conversation_id

    def get_conversation_list(self) -> list[ConversationInfo]:
        """Conversations, newest first."""
        return [conv.info for conv in reversed(self._conversations.values())]

    def create_conversation(self, title: str) -> str:
        """Create and switch to a new conversation. Empty titles are refused."""
        title = str(title or "").strip()
        if not title:
            return ""
        conversation_id = self._new_id()
        root_id = self._new_id()
        conv = _Conversation(
            info=ConversationInfo(id=conversation_id, title=title, created_at=utc_now_iso()),
            root_id=root_id,
            current_id=root_id,
        )
        conv.nodes[root_id] = ConversationNode(
            id=root_id,
            role=Role.SYSTEM,
            content=self._settings.system_prompt,
        )
        self._conversations[conversation_id] = conv
        self._conversation_id = conversation_id
        return conversation_id

    def load_conversation(self, conversation_id: str) -> bool:
        if conversation_id not in self._conversations:
            return False
        self._conversation_id = conversation_id
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation. There is always at least one afterwards."""
        if self._conversations.pop(conversation_id, None) is None:
            return False
        if conversation_id == self._conversation_id:
            if self._conversations:
                self._conversation_id = next(reversed(self._conversations))
            else:
                self.create_conversation(DEFAULT_CONVERSATION_TITLE)
        return True

    def update_conversation_title(self, conversation_id: str, title: str) -> bool:
        conv = self._conversations.get(conversation_id)
        title = str(title or "").strip()
        if conv is None or not title:
            return False
        conv.info = ConversationInfo(id=conv.info.id, title=title, created_at=conv.info.created_at)
        return True

    # ─── Settings ─────────────────────────────────────────────────────

    def get_settings(self) -> ApiSettings:
        return self._settings
