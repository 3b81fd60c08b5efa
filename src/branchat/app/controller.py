"""Chat controller: the single coordinator between service, navigator and overlay.

Holds the last known-good path snapshot, the jump target and the user
notices. Every service failure is caught here, logged, and turned into a
Notice; the displayed path stays at its last good state and no exception
reaches the presentation layer.

Mutations (send, regenerate, edit, variant switch) are rejected while a
stream owns the overlay. After a stop, the overlay is dropped by a
reconciliation task that runs once a short grace period has let any late
deltas arrive.

Conversation-level commands (new, switch, rename, delete, delete message)
need a service that also implements ConversationManager.

// [LAW:one-source-of-truth] Displayed path = jump slice of (fresh snapshot + overlay).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from branchat.app.navigator import TreeNavigator
from branchat.app.service import (
    DEFAULT_CONVERSATION_TITLE,
    ConversationInfo,
    ConversationManager,
    ConversationService,
)
from branchat.app.stream_merger import StreamMerger, StreamState
from branchat.core.blocks import MarkdownBlock, parse_blocks
from branchat.core.conversation import ConversationNode, Role
from branchat.core.errors import ChatError, GenerationFailed, NodeNotFound, ServiceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_STOP_GRACE = 0.1  # seconds


@dataclass(frozen=True)
class Notice:
    """User-facing notice raised instead of an exception."""

    level: str  # "error" | "warning" | "info"
    message: str


@dataclass(frozen=True)
class RenderedMessage:
    """Render-ready view of one displayed node."""

    node: ConversationNode
    blocks: tuple[MarkdownBlock, ...]
    variant_label: str
    can_prev: bool
    can_next: bool
    is_streaming: bool


class ChatController:
    def __init__(
        self,
        service: ConversationService,
        *,
        stop_grace: float = DEFAULT_STOP_GRACE,
        on_change: Callable[[], None] | None = None,
    ):
        self._service = service
        self._navigator = TreeNavigator(service)
        self._merger = StreamMerger()
        self._stop_grace = stop_grace
        self.on_change = on_change

        self._initialized = False
        self._path: list[ConversationNode] = []
        self._jump_to_id = ""
        self._notices: list[Notice] = []
        self._sending = False
        # Bumped per generate(); a stale generation never touches a newer overlay.
        self._generation = 0
        self._grace_task: asyncio.Task | None = None
        self._remove_listener: Callable[[], None] | None = None

    # ─── Lifecycle ────────────────────────────────────────────────────

    def initialize(self) -> bool:
        """Subscribe to stream deltas and load the initial path."""
        if self._initialized:
            return True
        try:
            self._remove_listener = self._service.add_stream_listener(self._on_delta)
        except Exception as e:
            self._report(ServiceUnavailable(f"Chat initialization failed: {e}"))
            return False
        self._initialized = True
        self.refresh()
        return True

    def close(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._grace_task is not None:
            self._grace_task.cancel()
            self._grace_task = None

    async def drain(self) -> None:
        """Wait for a pending post-stop reconciliation, if any."""
        task = self._grace_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ─── Read-only accessors ──────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def navigator(self) -> TreeNavigator:
        return self._navigator

    @property
    def merger(self) -> StreamMerger:
        return self._merger

    @property
    def is_streaming(self) -> bool:
        return self._merger.is_active

    @property
    def is_busy(self) -> bool:
        return not self._initialized or self._merger.is_active or self._sending

    @property
    def path(self) -> list[ConversationNode]:
        """Last known-good authoritative path (no overlay, no jump slice)."""
        return list(self._path)

    @property
    def jump_target(self) -> str:
        return self._jump_to_id

    @property
    def notices(self) -> tuple[Notice, ...]:
        return tuple(self._notices)

    def clear_notices(self) -> None:
        self._notices.clear()
        self._changed()

    # ─── Internals ────────────────────────────────────────────────────

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def _report(self, error: ChatError) -> None:
        logger.warning("%s: %s", type(error).__name__, error)
        self._notices.append(Notice("error", str(error)))
        self._changed()

    def _on_delta(self, delta: str) -> None:
        if self._merger.append(delta):
            self._changed()

    def _full_display_path(self) -> list[ConversationNode]:
        return self._merger.overlay(self._path)

    def _find_displayed(self, node_id: str) -> ConversationNode | None:
        if not node_id:
            return None
        return next((n for n in self._full_display_path() if n.id == node_id), None)

    # ─── Path ─────────────────────────────────────────────────────────

    def refresh(self) -> bool:
        """Re-fetch the authoritative path. On failure keep the last good one."""
        if not self._initialized:
            return False
        try:
            self._path = self._navigator.get_path()
        except ChatError as e:
            self._report(e)
            return False
        self._changed()
        return True

    def on_show(self) -> None:
        """The view became visible again; the tree may have changed meanwhile."""
        self.refresh()

    def display_path(self) -> list[ConversationNode]:
        """What the UI shows: the jump slice of the overlaid path."""
        full = self._full_display_path()
        if self._jump_to_id:
            return self._navigator.slice_path_from(self._jump_to_id, full)
        return full

    def render_path(self) -> list[RenderedMessage]:
        """Render models for every displayed user/assistant node."""
        full = self._full_display_path()
        displayed = (
            self._navigator.slice_path_from(self._jump_to_id, full) if self._jump_to_id else full
        )
        streaming_id = full[-1].id if self._merger.is_active and self._merger.content and full else ""
        rendered: list[RenderedMessage] = []
        for node in displayed:
            if node.role == Role.SYSTEM:
                continue
            label, can_prev, can_next = self._variant_info(node.id, full)
            rendered.append(
                RenderedMessage(
                    node=node,
                    blocks=tuple(parse_blocks(node.content)),
                    variant_label=label,
                    can_prev=can_prev,
                    can_next=can_next,
                    is_streaming=node.id == streaming_id,
                )
            )
        return rendered

    def _variant_info(self, node_id: str, full: list[ConversationNode]) -> tuple[str, bool, bool]:
        try:
            label = self._navigator.variant_label(node_id, full)
        except NodeNotFound:
            return "1/1", False, False
        if self.is_busy:
            return label, False, False
        return (
            label,
            self._navigator.can_switch_variant(node_id, -1, full),
            self._navigator.can_switch_variant(node_id, 1, full),
        )

    def variant_label(self, node_id: str) -> str:
        try:
            return self._navigator.variant_label(node_id, self._full_display_path())
        except NodeNotFound:
            return "1/1"

    def can_switch_variant(self, node_id: str, direction: int) -> bool:
        if self.is_busy or not node_id:
            return False
        return self._navigator.can_switch_variant(node_id, direction, self._path)

    # ─── Jump ─────────────────────────────────────────────────────────

    def jump_to(self, node_id: str) -> None:
        """Show the path starting at node_id (whole path if it is not on it)."""
        self._jump_to_id = node_id
        self._changed()

    def clear_jump(self) -> None:
        self.jump_to("")

    # ─── Commands ─────────────────────────────────────────────────────

    def can_send(self, text: str) -> bool:
        return not self.is_busy and bool(str(text or "").strip())

    async def send_message(self, text: str) -> bool:
        """Persist a user message under the active node, then generate a reply."""
        if not self.can_send(text):
            return False
        text = text.strip()
        self._sending = True
        try:
            await self._service.add_user_message(text)
        except Exception as e:
            self._report(ServiceUnavailable(f"Failed to add user message: {e}"))
            return False
        finally:
            self._sending = False
        self.refresh()
        await self.generate()
        return True

    async def generate(self) -> bool:
        """Generate a reply under the active node, streaming into the overlay."""
        if not self._initialized or self._sending or not self._merger.begin():
            return False
        self._generation += 1
        generation = self._generation
        self._changed()
        try:
            await self._service.generate_response()
        except Exception as e:
            error = e if isinstance(e, GenerationFailed) else GenerationFailed(f"Failed to generate response: {e}")
            self._report(error)
            if generation == self._generation and self._merger.state == StreamState.STREAMING:
                self._merger.reconcile()
        else:
            if generation == self._generation and self._merger.state == StreamState.STREAMING:
                self._merger.complete()
        # A stopped stream is reconciled by the grace task instead.
        if generation == self._generation and not self._merger.is_active:
            self.refresh()
        return True

    def stop_generation(self) -> bool:
        """Ask the service to stop; reconcile after the grace period."""
        if self._merger.state != StreamState.STREAMING:
            return False
        try:
            self._service.stop_generation()
        except Exception as e:
            self._report(ServiceUnavailable(f"Failed to stop generation: {e}"))
        self._merger.cancel()
        self._grace_task = asyncio.get_running_loop().create_task(
            self._reconcile_after_grace(self._generation)
        )
        self._changed()
        return True

    async def _reconcile_after_grace(self, generation: int) -> None:
        await asyncio.sleep(self._stop_grace)
        if generation != self._generation or self._merger.state != StreamState.CANCELLED:
            return
        self._merger.reconcile()
        self.refresh()

    async def regenerate(self, node_id: str) -> bool:
        """Generate a new sibling for node_id by generating again from its parent."""
        if self.is_busy:
            return False
        node = self._find_displayed(node_id)
        if node is None or node.is_root:
            return False
        try:
            self._navigator.switch_to_node(node.parent_id)
        except ChatError as e:
            self._report(e)
            return False
        self.refresh()
        return await self.generate()

    async def edit_message(self, node_id: str, new_text: str) -> bool:
        """Send new_text as a sibling of node_id. Unchanged text is a no-op."""
        if self.is_busy:
            return False
        node = self._find_displayed(node_id)
        new_text = str(new_text or "")
        if node is None or node.is_root or not new_text.strip():
            return False
        if new_text.strip() == node.content.strip():
            return False
        leaf_id = self._path[-1].id if self._path else ""
        try:
            self._navigator.switch_to_node(node.parent_id)
        except ChatError as e:
            self._report(e)
            return False
        if await self.send_message(new_text):
            return True
        # Nothing was added; go back to the branch still on screen.
        if leaf_id:
            try:
                self._navigator.switch_to_node(leaf_id)
            except ChatError as e:
                self._report(e)
        self.refresh()
        return False

    def switch_variant(self, node_id: str, direction: int) -> bool:
        """Show the neighbouring variant of node_id, continuing at its leaf."""
        if self.is_busy or not node_id:
            return False
        try:
            leaf_id = self._navigator.switch_variant(node_id, direction)
        except ChatError as e:
            self._report(e)
            return False
        if leaf_id is None:
            return False
        self.refresh()
        return True

    def switch_to_node(self, node_id: str) -> bool:
        if self.is_busy:
            return False
        try:
            self._navigator.switch_to_node(node_id)
        except ChatError as e:
            self._report(e)
            return False
        self.refresh()
        return True

    # ─── Conversations ────────────────────────────────────────────────

    def _manager(self) -> ConversationManager | None:
        return self._service if isinstance(self._service, ConversationManager) else None

    def conversations(self) -> list[ConversationInfo]:
        """Known conversations, or [] when the service keeps only one."""
        manager = self._manager()
        if manager is None:
            return []
        try:
            return manager.get_conversation_list()
        except Exception as e:
            # Read during rendering; a notice here would re-trigger the render.
            logger.warning("Failed to list conversations: %s", e)
            return []

    @property
    def conversation_id(self) -> str:
        manager = self._manager()
        return manager.current_conversation_id if manager is not None else ""

    @property
    def model_name(self) -> str:
        manager = self._manager()
        return manager.get_settings().model if manager is not None else ""

    def _manage(self, action: str, operation: Callable[[ConversationManager], bool]) -> bool:
        """Run a conversation-level mutation, then show the resulting path."""
        if self.is_busy:
            return False
        manager = self._manager()
        if manager is None:
            self._report(ServiceUnavailable(f"Cannot {action}: conversations are not managed"))
            return False
        try:
            done = operation(manager)
        except Exception as e:
            self._report(ServiceUnavailable(f"Failed to {action}: {e}"))
            return False
        if done:
            self._jump_to_id = ""
            self.refresh()
        return done

    def new_conversation(self, title: str = DEFAULT_CONVERSATION_TITLE) -> bool:
        return self._manage("create conversation", lambda m: bool(m.create_conversation(title)))

    def cycle_conversation(self, direction: int) -> bool:
        """Load the next (direction=1) or previous (-1) conversation, wrapping around."""

        def step(manager: ConversationManager) -> bool:
            ids = [info.id for info in manager.get_conversation_list()]
            current = manager.current_conversation_id
            if len(ids) < 2 or current not in ids:
                return False
            return manager.load_conversation(ids[(ids.index(current) + direction) % len(ids)])

        return self._manage("switch conversation", step)

    def rename_conversation(self, title: str) -> bool:
        return self._manage(
            "rename conversation",
            lambda m: m.update_conversation_title(m.current_conversation_id, title),
        )

    def delete_conversation(self) -> bool:
        return self._manage(
            "delete conversation",
            lambda m: m.delete_conversation(m.current_conversation_id),
        )

    def delete_message(self, node_id: str) -> bool:
        """Delete node_id and its subtree; the view continues at its parent."""
        if not node_id:
            return False
        return self._manage("delete message", lambda m: m.delete_node(node_id))
