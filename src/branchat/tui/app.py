"""Textual chat application.

// [LAW:locality-or-seam] Thin view over ChatController: the app owns widgets
// and key bindings only. Every tree operation, error recovery and stream
// merge happens in the controller; the app re-renders when told to.

Layout: scrollable transcript, a one-line notice bar, the prompt input and
the footer. One message is "selected" (default: the last); variant,
regenerate, edit, jump and delete act on the selected message. The header
subtitle names the current conversation and the model.
"""

from __future__ import annotations

import logging

from rich.console import Group
from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.widgets import Footer, Header, Input, Static

from branchat.app.controller import DEFAULT_STOP_GRACE, ChatController, RenderedMessage
from branchat.app.service import ConversationService
from branchat.core.conversation import Role
from branchat.tui.rendering import render_blocks, render_message_header

logger = logging.getLogger(__name__)

EMPTY_TRANSCRIPT = "Start the conversation by typing a message below."


class ChatApp(App):
    """Branching chat over a ConversationService."""

    TITLE = "branchat"

    CSS = """
    #messages {
        height: 1fr;
        padding: 0 1;
    }
    #notice {
        height: auto;
        color: $error;
        padding: 0 1;
    }
    #prompt {
        dock: bottom;
    }
    """

    BINDINGS = [
        Binding("escape", "stop", "Stop"),
        Binding("ctrl+up", "select(-1)", "Prev msg"),
        Binding("ctrl+down", "select(1)", "Next msg"),
        Binding("ctrl+left", "variant(-1)", "Prev variant", priority=True),
        Binding("ctrl+right", "variant(1)", "Next variant", priority=True),
        Binding("ctrl+r", "regenerate", "Regenerate"),
        Binding("f2", "edit", "Edit"),
        Binding("ctrl+o", "jump", "Jump"),
        Binding("ctrl+g", "clear_jump", "Full path"),
        Binding("ctrl+n", "new_conversation", "New chat"),
        Binding("f5", "cycle_conversation(-1)", "Prev chat"),
        Binding("f6", "cycle_conversation(1)", "Next chat"),
        Binding("f3", "rename_conversation", "Rename chat", show=False),
        Binding("f8", "delete_message", "Delete msg", show=False),
        Binding("f9", "delete_conversation", "Delete chat", show=False),
        Binding("ctrl+l", "clear_notices", "Clear notices", show=False),
    ]

    def __init__(
        self,
        service: ConversationService,
        *,
        stop_grace: float = DEFAULT_STOP_GRACE,
    ):
        super().__init__()
        self.controller = ChatController(
            service, stop_grace=stop_grace, on_change=self._schedule_render
        )
        self._messages: list[RenderedMessage] = []
        self._selected: int | None = None
        self._editing_id = ""
        self._renaming = False
        self._render_pending = False
        self._notices_shown = 0
        self._mounted = False
        self.status_text = ""

    # ─── Lifecycle ────────────────────────────────────────────────────

    def compose(self) -> ComposeResult:
        yield Header()
        with VerticalScroll(id="messages"):
            yield Static(EMPTY_TRANSCRIPT, id="transcript")
        yield Static("", id="notice")
        yield Input(placeholder="Message (enter to send)", id="prompt")
        yield Footer()

    def on_mount(self) -> None:
        self._mounted = True
        self.controller.initialize()
        self._render_transcript()
        self.query_one("#prompt", Input).focus()

    def on_unmount(self) -> None:
        self._mounted = False
        self.controller.close()

    def on_app_focus(self) -> None:
        # The tree may have changed while the terminal was in the background.
        self.controller.on_show()

    # ─── Rendering ────────────────────────────────────────────────────

    def _schedule_render(self) -> None:
        # Deltas arrive much faster than frames; coalesce into one render.
        if self._render_pending:
            return
        self._render_pending = True
        self.call_after_refresh(self._render_transcript)

    def _render_transcript(self) -> None:
        self._render_pending = False
        if not self._mounted:
            return
        self._messages = self.controller.render_path()
        if self._selected is not None and self._selected >= len(self._messages):
            self._selected = None

        transcript = self.query_one("#transcript", Static)
        if not self._messages:
            transcript.update(EMPTY_TRANSCRIPT)
        else:
            selected = self._selected_index()
            parts = []
            for index, message in enumerate(self._messages):
                parts.append(
                    render_message_header(
                        message.node.role,
                        message.variant_label,
                        can_prev=message.can_prev,
                        can_next=message.can_next,
                        stop_reason=message.node.stop_reason,
                        streaming=message.is_streaming,
                        selected=index == selected,
                    )
                )
                parts.append(render_blocks(message.blocks))
                parts.append(Text(""))
            transcript.update(Group(*parts))

        self._render_notices()
        self._render_subtitle()
        if self._selected is None:
            self.query_one("#messages", VerticalScroll).scroll_end(animate=False)

    def _render_notices(self) -> None:
        notices = self.controller.notices
        for notice in notices[self._notices_shown :]:
            self.notify(notice.message, severity="error" if notice.level == "error" else "warning")
        self._notices_shown = len(notices)
        latest = notices[-1].message if notices else ""
        jump = self.controller.jump_target
        prefix = "Showing from selected message (ctrl+g for full path)  " if jump else ""
        self.status_text = prefix + latest
        self.query_one("#notice", Static).update(self.status_text)

    def _render_subtitle(self) -> None:
        conversations = self.controller.conversations()
        ids = [info.id for info in conversations]
        current = self.controller.conversation_id
        parts = []
        if current in ids:
            title = conversations[ids.index(current)].title
            parts.append(f"{title} ({ids.index(current) + 1}/{len(ids)})")
        if self.controller.model_name:
            parts.append(self.controller.model_name)
        self.sub_title = " · ".join(parts)

    def _selected_index(self) -> int | None:
        if not self._messages:
            return None
        if self._selected is None:
            return len(self._messages) - 1
        return self._selected

    def _selected_message(self) -> RenderedMessage | None:
        index = self._selected_index()
        return self._messages[index] if index is not None else None

    # ─── Input ────────────────────────────────────────────────────────

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value
        if not text.strip():
            return
        if self.controller.is_busy:
            self.notify("Wait for the current reply (escape stops it)", severity="warning")
            return
        event.input.value = ""
        editing_id, self._editing_id = self._editing_id, ""
        renaming, self._renaming = self._renaming, False
        self._selected = None
        if renaming:
            self.controller.rename_conversation(text)
        elif editing_id:
            self.run_worker(self.controller.edit_message(editing_id, text), exclusive=False)
        else:
            self.run_worker(self.controller.send_message(text), exclusive=False)

    # ─── Actions ──────────────────────────────────────────────────────

    def action_stop(self) -> None:
        if self._editing_id or self._renaming:
            self._editing_id = ""
            self._renaming = False
            self.query_one("#prompt", Input).value = ""
            return
        self.controller.stop_generation()

    def action_select(self, step: int) -> None:
        index = self._selected_index()
        if index is None:
            return
        index = max(0, min(len(self._messages) - 1, index + step))
        self._selected = None if index == len(self._messages) - 1 else index
        self._render_transcript()

    def action_variant(self, direction: int) -> None:
        message = self._selected_message()
        if message is None:
            return
        if self.controller.switch_variant(message.node.id, direction):
            # The selected node stays at the same depth; only its subtree changed.
            self._render_transcript()

    def action_regenerate(self) -> None:
        message = self._selected_message()
        if message is None or message.node.role != Role.ASSISTANT:
            return
        self._selected = None
        self.run_worker(self.controller.regenerate(message.node.id), exclusive=False)

    def action_edit(self) -> None:
        message = self._selected_message()
        if message is None or message.node.role != Role.USER or self.controller.is_busy:
            return
        self._editing_id = message.node.id
        self._renaming = False
        prompt = self.query_one("#prompt", Input)
        prompt.value = message.node.content
        prompt.focus()

    def action_jump(self) -> None:
        message = self._selected_message()
        if message is not None:
            self.controller.jump_to(message.node.id)
            self._selected = 0

    def action_clear_jump(self) -> None:
        self.controller.clear_jump()

    def action_clear_notices(self) -> None:
        self._notices_shown = 0
        self.controller.clear_notices()

    # ─── Conversations ────────────────────────────────────────────────

    def _conversation_changed(self, changed: bool) -> None:
        if changed:
            self._selected = None
            self._editing_id = ""
            self._render_transcript()

    def action_new_conversation(self) -> None:
        self._conversation_changed(self.controller.new_conversation())

    def action_cycle_conversation(self, direction: int) -> None:
        self._conversation_changed(self.controller.cycle_conversation(direction))

    def action_delete_conversation(self) -> None:
        self._conversation_changed(self.controller.delete_conversation())

    def action_delete_message(self) -> None:
        message = self._selected_message()
        if message is not None:
            self._conversation_changed(self.controller.delete_message(message.node.id))

    def action_rename_conversation(self) -> None:
        if self.controller.is_busy:
            return
        conversations = {info.id: info.title for info in self.controller.conversations()}
        title = conversations.get(self.controller.conversation_id)
        if title is None:
            return
        self._editing_id = ""
        self._renaming = True
        prompt = self.query_one("#prompt", Input)
        prompt.value = title
        prompt.focus()
