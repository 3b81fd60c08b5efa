"""Conversation node data model.

One ConversationNode per message turn. Nodes form a tree through
parent_id/child_ids; the displayed conversation is always one root-to-leaf
path through it. child_ids order is the variant order (index 0 = primary).

This module is STABLE. Safe for `from` imports everywhere.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


# ─── Enums ────────────────────────────────────────────────────────────────────


class Role(Enum):
    """Message author. SYSTEM only appears on the conversation root."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class StopReason(Enum):
    """Why generation of an assistant node ended."""

    NONE = "none"
    DONE = "done"
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    USER_STOPPED = "user_stopped"
    ERROR = "error"

    @classmethod
    def from_finish_reason(cls, finish_reason: str | None) -> "StopReason":
        """Map an OpenAI-style finish_reason string to a StopReason."""
        if not finish_reason:
            return cls.NONE
        # [LAW:dataflow-not-control-flow] Unknown reasons are data, mapped to ERROR.
        return _FINISH_REASONS.get(finish_reason, cls.ERROR)

    @property
    def label(self) -> str:
        return _STOP_REASON_LABELS[self]


_FINISH_REASONS = {
    "stop": StopReason.STOP,
    "length": StopReason.LENGTH,
    "content_filter": StopReason.CONTENT_FILTER,
}

_STOP_REASON_LABELS = {
    StopReason.NONE: "None",
    StopReason.DONE: "Generation complete",
    StopReason.STOP: "Model stopped",
    StopReason.LENGTH: "Maximum length exceeded",
    StopReason.CONTENT_FILTER: "Content filtered",
    StopReason.USER_STOPPED: "Stopped by user",
    StopReason.ERROR: "Error during generation",
}


# ─── Node ─────────────────────────────────────────────────────────────────────


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass
class ConversationNode:
    """One message turn in the conversation tree."""

    id: str
    role: Role
    content: str = ""
    parent_id: str = ""
    child_ids: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now_iso)
    stop_reason: StopReason = StopReason.NONE

    @property
    def is_root(self) -> bool:
        return not self.parent_id

    def snapshot(self, **changes) -> "ConversationNode":
        """Return an independent copy, optionally with fields replaced.

        child_ids is copied so the snapshot never aliases the owner's list.
        """
        changes.setdefault("child_ids", list(self.child_ids))
        return dataclasses.replace(self, **changes)

    def to_message(self) -> dict[str, str]:
        """Chat-completions message dict for this node."""
        return {"role": self.role.value, "content": self.content}


def snapshot_path(nodes) -> list[ConversationNode]:
    """Copy every node of a path so callers never hold service-owned objects."""
    return [node.snapshot() for node in nodes]
