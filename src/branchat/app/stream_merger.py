"""Streaming overlay: in-flight reply text layered onto the displayed path.

    IDLE --begin--> STREAMING --complete--> RECONCILING --> IDLE
                        |
                      cancel
                        v
                    CANCELLED --reconcile--> RECONCILING --> IDLE

Deltas are appended verbatim in arrival order to an append-only buffer; the
producer guarantees ordered, non-overlapping chunks. Only one stream can own
the overlay: begin() outside IDLE is rejected, never queued. After a stop
the merger stays CANCELLED and keeps absorbing late deltas until the caller
runs the reconciliation pass.

The overlay is display-only. Nothing here writes to the conversation tree;
the authoritative path is re-fetched once the merger is back to IDLE.
"""

from __future__ import annotations

import logging
import time
from enum import Enum

from branchat.core.conversation import ConversationNode, Role, StopReason

logger = logging.getLogger(__name__)

SYNTHETIC_ID_PREFIX = "streaming_"


class StreamState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    RECONCILING = "reconciling"


# States in which incoming deltas are still accepted.
_ACCEPTING = frozenset({StreamState.STREAMING, StreamState.CANCELLED})


class StreamMerger:
    """Owns the single ephemeral streaming node."""

    def __init__(self) -> None:
        self._state = StreamState.IDLE
        self._buffer: list[str] = []
        # Join cache over _buffer; only deltas not yet folded in are joined.
        self._joined = ""
        self._joined_count = 0
        self._version = 0
        self._synthetic_id = ""

    # ─── Read-only accessors ──────────────────────────────────────────

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state != StreamState.IDLE

    @property
    def content(self) -> str:
        if self._joined_count != len(self._buffer):
            self._joined += "".join(self._buffer[self._joined_count :])
            self._joined_count = len(self._buffer)
        return self._joined

    @property
    def delta_count(self) -> int:
        return len(self._buffer)

    @property
    def version(self) -> int:
        """Monotonic counter bumped per accepted delta, for change detection."""
        return self._version

    @property
    def synthetic_id(self) -> str:
        return self._synthetic_id

    # ─── Transitions ──────────────────────────────────────────────────

    def begin(self) -> bool:
        """Start a stream. Returns False (rejected) unless IDLE."""
        if self._state != StreamState.IDLE:
            logger.debug("stream begin rejected in state %s", self._state.value)
            return False
        self._clear_buffer()
        self._synthetic_id = f"{SYNTHETIC_ID_PREFIX}{time.time_ns() // 1_000_000}"
        self._state = StreamState.STREAMING
        return True

    def append(self, delta: str) -> bool:
        """Append a delta. Returns whether it was accepted."""
        if self._state not in _ACCEPTING or not delta:
            return False
        self._buffer.append(delta)
        self._version += 1
        return True

    def cancel(self) -> bool:
        """Mark the stream stopped; late deltas keep accumulating until reconcile()."""
        if self._state != StreamState.STREAMING:
            return False
        self._state = StreamState.CANCELLED
        return True

    def complete(self) -> None:
        """Successful end of stream: drop the overlay and go IDLE."""
        self._reconcile()

    def reconcile(self) -> None:
        """Final pass after a stop or a failed generation: drop the overlay and go IDLE."""
        self._reconcile()

    def _clear_buffer(self) -> None:
        self._buffer.clear()
        self._joined = ""
        self._joined_count = 0

    def _reconcile(self) -> None:
        if self._state == StreamState.IDLE:
            return
        self._state = StreamState.RECONCILING
        logger.debug("reconciling stream chars=%d deltas=%d", len(self.content), len(self._buffer))
        self._clear_buffer()
        self._synthetic_id = ""
        self._state = StreamState.IDLE

    # ─── Overlay ──────────────────────────────────────────────────────

    def overlay(self, path: list[ConversationNode]) -> list[ConversationNode]:
        """Return the displayed path with the in-flight text layered on.

        A trailing assistant node shows the accumulated text instead of its
        stored content. Any other trailing node gets a synthetic assistant
        child appended. The input list and its nodes are left untouched.
        """
        displayed = list(path)
        if self._state not in _ACCEPTING or not self.content or not displayed:
            return displayed

        last = displayed[-1]
        if last.role == Role.ASSISTANT:
            displayed[-1] = last.snapshot(content=self.content)
            return displayed

        displayed.append(
            ConversationNode(
                id=self._unique_synthetic_id(displayed),
                role=Role.ASSISTANT,
                content=self.content,
                parent_id=last.id,
                stop_reason=StopReason.NONE,
            )
        )
        return displayed

    def _unique_synthetic_id(self, path: list[ConversationNode]) -> str:
        taken = {node.id for node in path}
        candidate = self._synthetic_id
        suffix = 1
        while candidate in taken:
            candidate = f"{self._synthetic_id}_{suffix}"
            suffix += 1
        return candidate
