"""Responders: sources of streamed reply text for the conversation service.

A responder turns a list of chat messages into an async stream of
StreamChunks. The HTTP implementation lives in branchat.io.openai_client;
the ones here need no network and back offline mode and the tests.
"""

from __future__ import annotations

import asyncio
import re
import threading
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from branchat.io.settings import ApiSettings


@dataclass(frozen=True)
class StreamChunk:
    """One streamed fragment. finish_reason is set on the final chunk only."""

    content: str = ""
    finish_reason: str | None = None


class Responder(Protocol):
    def stream(
        self,
        messages: list[dict[str, str]],
        settings: ApiSettings,
        cancel_event: threading.Event,
    ) -> AsyncIterator[StreamChunk]: ...


class ScriptedResponder:
    """Replays a fixed list of deltas, optionally failing part-way."""

    def __init__(
        self,
        deltas: Sequence[str],
        finish_reason: str | None = "stop",
        *,
        error: Exception | None = None,
        fail_after: int | None = None,
        delay: float = 0.0,
    ):
        self.deltas = list(deltas)
        self.finish_reason = finish_reason
        self.error = error
        self.fail_after = len(self.deltas) if fail_after is None else fail_after
        self.delay = delay
        self.requests: list[list[dict[str, str]]] = []

    async def stream(self, messages, settings, cancel_event) -> AsyncIterator[StreamChunk]:
        self.requests.append([dict(m) for m in messages])
        for index, delta in enumerate(self.deltas):
            if self.error is not None and index >= self.fail_after:
                raise self.error
            if cancel_event.is_set():
                return
            # Yield control so listeners and stop requests interleave like a real stream.
            await asyncio.sleep(self.delay)
            yield StreamChunk(content=delta)
        if self.error is not None:
            raise self.error
        yield StreamChunk(finish_reason=self.finish_reason)


_WORD_RE = re.compile(r"\S+\s*|\s+")


class EchoResponder:
    """Offline responder: echoes the last user message back word by word."""

    def __init__(self, delay: float = 0.02):
        self.delay = delay

    async def stream(self, messages, settings, cancel_event) -> AsyncIterator[StreamChunk]:
        last_user = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            "",
        )
        reply = f"You said:\n\n> {last_user}" if last_user else "Nothing to echo."
        for piece in _WORD_RE.findall(reply):
            if cancel_event.is_set():
                return
            await asyncio.sleep(self.delay)
            yield StreamChunk(content=piece)
        yield StreamChunk(finish_reason="stop")
