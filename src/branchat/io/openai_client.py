"""OpenAI-compatible chat completions client.

Streams `POST {base_url}chat/completions` with `stream: true` and turns the
server-sent events into StreamChunks. The blocking urllib read loop runs on
a worker thread; chunks reach the event loop through an asyncio.Queue fed
with call_soon_threadsafe. Setting the cancel event makes the worker stop
reading and close the response.

Only `data:` lines matter. `[DONE]` ends the stream; `choices[0].delta`
carries `reasoning_content` and `content`, and the final chunk carries
`finish_reason`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
import threading
import urllib.error
import urllib.request
from collections.abc import AsyncIterator

from branchat.app.responders import StreamChunk
from branchat.core.errors import GenerationFailed, ServiceUnavailable
from branchat.io.settings import ApiSettings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 300
WORKER_JOIN_TIMEOUT_SECONDS = 2.0
DONE_SENTINEL = "[DONE]"


# ─── Wire format ─────────────────────────────────────────────────────────────


def build_chat_payload(messages: list[dict[str, str]], settings: ApiSettings) -> dict:
    """Request body for a streamed chat completion."""
    return {
        "model": settings.model,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "stream": True,
        "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
    }


def _headers(settings: ApiSettings, accept: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Accept": accept,
        "Authorization": f"Bearer {settings.api_key}",
    }


def parse_sse_line(line: str | bytes) -> StreamChunk | None:
    """Parse one SSE line. Returns None for anything that carries no chunk."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.rstrip("\r\n")
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == DONE_SENTINEL:
        return None
    try:
        event = json.loads(data)
    except json.JSONDecodeError as e:
        raise GenerationFailed(f"Malformed stream event: {data[:200]!r}") from e
    if not isinstance(event, dict):
        raise GenerationFailed(f"Unexpected stream event: {data[:200]!r}")

    error = event.get("error")
    if error:
        message = error.get("message", error) if isinstance(error, dict) else error
        raise GenerationFailed(f"Server error: {message}")

    choices = event.get("choices") or []
    if not choices:
        return None
    choice = choices[0] or {}
    delta = choice.get("delta") or {}
    content = (delta.get("reasoning_content") or "") + (delta.get("content") or "")
    finish_reason = choice.get("finish_reason") or None
    if not content and finish_reason is None:
        return None
    return StreamChunk(content=content, finish_reason=finish_reason)


def _http_error_message(e: urllib.error.HTTPError) -> str:
    try:
        body = e.read().decode("utf-8", errors="replace")
    except OSError:
        body = ""
    detail = body.strip()[:500]
    return f"HTTP {e.code} {e.reason}" + (f": {detail}" if detail else "")


# ─── Streaming responder ─────────────────────────────────────────────────────


class OpenAIResponder:
    """Responder backed by an OpenAI-compatible HTTP endpoint."""

    def __init__(self, *, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.timeout = timeout

    def _open(self, messages: list[dict[str, str]], settings: ApiSettings):
        body = json.dumps(build_chat_payload(messages, settings)).encode("utf-8")
        req = urllib.request.Request(
            settings.base_url + "chat/completions",
            data=body,
            headers=_headers(settings, "text/event-stream"),
            method="POST",
        )
        ctx = ssl.create_default_context()
        try:
            return urllib.request.urlopen(req, context=ctx, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            raise GenerationFailed(_http_error_message(e)) from e
        except (urllib.error.URLError, OSError) as e:
            raise GenerationFailed(f"Request failed: {e}") from e

    def _read_events(
        self, resp, emit, cancel_event: threading.Event, stop_worker: threading.Event
    ) -> None:
        for raw_line in resp:
            if cancel_event.is_set() or stop_worker.is_set():
                logger.debug("stream worker stopping")
                return
            if raw_line.rstrip(b"\r\n") == b"data: " + DONE_SENTINEL.encode():
                return
            chunk = parse_sse_line(raw_line)
            if chunk is not None:
                emit(("chunk", chunk))

    async def stream(
        self,
        messages: list[dict[str, str]],
        settings: ApiSettings,
        cancel_event: threading.Event,
    ) -> AsyncIterator[StreamChunk]:
        if not settings.is_configured:
            raise ServiceUnavailable("API key and base URL must be configured")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[str, object]] = asyncio.Queue()
        worker_done = threading.Event()
        # Private to this stream; the caller's cancel_event is only read.
        stop_worker = threading.Event()

        def emit(item: tuple[str, object]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, item)

        def worker() -> None:
            try:
                with contextlib.closing(self._open(messages, settings)) as resp:
                    self._read_events(resp, emit, cancel_event, stop_worker)
            except Exception as exc:
                emit(("error", exc))
            else:
                emit(("done", None))
            finally:
                worker_done.set()

        logger.info("chat completion model=%s messages=%d", settings.model, len(messages))
        thread = threading.Thread(target=worker, name="branchat-stream-worker", daemon=True)
        thread.start()

        try:
            while True:
                kind, payload = await queue.get()
                if kind == "chunk":
                    yield payload
                    continue
                if kind == "error":
                    if isinstance(payload, GenerationFailed):
                        raise payload
                    raise GenerationFailed(f"Stream failed: {payload}") from payload
                break
        finally:
            stop_worker.set()
            # The worker only notices cancellation between lines.
            await asyncio.to_thread(worker_done.wait, WORKER_JOIN_TIMEOUT_SECONDS)


# ─── Models ──────────────────────────────────────────────────────────────────


def list_models(settings: ApiSettings, *, timeout: float = 30) -> list[str]:
    """Model ids advertised by `GET {base_url}models`, sorted."""
    if not settings.is_configured:
        raise ServiceUnavailable("API key and base URL must be configured")
    req = urllib.request.Request(
        settings.base_url + "models",
        headers=_headers(settings, "application/json"),
        method="GET",
    )
    ctx = ssl.create_default_context()
    try:
        with urllib.request.urlopen(req, context=ctx, timeout=timeout) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        raise ServiceUnavailable(_http_error_message(e)) from e
    except (urllib.error.URLError, OSError) as e:
        raise ServiceUnavailable(f"Request failed: {e}") from e
    except json.JSONDecodeError as e:
        raise ServiceUnavailable(f"Malformed models response: {e}") from e

    entries = data.get("data", []) if isinstance(data, dict) else []
    return sorted(
        str(entry["id"]) for entry in entries if isinstance(entry, dict) and entry.get("id")
    )
