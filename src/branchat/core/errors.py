"""Error taxonomy for the chat core.

// [LAW:one-source-of-truth] Every recoverable chat failure is one of these.
Callers in app.controller catch ChatError and turn it into a user notice;
nothing here is allowed to escape into rendering.
"""


class ChatError(Exception):
    """Base class for recoverable chat failures."""


class NodeNotFound(ChatError):
    """Navigation on a stale or unknown node id."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id!r}")


class ServiceUnavailable(ChatError):
    """The conversation service rejected or failed a call."""


class GenerationFailed(ChatError):
    """A generate request failed before or during streaming."""
