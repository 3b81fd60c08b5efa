"""App lifecycle management for Textual in-process tests.

Creates ChatApp instances over a fresh in-memory service and manages the
run_test() lifecycle.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from textual.pilot import Pilot

from branchat.app.service import InMemoryConversationService
from branchat.tui.app import ChatApp
from tests.harness.builders import make_service


@asynccontextmanager
async def run_app(
    *,
    size: tuple[int, int] = (100, 40),
    service: InMemoryConversationService | None = None,
    stop_grace: float = 0.01,
) -> AsyncIterator[tuple[Pilot, ChatApp]]:
    """Create and run a ChatApp in test mode.

    Yields (pilot, app). Without a service, the app talks to a scripted
    responder that replies "Hello!" in two deltas.
    """
    # [LAW:no-shared-mutable-globals] Fresh service for every test
    if service is None:
        service, _ = make_service()
    app = ChatApp(service, stop_grace=stop_grace)
    async with app.run_test(size=size) as pilot:
        await pilot.pause()
        yield pilot, app
