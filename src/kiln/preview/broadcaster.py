"""Reload broadcaster — tells connected browsers a generation finished.

Generations run on the watch thread; SSE clients live on the server's
event loop.  ``publish_threadsafe`` bridges the two by scheduling the
queue put on each client's loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from kiln.build.scheduler import GenerationResult

RELOAD_EVENT = "kiln:reload"
ERROR_EVENT = "kiln:error"


@dataclass(frozen=True, slots=True)
class ReloadMessage:
    """One message for the browser.

    Attributes:
        event: SSE event name (``kiln:reload`` or ``kiln:error``).
        payload: JSON-serializable body.

    """

    event: str
    payload: dict[str, Any]

    @property
    def data(self) -> str:
        return json.dumps(self.payload, sort_keys=True)

    def as_sse(self) -> Any:
        """Convert to a Chirp ``SSEEvent``."""
        from chirp import SSEEvent

        return SSEEvent(data=self.data, event=self.event)


def message_for(result: GenerationResult) -> ReloadMessage:
    """Reload on success; show the first problem otherwise.

    A generation with per-artifact diagnostics still reloads, since the
    rest of the output tree was updated.
    """
    if result.fatal is not None:
        return ReloadMessage(ERROR_EVENT, {
            "generation": result.generation,
            "type": result.fatal.stage,
            "message": result.fatal.message,
            "file": result.fatal.path,
        })
    return ReloadMessage(RELOAD_EVENT, {
        "generation": result.generation,
        "changed": sorted(str(f.url) for f in result.written),
        "removed": len(result.removed),
        "diagnostics": [str(d) for d in result.diagnostics],
    })


@dataclass(frozen=True, slots=True)
class ReloadClient:
    """A connected browser.

    Attributes:
        client_id: Unique identifier for this connection.
        loop: Event loop the client's generator runs on.
        queue: Messages waiting to be sent.

    """

    client_id: int
    loop: asyncio.AbstractEventLoop = field(compare=False, hash=False)
    queue: asyncio.Queue[ReloadMessage] = field(
        default_factory=asyncio.Queue, compare=False, hash=False,
    )


class ReloadBroadcaster:
    """Fan-out of generation results to SSE clients.

    Thread Safety:
        The client set is protected by a lock.  ``publish`` must run on the
        clients' event loop; ``publish_threadsafe`` may run on any thread.

    """

    def __init__(self, max_queue: int = 16) -> None:
        self._clients: set[ReloadClient] = set()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._max_queue = max_queue

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def subscribe(self) -> ReloadClient:
        """Register a client bound to the running event loop."""
        client = ReloadClient(
            client_id=next(self._ids),
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self._max_queue),
        )
        with self._lock:
            self._clients.add(client)
        return client

    def unsubscribe(self, client: ReloadClient) -> None:
        with self._lock:
            self._clients.discard(client)

    def _snapshot(self) -> frozenset[ReloadClient]:
        with self._lock:
            return frozenset(self._clients)

    def publish(self, result: GenerationResult) -> int:
        """Enqueue a message for every client; returns how many got it."""
        message = message_for(result)
        count = 0
        for client in self._snapshot():
            if _offer(client.queue, message):
                count += 1
        return count

    def publish_threadsafe(self, result: GenerationResult) -> int:
        """Like ``publish``, from a thread other than the clients' loop.

        Returns the number of clients the message was scheduled for.
        """
        message = message_for(result)
        count = 0
        for client in self._snapshot():
            if client.loop.is_closed():
                self.unsubscribe(client)
                continue
            client.loop.call_soon_threadsafe(_offer, client.queue, message)
            count += 1
        return count

    async def client_generator(self, client: ReloadClient) -> AsyncIterator[ReloadMessage]:
        """Yield messages for *client* until it disconnects.

        Unsubscribes on exit so a closed tab stops receiving messages.
        """
        try:
            while True:
                yield await client.queue.get()
        except (asyncio.CancelledError, GeneratorExit):
            return
        finally:
            self.unsubscribe(client)


def _offer(queue: asyncio.Queue[ReloadMessage], message: ReloadMessage) -> bool:
    try:
        queue.put_nowait(message)
    except asyncio.QueueFull:
        # A slow client only needs the latest state.
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return False
        queue.put_nowait(message)
    return True
