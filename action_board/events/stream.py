"""
Async change stream bridging the dispatcher to streaming HTTP responses.

Dispatcher handlers run on whatever thread published the event; the stream
hands each event to its event loop with ``call_soon_threadsafe``.
"""

import asyncio
import json
from typing import AsyncIterator, Iterable, Optional

from .dispatcher import ChangeDispatcher
from .models import ChangeAction, ChangeEvent, ChangeType


class ChangeStream:
    """A filtered subscription exposed as an async iterator of events."""

    def __init__(
        self,
        dispatcher: ChangeDispatcher,
        types: Optional[Iterable[ChangeType]] = None,
        actions: Optional[Iterable[ChangeAction]] = None,
        max_queue: int = 1000,
    ):
        self.dispatcher = dispatcher
        self.types = list(types) if types is not None else None
        self.actions = list(actions) if actions is not None else None
        self.max_queue = max_queue
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe = None

    def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.max_queue)
        self._unsubscribe = self.dispatcher.subscribe(
            self.types, self.actions, self._on_event
        )

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_event(self, event: ChangeEvent) -> None:
        self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: ChangeEvent) -> None:
        if self._queue.full():
            # Slow consumer: drop the oldest event
            self._queue.get_nowait()
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield events; subscribes on first iteration unless already open."""
        if self._queue is None:
            self.open()
        try:
            while True:
                yield await self._queue.get()
        finally:
            self.close()

    async def server_sent_events(self) -> AsyncIterator[str]:
        """Render events in text/event-stream framing."""
        try:
            async for event in self.events():
                yield f"event: change\ndata: {json.dumps(event.to_dict())}\n\n"
        finally:
            self.close()
