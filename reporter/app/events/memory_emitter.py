from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from reporter.app.events.emitter import GenerationEventEmitter
from reporter.app.events.models import GenerationEvent, GenerationEventType

# Events after which a run emits nothing further
TERMINAL_EVENTS = frozenset(
    {
        GenerationEventType.GENERATION_COMPLETED,
        GenerationEventType.GENERATION_REJECTED,
    }
)


class MemoryQueueEventEmitter(GenerationEventEmitter):
    """
    Buffers the events of one generation run for a single reader.

    Backs the streaming generate endpoint: the run writes into an
    unbounded queue, and ``stream()`` hands the events out in emission
    order until the run's terminal event has been read. Events emitted
    after that are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[GenerationEvent]] = asyncio.Queue()
        self._closed = False

    async def emit(self, event: GenerationEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)
        if event.event_type in TERMINAL_EVENTS:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[GenerationEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
