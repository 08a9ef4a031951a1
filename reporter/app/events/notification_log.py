"""
Non-blocking notification channel.

Keeps the most recent generation events in a bounded buffer so that the
presentation layer can poll for outcomes it was not waiting on, most
notably auto-generation runs triggered by response writes.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from reporter.app.events.models import GenerationEvent, GenerationEventType


class NotificationLog:

    def __init__(self, maxlen: int = 100) -> None:
        self._events: Deque[GenerationEvent] = deque(maxlen=maxlen)

    async def emit(self, event: GenerationEvent) -> None:
        self._events.append(event)

    def recent(
        self,
        event_type: Optional[GenerationEventType] = None,
    ) -> List[GenerationEvent]:
        """Return retained events, oldest first."""
        return [
            e for e in self._events
            if event_type is None or e.event_type == event_type
        ]

    def clear(self) -> None:
        self._events.clear()
