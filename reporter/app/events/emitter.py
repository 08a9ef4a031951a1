from __future__ import annotations

from typing import Protocol

from reporter.app.events.models import GenerationEvent


class GenerationEventEmitter(Protocol):
    """
    Receiver of report generation events.

    The coordinator reports progress through ``emit`` and ignores whatever
    happens on the receiving side. A slow or failing receiver delays
    nothing but its own delivery; generated reports do not depend on it.
    """

    async def emit(self, event: GenerationEvent) -> None:
        ...


class NullEventEmitter:
    """Discards every event. Default receiver of runs nobody watches."""

    async def emit(self, event: GenerationEvent) -> None:
        return
