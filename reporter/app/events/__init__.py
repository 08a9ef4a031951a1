from .models import GenerationEvent, GenerationEventType
from .emitter import GenerationEventEmitter, NullEventEmitter
from .memory_emitter import MemoryQueueEventEmitter
from .notification_log import NotificationLog

__all__ = [
    "GenerationEvent",
    "GenerationEventType",
    "GenerationEventEmitter",
    "NullEventEmitter",
    "MemoryQueueEventEmitter",
    "NotificationLog",
]
