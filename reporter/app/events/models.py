from __future__ import annotations

import json
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class GenerationEventType(str, Enum):
    """
    Progression events emitted while reports are generated.

    NOTE:
    New entries must preserve observational semantics.
    """

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_REJECTED = "generation_rejected"

    # ------------------------------------------------------------------
    # Per-job outcomes
    # ------------------------------------------------------------------
    REPORT_GENERATED = "report_generated"
    REPORT_FAILED = "report_failed"

    # ------------------------------------------------------------------
    # Auto-generation (response write path)
    # ------------------------------------------------------------------
    AUTO_GENERATION_COMPLETED = "auto_generation_completed"
    AUTO_GENERATION_FAILED = "auto_generation_failed"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class GenerationEvent(BaseModel):
    """
    An immutable observation of a generation run.

    Events are strictly observational and transport-agnostic.
    """

    event_id: UUID = Field(default_factory=uuid4)
    run_id: str = Field(..., description="Identifier of the generation run")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: GenerationEventType

    # Optional contextual metadata (report_id, response_id, counts, etc.)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    def to_sse_payload(self) -> str:
        """Serialize as a single Server-Sent Events frame."""
        data = json.dumps(self.model_dump(mode="json"), ensure_ascii=False)
        return f"event: {self.event_type.value}\ndata: {data}\n\n"
