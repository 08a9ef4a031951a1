"""
Form and response records consumed from the form-builder and
response-collection collaborators.

Field identity is by id, never by label: labels may repeat or change.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FormStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class ResponseStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class FormField(BaseModel):
    id: str = Field(..., min_length=1, description="Stable id, unique within the form")
    type: str = Field("text", description="Field widget type (text, number, select, ...)")
    label: str = Field("", description="Human label shown in the form")
    required: bool = False


class Form(BaseModel):
    """
    A form definition as produced by the visual form builder.
    """

    id: str = Field(..., min_length=1)
    title: str
    fields: List[FormField] = Field(default_factory=list)
    assigned_roles: List[str] = Field(default_factory=list)
    status: FormStatus = FormStatus.DRAFT

    # Scheduling window
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    # Response policy
    allow_multiple_responses: bool = False
    allow_response_modification: bool = True

    created_by: Optional[str] = None

    @model_validator(mode="after")
    def field_ids_are_unique(self) -> "Form":
        seen = set()
        for field in self.fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id '{field.id}' in form '{self.id}'")
            seen.add(field.id)
        return self

    def is_accepting_responses(self, at: datetime) -> bool:
        if self.status != FormStatus.PUBLISHED:
            return False
        if self.starts_at is not None and at < self.starts_at:
            return False
        if self.ends_at is not None and at > self.ends_at:
            return False
        return True


class FormResponse(BaseModel):
    """
    A response record as produced by the response-collection UI.
    """

    id: str = Field(..., min_length=1)
    form_id: str
    user_id: str
    user_name: str = ""
    user_role: str = ""
    responses: Dict[str, Any] = Field(
        default_factory=dict,
        description="Submitted values keyed by form field id",
    )
    submission_timestamp: Optional[datetime] = None
    last_modified_timestamp: datetime
    status: ResponseStatus = ResponseStatus.DRAFT

    model_config = ConfigDict(extra="ignore")

    @property
    def effective_timestamp(self) -> datetime:
        """Submission time when known, last modification otherwise."""
        return self.submission_timestamp or self.last_modified_timestamp
