from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from reporter.app.schemas.fields import FieldRef


class TemplateDocument(BaseModel):
    """A decoded template upload: raw container bytes plus extracted text."""

    file_name: str
    content: bytes = Field(repr=False)
    text: str
    placeholders: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportTemplate(BaseModel):
    """
    The active report template of a form (at most one per form).

    Consumed by interactive generation and by the auto-generation trigger.
    """

    form_id: str
    locator: str = Field(..., description="Artifact store locator of the template bytes")
    file_name: str
    fields: List[str] = Field(default_factory=list)
    mappings: Dict[str, FieldRef] = Field(default_factory=dict)
    auto_generate: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")
