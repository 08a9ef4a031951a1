"""
HTTP request and response bodies.

Transport shapes only. Domain records (Report, Form, FormResponse,
GenerationResult) are returned as-is where they already fit.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reporter.app.schemas.fields import AvailableField, FieldRef
from reporter.app.schemas.report import Report, ReportMode, ReportPermissions


class WizardCreateRequest(BaseModel):
    """Responses come from the listed ids, or from every response of the listed forms."""

    form_ids: List[str] = Field(default_factory=list)
    response_ids: Optional[List[str]] = None
    mode: ReportMode = ReportMode.GENERAL

    model_config = ConfigDict(extra="forbid")


class WizardUpdateRequest(BaseModel):
    mode: Optional[ReportMode] = None
    form_ids: Optional[List[str]] = None
    auto_generate: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class SourceSummary(BaseModel):
    name: str
    headers: List[str]
    row_count: int


class CatalogEntry(BaseModel):
    field_id: str
    kind: str
    label: str

    @classmethod
    def from_field(cls, entry: AvailableField) -> "CatalogEntry":
        return cls(field_id=entry.field_id, kind=entry.ref.kind, label=entry.label)


class WizardState(BaseModel):
    id: str
    mode: ReportMode
    response_ids: List[str]
    sources: List[SourceSummary]
    calculated_fields: Dict[str, str]
    template_file_name: Optional[str] = None
    placeholders: List[str] = Field(default_factory=list)
    mappings: Dict[str, str] = Field(default_factory=dict)
    unmapped: List[str] = Field(default_factory=list)
    permissions: ReportPermissions
    auto_generate: bool


class TemplateFields(BaseModel):
    file_name: str
    placeholders: List[str]


class MappingUpdateRequest(BaseModel):
    """Placeholder -> display field id. ``None`` clears an assignment."""

    mappings: Dict[str, Optional[str]]

    model_config = ConfigDict(extra="forbid")


class MappingState(BaseModel):
    mappings: Dict[str, FieldRef]
    unmapped: List[str]


class ReportSummary(BaseModel):
    id: str
    title: str
    description: str
    mode: ReportMode
    form_id: Optional[str] = None
    auto_generated: bool
    file_name: str
    created_by: str
    created_at: datetime

    @classmethod
    def from_report(cls, report: Report) -> "ReportSummary":
        return cls(
            id=report.id,
            title=report.title,
            description=report.description,
            mode=report.mode,
            form_id=report.form_id,
            auto_generated=report.auto_generated,
            file_name=report.output.file_name,
            created_by=report.created_by,
            created_at=report.created_at,
        )
