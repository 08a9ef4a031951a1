"""
Report record schema.

A Report is the only durable state owned by the generation engine. Its
data snapshot is immutable once generated: regeneration issues a new
Report, it never mutates an existing one in place. The auto-generation
path supersedes the previous report of the same (form, response) pair
by replacing it with a freshly issued record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reporter.app.schemas.forms import FormResponse
from reporter.app.schemas.imports import ImportedSource


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportMode(str, Enum):
    """
    INDIVIDUAL renders one document per selected response.
    GENERAL renders exactly one document from the first selected response.
    """

    INDIVIDUAL = "individual"
    GENERAL = "general"


class Identity(BaseModel):
    """Acting identity supplied by the authentication collaborator."""

    user_id: str = Field(..., min_length=1)
    role: Optional[str] = None
    subnet: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportPermissions(BaseModel):
    """
    Explicit access scope. The report creator always has implicit access,
    so empty lists never lock a report away from everyone.
    """

    users: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)
    subnets: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class TemplateReference(BaseModel):
    locator: str = Field(..., description="Artifact store locator of the template")
    file_name: str
    fields: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportDataSnapshot(BaseModel):
    responses: List[FormResponse] = Field(default_factory=list)
    imported_sources: List[ImportedSource] = Field(default_factory=list)
    calculated_fields: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ReportOutput(BaseModel):
    locator: str = Field(..., description="Artifact store locator of the document")
    file_name: str
    digest: str = Field(..., description="SHA-256 digest of the artifact bytes")
    generated_at: datetime

    model_config = ConfigDict(frozen=True, extra="forbid")


class Report(BaseModel):
    id: str = Field(..., min_length=1, description="Globally unique (uuid4)")
    title: str
    description: str = ""
    mode: ReportMode

    form_id: Optional[str] = None
    response_id: Optional[str] = Field(
        None,
        description="Source response of an individual report",
    )
    auto_generated: bool = False

    template: TemplateReference
    data: ReportDataSnapshot
    permissions: ReportPermissions = Field(default_factory=ReportPermissions)
    output: ReportOutput

    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def is_visible_to(self, identity: Identity) -> bool:
        if identity.user_id == self.created_by:
            return True
        if identity.user_id in self.permissions.users:
            return True
        if identity.role is not None and identity.role in self.permissions.roles:
            return True
        if identity.subnet is not None and identity.subnet in self.permissions.subnets:
            return True
        return False

    def matches_search(self, term: Optional[str]) -> bool:
        if not term:
            return True
        needle = term.lower()
        return needle in self.title.lower() or needle in self.description.lower()
