"""
Generation request and result schemas.

A GenerationResult summarizes one generation run. Individual mode runs
every job to completion or failure independently, so a run can end in
partial failure: the reports that were generated stay persisted.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reporter.app.schemas.forms import FormResponse
from reporter.app.schemas.imports import ImportedSource
from reporter.app.schemas.report import ReportMode, ReportPermissions


class ReportRequest(BaseModel):
    """Input of the data aggregator."""

    responses: List[FormResponse] = Field(default_factory=list)
    mode: ReportMode = ReportMode.GENERAL
    imported_sources: List[ImportedSource] = Field(default_factory=list)
    calculated_fields: Dict[str, str] = Field(
        default_factory=dict,
        description="Calculated field name -> pre-computed value",
    )
    permissions: ReportPermissions = Field(default_factory=ReportPermissions)

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerationStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class JobFailure(BaseModel):
    job_index: int = Field(..., ge=0)
    response_id: Optional[str] = None
    error_type: str
    message: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class GenerationResult(BaseModel):
    run_id: str
    status: GenerationStatus
    report_ids: List[str] = Field(default_factory=list)
    failures: List[JobFailure] = Field(default_factory=list)
    message: str = Field("", description="User-facing summary notification")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def jobs_attempted(self) -> int:
        return len(self.report_ids) + len(self.failures)

    @classmethod
    def summarize(
        cls,
        *,
        run_id: str,
        report_ids: List[str],
        failures: List[JobFailure],
    ) -> "GenerationResult":
        if not failures:
            status = GenerationStatus.SUCCESS
            message = "Informe(s) generado(s) correctamente"
        elif report_ids:
            status = GenerationStatus.PARTIAL_FAILURE
            message = (
                f"Se generaron {len(report_ids)} de "
                f"{len(report_ids) + len(failures)} informes"
            )
        else:
            status = GenerationStatus.FAILURE
            message = "Error al generar el informe"

        return cls(
            run_id=run_id,
            status=status,
            report_ids=list(report_ids),
            failures=list(failures),
            message=message,
        )
