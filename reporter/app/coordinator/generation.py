"""
Report generation coordinator.

Drives one generation run through the pipeline:

    1. Validation (hard gate: NoDataError, IncompleteMappingError)
    2. Aggregation into rendering jobs
    3. Per job: render -> store artifact -> persist Report -> deliver download

Validation failures abort the run before anything is written. Once jobs
start, each runs to completion or failure independently: a failure on
job N never rolls back jobs 1..N-1, and the run is summarized as
success, partial failure or failure after every job was attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence
from uuid import uuid4

import anyio

from reporter.app.codecs import docx_codec
from reporter.app.config import ReporterSettings
from reporter.app.errors import IncompleteMappingError
from reporter.app.generation.aggregator import DataAggregator, RenderJob
from reporter.app.generation.extractor import extract_placeholders
from reporter.app.generation.renderer import DocumentRenderer, RenderedDocument
from reporter.app.schemas.fields import FieldRef
from reporter.app.schemas.generation import GenerationResult, JobFailure, ReportRequest
from reporter.app.schemas.report import (
    Report,
    ReportDataSnapshot,
    ReportMode,
    ReportOutput,
    TemplateReference,
)
from reporter.app.schemas.template import ReportTemplate, TemplateDocument
from reporter.app.storage.artifacts import ArtifactStore
from reporter.app.storage.downloads import DownloadSink, NullDownloadSink
from reporter.app.storage.report_repository import ReportRepository

# Events (observational only)
from reporter.app.events import (
    GenerationEvent,
    GenerationEventType,
    GenerationEventEmitter,
    NullEventEmitter,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedTemplate:
    """A template whose content is stored and whose text is decoded."""

    reference: TemplateReference
    text: str
    placeholders: List[str]


class ReportGenerationCoordinator:

    def __init__(
        self,
        *,
        reports: ReportRepository,
        artifacts: ArtifactStore,
        aggregator: Optional[DataAggregator] = None,
        renderer: Optional[DocumentRenderer] = None,
        downloads: Optional[DownloadSink] = None,
    ) -> None:
        self._reports = reports
        self._artifacts = artifacts
        self._aggregator = aggregator or DataAggregator()
        self._renderer = renderer or DocumentRenderer()
        self._downloads = downloads or NullDownloadSink()

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: ReporterSettings,
        *,
        reports: ReportRepository,
        artifacts: ArtifactStore,
        downloads: Optional[DownloadSink] = None,
    ) -> "ReportGenerationCoordinator":
        return cls(
            reports=reports,
            artifacts=artifacts,
            aggregator=DataAggregator(timestamp_format=settings.timestamp_format),
            renderer=DocumentRenderer(),
            downloads=downloads,
        )

    @property
    def reports(self) -> ReportRepository:
        return self._reports

    @property
    def artifacts(self) -> ArtifactStore:
        return self._artifacts

    # ------------------------------------------------------------------
    # Template preparation
    # ------------------------------------------------------------------

    async def prepare_template(self, document: TemplateDocument) -> PreparedTemplate:
        """Store an uploaded template once for all jobs of a run."""
        locator = await self._artifacts.put(document.content, ".docx")
        return PreparedTemplate(
            reference=TemplateReference(
                locator=locator,
                file_name=document.file_name,
                fields=document.placeholders,
            ),
            text=document.text,
            placeholders=list(document.placeholders),
        )

    async def load_template(self, template: ReportTemplate) -> PreparedTemplate:
        """Decode the stored content of a form's active report template."""
        content = await self._artifacts.load(template.locator)
        text = await anyio.to_thread.run_sync(docx_codec.extract_text, content)
        return PreparedTemplate(
            reference=TemplateReference(
                locator=template.locator,
                file_name=template.file_name,
                fields=template.fields,
            ),
            text=text,
            placeholders=extract_placeholders(text),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        *,
        request: ReportRequest,
        template: PreparedTemplate,
        mapping: Mapping[str, FieldRef],
        created_by: str,
        auto_generated: bool = False,
        run_id: Optional[str] = None,
        emitter: Optional[GenerationEventEmitter] = None,
    ) -> GenerationResult:
        """
        Execute a generation run.

        Raises:
            NoDataError: no responses selected (nothing is written).
            IncompleteMappingError: unmapped placeholder (nothing is written).
        """
        emitter = emitter or NullEventEmitter()
        run_id = run_id or str(uuid4())

        await self._emit(
            emitter,
            run_id,
            GenerationEventType.GENERATION_STARTED,
            {"mode": request.mode.value, "responses": len(request.responses)},
        )

        # --------------------------------------------------------------
        # 1. Validation (HARD GATE)
        # --------------------------------------------------------------
        try:
            unmapped = [p for p in template.placeholders if p not in mapping]
            if unmapped:
                raise IncompleteMappingError(unmapped)
            jobs = self._aggregator.build_jobs(request)
        except Exception as exc:
            await self._emit(
                emitter,
                run_id,
                GenerationEventType.GENERATION_REJECTED,
                {"error_type": type(exc).__name__, "message": str(exc)},
            )
            raise

        # --------------------------------------------------------------
        # 2. Jobs (independent, partial success allowed)
        # --------------------------------------------------------------
        report_ids: List[str] = []
        failures: List[JobFailure] = []

        for job in jobs:
            try:
                report = await self._run_job(
                    job,
                    request=request,
                    template=template,
                    mapping=mapping,
                    created_by=created_by,
                    auto_generated=auto_generated,
                )
            except Exception as exc:
                logger.exception(
                    "Report job %d failed (run=%s response=%s)",
                    job.index,
                    run_id,
                    job.response.id,
                )
                failures.append(
                    JobFailure(
                        job_index=job.index,
                        response_id=job.response.id,
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )
                await self._emit(
                    emitter,
                    run_id,
                    GenerationEventType.REPORT_FAILED,
                    {
                        "job_index": job.index,
                        "response_id": job.response.id,
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            report_ids.append(report.id)
            await self._emit(
                emitter,
                run_id,
                GenerationEventType.REPORT_GENERATED,
                {
                    "job_index": job.index,
                    "report_id": report.id,
                    "file_name": report.output.file_name,
                },
            )

        # --------------------------------------------------------------
        # 3. Summary
        # --------------------------------------------------------------
        result = GenerationResult.summarize(
            run_id=run_id,
            report_ids=report_ids,
            failures=failures,
        )
        logger.info(
            "Generation run %s finished: %s (%d generated, %d failed)",
            run_id,
            result.status.value,
            len(report_ids),
            len(failures),
        )
        await self._emit(
            emitter,
            run_id,
            GenerationEventType.GENERATION_COMPLETED,
            {
                "status": result.status.value,
                "report_ids": report_ids,
                "failed": len(failures),
                "message": result.message,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def _run_job(
        self,
        job: RenderJob,
        *,
        request: ReportRequest,
        template: PreparedTemplate,
        mapping: Mapping[str, FieldRef],
        created_by: str,
        auto_generated: bool,
    ) -> Report:
        rendered = await self._renderer.render(
            job,
            template_text=template.text,
            placeholders=template.placeholders,
            mapping=mapping,
        )

        locator = await self._artifacts.put(rendered.content, ".docx")
        report = self._build_report(
            job,
            rendered=rendered,
            locator=locator,
            request=request,
            template=template,
            created_by=created_by,
            auto_generated=auto_generated,
        )

        try:
            if auto_generated:
                superseded = await self._reports.supersede(report)
                await self._discard_artifacts(superseded)
            else:
                await self._reports.add(report)
        except Exception:
            await self._artifacts.delete(locator)
            raise

        await self._deliver(rendered)
        return report

    def _build_report(
        self,
        job: RenderJob,
        *,
        rendered: RenderedDocument,
        locator: str,
        request: ReportRequest,
        template: PreparedTemplate,
        created_by: str,
        auto_generated: bool,
    ) -> Report:
        response = job.response

        if job.mode == ReportMode.INDIVIDUAL:
            title = f"Informe - {response.user_name}"
            description = (
                "Informe generado para la respuesta del formulario"
                if auto_generated
                else f"Informe generado para {response.user_name}"
            )
            responses: Sequence = [response]
            response_id: Optional[str] = response.id
        else:
            title = "Informe General"
            description = "Informe generado para múltiples respuestas"
            responses = request.responses
            response_id = None

        return Report(
            id=str(uuid4()),
            title=title,
            description=description,
            mode=job.mode,
            form_id=response.form_id,
            response_id=response_id,
            auto_generated=auto_generated,
            template=template.reference,
            data=ReportDataSnapshot(
                responses=list(responses),
                imported_sources=list(request.imported_sources),
                calculated_fields=dict(request.calculated_fields),
            ),
            permissions=request.permissions,
            output=ReportOutput(
                locator=locator,
                file_name=rendered.file_name,
                digest=rendered.digest,
                generated_at=rendered.generated_at,
            ),
            created_by=created_by,
            created_at=rendered.generated_at,
            updated_at=rendered.generated_at,
        )

    async def _discard_artifacts(self, reports: Sequence[Report]) -> None:
        for report in reports:
            try:
                await self._artifacts.delete(report.output.locator)
            except Exception as exc:
                logger.warning(
                    "Failed to remove artifact of superseded report %s: %s",
                    report.id,
                    exc,
                )

    async def _deliver(self, rendered: RenderedDocument) -> None:
        # The report is already persisted and retrievable by then
        try:
            await self._downloads.deliver(rendered.file_name, rendered.content)
        except Exception as exc:
            logger.warning("Download delivery of %s failed: %s", rendered.file_name, exc)

    @staticmethod
    async def _emit(
        emitter: GenerationEventEmitter,
        run_id: str,
        event_type: GenerationEventType,
        details: Optional[dict] = None,
    ) -> None:
        try:
            await emitter.emit(
                GenerationEvent(
                    run_id=run_id,
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception as exc:
            logger.warning("Event emission failed (%s): %s", event_type.value, exc)
