"""
Auto-generation trigger.

Observes response create/update events. When the response's form has an
active report template flagged for automatic generation, the pipeline is
re-run for that single response in individual mode, without imported
sources or calculated fields (those only exist inside an interactive
session). Stored mappings are checked against the catalog of
that narrower context, and a mapping that no longer resolves fails the
run.

The resulting report supersedes the previous auto-generated report of
the same (form, response) pair.

Best-effort: failures are logged and published on the notification
channel, never raised into the response write path.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from reporter.app.coordinator.generation import ReportGenerationCoordinator
from reporter.app.errors import AutoGenerationError
from reporter.app.events import (
    GenerationEvent,
    GenerationEventEmitter,
    GenerationEventType,
    NullEventEmitter,
)
from reporter.app.generation.catalog import DataContext, build_catalog
from reporter.app.generation.mapping import FieldMapping
from reporter.app.schemas.forms import FormResponse
from reporter.app.schemas.generation import (
    GenerationResult,
    GenerationStatus,
    ReportRequest,
)
from reporter.app.schemas.report import ReportMode, ReportPermissions
from reporter.app.schemas.template import ReportTemplate
from reporter.app.storage.forms import FormDirectory
from reporter.app.storage.template_repository import TemplateRepository

logger = logging.getLogger(__name__)


class AutoGenerationTrigger:

    def __init__(
        self,
        *,
        forms: FormDirectory,
        templates: TemplateRepository,
        coordinator: ReportGenerationCoordinator,
        notifications: Optional[GenerationEventEmitter] = None,
    ) -> None:
        self._forms = forms
        self._templates = templates
        self._coordinator = coordinator
        self._notifications = notifications or NullEventEmitter()

    async def on_response_saved(self, response: FormResponse) -> Optional[GenerationResult]:
        """
        Regenerate the report of ``response`` if its form asks for it.

        Returns the run result, or None when nothing ran or the run failed
        before producing a result. Never raises.
        """
        template = self._templates.get(response.form_id)
        if template is None or not template.auto_generate:
            return None

        run_id = str(uuid4())
        try:
            result = await self._run(response, template, run_id)
        except Exception as exc:
            error = AutoGenerationError(
                f"Auto-generation failed for response '{response.id}': {exc}"
            )
            logger.exception(
                "Auto-generation failed (form=%s response=%s)",
                response.form_id,
                response.id,
            )
            await self._notify(
                run_id,
                GenerationEventType.AUTO_GENERATION_FAILED,
                response,
                {"error_type": type(exc).__name__, "message": str(error)},
            )
            return None

        if result.status == GenerationStatus.SUCCESS:
            await self._notify(
                run_id,
                GenerationEventType.AUTO_GENERATION_COMPLETED,
                response,
                {"report_ids": result.report_ids},
            )
        else:
            logger.error(
                "Auto-generation produced no report (form=%s response=%s): %s",
                response.form_id,
                response.id,
                "; ".join(f.message for f in result.failures),
            )
            await self._notify(
                run_id,
                GenerationEventType.AUTO_GENERATION_FAILED,
                response,
                {
                    "error_type": AutoGenerationError.__name__,
                    "message": result.message,
                },
            )
        return result

    async def _run(
        self, response: FormResponse, template: ReportTemplate, run_id: str
    ) -> GenerationResult:
        prepared = await self._coordinator.load_template(template)

        # Imported sources, calculated values and fields since removed from
        # the form are absent from this catalog
        catalog = build_catalog(
            DataContext(form=self._forms.get(response.form_id), responses=[response])
        )
        mapping = FieldMapping(
            prepared.placeholders, catalog, initial=template.mappings
        ).require_complete()

        request = ReportRequest(
            responses=[response],
            mode=ReportMode.INDIVIDUAL,
            permissions=ReportPermissions(
                users=[response.user_id],
                roles=[response.user_role] if response.user_role else [],
            ),
        )
        return await self._coordinator.generate(
            request=request,
            template=prepared,
            mapping=mapping,
            created_by=response.user_id,
            auto_generated=True,
            run_id=run_id,
        )

    async def _notify(
        self,
        run_id: str,
        event_type: GenerationEventType,
        response: FormResponse,
        details: dict,
    ) -> None:
        try:
            await self._notifications.emit(
                GenerationEvent(
                    run_id=run_id,
                    event_type=event_type,
                    details={
                        "form_id": response.form_id,
                        "response_id": response.id,
                        **details,
                    },
                )
            )
        except Exception as exc:
            logger.warning("Notification emission failed: %s", exc)
