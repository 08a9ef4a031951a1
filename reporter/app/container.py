"""
Composition root.

Wires settings, stores and services once per process. Every collaborator
is passed explicitly; nothing below this module reads ambient state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Set

import anyio

from reporter.app.config import ReporterSettings
from reporter.app.coordinator.generation import ReportGenerationCoordinator
from reporter.app.events import NotificationLog
from reporter.app.services.auto_generation import AutoGenerationTrigger
from reporter.app.services.responses import ResponseService
from reporter.app.services.viewer import ReportViewerService
from reporter.app.services.wizard import WizardRegistry
from reporter.app.storage.artifacts import ArtifactStore
from reporter.app.storage.downloads import DirectoryDownloadSink, NullDownloadSink
from reporter.app.storage.forms import InMemoryFormDirectory, ResponseRepository
from reporter.app.storage.report_repository import ReportRepository
from reporter.app.storage.template_repository import TemplateRepository

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: ReporterSettings
    forms: InMemoryFormDirectory
    responses: ResponseRepository
    reports: ReportRepository
    templates: TemplateRepository
    artifacts: ArtifactStore
    notifications: NotificationLog
    coordinator: ReportGenerationCoordinator
    trigger: AutoGenerationTrigger
    response_service: ResponseService
    viewer: ReportViewerService
    wizards: WizardRegistry
    background_tasks: Set = field(default_factory=set)

    @classmethod
    async def build(
        cls,
        settings: ReporterSettings,
        *,
        forms: Optional[InMemoryFormDirectory] = None,
        responses: Optional[ResponseRepository] = None,
    ) -> "ServiceContainer":
        await anyio.Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)

        reports = await ReportRepository.open(settings.reports_file)
        templates = await TemplateRepository.open(settings.templates_file)
        artifacts = ArtifactStore(settings.artifacts_dir)
        downloads = (
            DirectoryDownloadSink(settings.downloads_dir)
            if settings.downloads_dir is not None
            else NullDownloadSink()
        )

        forms = forms if forms is not None else InMemoryFormDirectory()
        responses = responses if responses is not None else ResponseRepository()
        notifications = NotificationLog(maxlen=settings.notification_buffer_size)

        coordinator = ReportGenerationCoordinator.from_settings(
            settings,
            reports=reports,
            artifacts=artifacts,
            downloads=downloads,
        )
        trigger = AutoGenerationTrigger(
            forms=forms,
            templates=templates,
            coordinator=coordinator,
            notifications=notifications,
        )

        logger.info(
            "Report engine ready (storage=%s, reports=%d, templates=%d)",
            settings.storage_dir,
            len(reports),
            len(templates.list_all()),
        )

        return cls(
            settings=settings,
            forms=forms,
            responses=responses,
            reports=reports,
            templates=templates,
            artifacts=artifacts,
            notifications=notifications,
            coordinator=coordinator,
            trigger=trigger,
            response_service=ResponseService(
                forms=forms,
                responses=responses,
                trigger=trigger,
            ),
            viewer=ReportViewerService(reports=reports, artifacts=artifacts),
            wizards=WizardRegistry(
                idle_timeout=timedelta(minutes=settings.wizard_idle_timeout_minutes),
            ),
        )
