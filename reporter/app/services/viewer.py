"""
Report viewer support: permission-filtered listing, artifact retrieval and
deletion.

A report the identity may not see is reported exactly like a missing one.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from reporter.app.errors import ReportNotFoundError
from reporter.app.schemas.report import Identity, Report
from reporter.app.storage.artifacts import ArtifactStore
from reporter.app.storage.report_repository import ReportRepository

logger = logging.getLogger(__name__)


class ReportViewerService:

    def __init__(self, *, reports: ReportRepository, artifacts: ArtifactStore) -> None:
        self._reports = reports
        self._artifacts = artifacts

    def list_for(self, identity: Identity, search: Optional[str] = None) -> List[Report]:
        return self._reports.list_for(identity, search)

    def get(self, report_id: str, identity: Identity) -> Report:
        report = self._reports.get(report_id)
        if report is None or not report.is_visible_to(identity):
            raise ReportNotFoundError(f"Report '{report_id}' not found")
        return report

    async def open(self, report_id: str, identity: Identity) -> Tuple[Report, bytes]:
        """
        Fetch a report and its document bytes.

        Raises:
            ReportNotFoundError: unknown or not visible to ``identity``.
            ArtifactLoadError: the artifact is missing or fails its digest check.
        """
        report = self.get(report_id, identity)
        content = await self._artifacts.load(
            report.output.locator,
            digest=report.output.digest,
        )
        return report, content

    async def delete(self, report_id: str, identity: Identity) -> Report:
        report = self.get(report_id, identity)
        removed = await self._reports.delete(report.id)
        if removed is None:
            raise ReportNotFoundError(f"Report '{report_id}' not found")

        # Template artifacts are shared between reports and stay
        if not await self._artifacts.delete(removed.output.locator):
            logger.warning("Artifact of report %s was already gone", removed.id)
        logger.info("Deleted report %s", removed.id)
        return removed


def download_name(report: Report) -> str:
    """File name offered when a viewer downloads a report."""
    stem = report.title.replace("/", "_").replace("\\", "_")
    return f"{stem}.docx"
