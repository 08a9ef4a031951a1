"""
Report repository.

Holds the full set of persisted Report records in memory and mirrors
every mutation to a durable JSON file. Filtering is in-memory over the
full set; there is no pagination.

Each mutation builds a new snapshot, persists it, and only then swaps it
in, so a failed write leaves the in-memory state untouched. Mutations
are serialized with a lock because concurrent requests share the store.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import anyio

from reporter.app.schemas.report import Identity, Report
from reporter.app.storage.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

STORAGE_VERSION = 1


def migrate_payload(payload: Any) -> List[Dict[str, Any]]:
    """
    Upgrade a stored document to the current record layout.

    Version 0 files are a bare list of reports (or carry ``version: 0``)
    and may lack a permissions block.
    """
    if isinstance(payload, list):
        version, records = 0, payload
    else:
        version = payload.get("version", 0)
        records = payload.get("reports", [])

    if version == 0:
        logger.info("Migrating %d report record(s) from version 0", len(records))
        records = [
            {
                **record,
                "permissions": record.get("permissions")
                or {"users": [], "subnets": [], "roles": []},
            }
            for record in records
        ]

    return records


class ReportRepository:

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._reports: Tuple[Report, ...] = ()
        self._lock = anyio.Lock()

    @classmethod
    async def open(cls, path: Optional[Path]) -> "ReportRepository":
        """Create a repository and load any previously persisted records."""
        repository = cls(path)
        if path is not None:
            payload = await read_json(path)
            if payload is not None:
                records = migrate_payload(payload)
                repository._reports = tuple(
                    Report.model_validate(record) for record in records
                )
                logger.info(
                    "Loaded %d report(s) from %s",
                    len(repository._reports),
                    path,
                )
        return repository

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _commit(self, snapshot: Tuple[Report, ...]) -> None:
        if self._path is not None:
            await write_json_atomic(
                self._path,
                {
                    "version": STORAGE_VERSION,
                    "reports": [r.model_dump(mode="json") for r in snapshot],
                },
            )
        self._reports = snapshot

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add(self, report: Report) -> None:
        async with self._lock:
            if any(r.id == report.id for r in self._reports):
                raise ValueError(f"Report '{report.id}' already exists")
            await self._commit(self._reports + (report,))

    async def update(self, report: Report) -> None:
        """
        Full replace by id.

        Raises:
            KeyError: no report with that id.
        """
        async with self._lock:
            if not any(r.id == report.id for r in self._reports):
                raise KeyError(report.id)
            await self._commit(
                tuple(report if r.id == report.id else r for r in self._reports)
            )

    async def delete(self, report_id: str) -> Optional[Report]:
        async with self._lock:
            removed = self.get(report_id)
            if removed is None:
                return None
            await self._commit(
                tuple(r for r in self._reports if r.id != report_id)
            )
            return removed

    async def supersede(self, report: Report) -> List[Report]:
        """
        Add ``report`` and drop prior auto-generated reports of the same
        (form, response) pair. Returns the superseded records.
        """
        async with self._lock:
            superseded = [
                r for r in self._reports
                if r.auto_generated
                and r.form_id == report.form_id
                and r.response_id == report.response_id
                and r.id != report.id
            ]
            kept = tuple(r for r in self._reports if r not in superseded)
            await self._commit(kept + (report,))
            return superseded

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, report_id: str) -> Optional[Report]:
        for report in self._reports:
            if report.id == report_id:
                return report
        return None

    def list_all(self) -> List[Report]:
        return list(self._reports)

    def list_for(self, identity: Identity, search: Optional[str] = None) -> List[Report]:
        """
        Reports visible to ``identity``: its own, plus those shared with
        its user id, role or subnet, filtered by a title/description search.
        """
        return [
            report for report in self._reports
            if report.is_visible_to(identity) and report.matches_search(search)
        ]

    def __len__(self) -> int:
        return len(self._reports)
