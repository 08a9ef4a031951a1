"""
Report template repository: at most one active template per form.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import anyio

from reporter.app.schemas.template import ReportTemplate
from reporter.app.storage.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

STORAGE_VERSION = 1


class TemplateRepository:

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._templates: Dict[str, ReportTemplate] = {}
        self._lock = anyio.Lock()

    @classmethod
    async def open(cls, path: Optional[Path]) -> "TemplateRepository":
        repository = cls(path)
        if path is not None:
            payload = await read_json(path)
            if payload is not None:
                for record in payload.get("templates", []):
                    template = ReportTemplate.model_validate(record)
                    repository._templates[template.form_id] = template
                logger.info(
                    "Loaded %d report template(s) from %s",
                    len(repository._templates),
                    path,
                )
        return repository

    async def _commit(self, snapshot: Dict[str, ReportTemplate]) -> None:
        if self._path is not None:
            await write_json_atomic(
                self._path,
                {
                    "version": STORAGE_VERSION,
                    "templates": [
                        t.model_dump(mode="json") for t in snapshot.values()
                    ],
                },
            )
        self._templates = snapshot

    async def set(self, template: ReportTemplate) -> Optional[ReportTemplate]:
        """Create or replace the template of a form. Returns the replaced one."""
        async with self._lock:
            previous = self._templates.get(template.form_id)
            await self._commit({**self._templates, template.form_id: template})
            return previous

    async def delete(self, form_id: str) -> Optional[ReportTemplate]:
        async with self._lock:
            if form_id not in self._templates:
                return None
            snapshot = dict(self._templates)
            removed = snapshot.pop(form_id)
            await self._commit(snapshot)
            return removed

    def get(self, form_id: str) -> Optional[ReportTemplate]:
        return self._templates.get(form_id)

    def list_all(self) -> List[ReportTemplate]:
        return list(self._templates.values())
