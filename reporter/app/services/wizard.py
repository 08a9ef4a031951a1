"""
Interactive report wizard.

One wizard is one report-generation session:

    1. Data selection: responses (optionally filtered by form), mode,
       imported spreadsheets
    2. Calculated fields
    3. Template upload and placeholder mapping
    4. Permissions, then generation

Every step validates inline. Nothing reaches the report repository until
``generate`` runs; ``close`` discards the session without writing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import PurePath
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

import anyio

from reporter.app.codecs.spreadsheet import extract_table
from reporter.app.config import ReporterSettings
from reporter.app.coordinator.generation import ReportGenerationCoordinator
from reporter.app.errors import (
    DataImportError,
    NoDataError,
    TemplateValidationError,
    WizardClosedError,
)
from reporter.app.events import GenerationEventEmitter
from reporter.app.generation.catalog import DataContext, FieldCatalog, build_catalog
from reporter.app.generation.extractor import load_template
from reporter.app.generation.mapping import FieldMapping
from reporter.app.schemas.fields import CalculatedField, ExternalField, FieldRef
from reporter.app.schemas.forms import FormResponse
from reporter.app.schemas.generation import GenerationResult, ReportRequest
from reporter.app.schemas.imports import ImportedSource
from reporter.app.schemas.report import Identity, ReportMode, ReportPermissions, utcnow
from reporter.app.schemas.template import ReportTemplate, TemplateDocument
from reporter.app.storage.forms import FormDirectory
from reporter.app.storage.template_repository import TemplateRepository

logger = logging.getLogger(__name__)


def unique_source_name(stem: str, taken: Iterable[str]) -> str:
    """``stem``, or ``stem (2)``, ``stem (3)``... when already taken."""
    taken = set(taken)
    if stem not in taken:
        return stem
    counter = 2
    while f"{stem} ({counter})" in taken:
        counter += 1
    return f"{stem} ({counter})"


class ReportWizard:

    def __init__(
        self,
        *,
        identity: Identity,
        responses: Sequence[FormResponse],
        forms: FormDirectory,
        coordinator: ReportGenerationCoordinator,
        templates: TemplateRepository,
        settings: ReporterSettings,
        wizard_id: Optional[str] = None,
    ) -> None:
        self.id = wizard_id or str(uuid4())
        self.identity = identity

        self._forms = forms
        self._coordinator = coordinator
        self._templates = templates
        self._settings = settings

        self._responses: List[FormResponse] = list(responses)
        self._form_filter: Optional[List[str]] = None
        self._mode = ReportMode.GENERAL
        self._sources: List[ImportedSource] = []
        self._calculated: Dict[str, str] = {}
        self._template: Optional[TemplateDocument] = None
        self._mapping: Optional[FieldMapping] = None
        self._permissions = ReportPermissions()
        self._auto_generate = True
        self._closed = False

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise WizardClosedError(f"Wizard '{self.id}' is closed")

    @property
    def mode(self) -> ReportMode:
        return self._mode

    @property
    def sources(self) -> List[ImportedSource]:
        return list(self._sources)

    @property
    def calculated_fields(self) -> Dict[str, str]:
        return dict(self._calculated)

    @property
    def template(self) -> Optional[TemplateDocument]:
        return self._template

    @property
    def mapping(self) -> Optional[FieldMapping]:
        return self._mapping

    @property
    def permissions(self) -> ReportPermissions:
        return self._permissions

    @property
    def auto_generate(self) -> bool:
        return self._auto_generate and self._mode == ReportMode.INDIVIDUAL

    @property
    def selected_responses(self) -> List[FormResponse]:
        if self._form_filter is None:
            return list(self._responses)
        return [r for r in self._responses if r.form_id in self._form_filter]

    def data_context(self) -> DataContext:
        responses = self.selected_responses
        form = self._forms.get(responses[0].form_id) if responses else None
        return DataContext(
            form=form,
            responses=responses,
            calculated_fields=self._calculated,
            imported_sources=self._sources,
        )

    def catalog(self) -> FieldCatalog:
        self._ensure_open()
        return build_catalog(self.data_context())

    def _refresh_mapping(self) -> None:
        # Assignments survive, the catalog they are checked against is rebuilt
        if self._template is None:
            return
        previous = self._mapping.as_dict() if self._mapping is not None else None
        self._mapping = FieldMapping(
            self._template.placeholders,
            build_catalog(self.data_context()),
            initial=previous,
        )

    # ------------------------------------------------------------------
    # Step 1: data selection
    # ------------------------------------------------------------------

    def filter_forms(self, form_ids: Optional[Iterable[str]]) -> None:
        self._ensure_open()
        self._form_filter = None if form_ids is None else list(form_ids)
        self._refresh_mapping()

    def set_mode(self, mode: ReportMode) -> None:
        self._ensure_open()
        self._mode = ReportMode(mode)

    async def add_source(self, file_name: str, content: bytes) -> ImportedSource:
        """
        Import a spreadsheet as a named external data source.

        Raises:
            DataImportError: unsupported type, oversized or unreadable file.
        """
        self._ensure_open()

        suffix = PurePath(file_name).suffix.lower()
        if suffix not in self._settings.data_extensions:
            raise DataImportError(
                f"Unsupported data file type '{suffix or file_name}'. "
                f"Allowed: {', '.join(self._settings.data_extensions)}"
            )
        if len(content) > self._settings.max_upload_size_bytes:
            raise DataImportError(
                f"Data file exceeds maximum allowed size of "
                f"{self._settings.max_upload_size_mb} MB"
            )

        headers, rows = await anyio.to_thread.run_sync(extract_table, file_name, content)
        source = ImportedSource(
            name=unique_source_name(
                PurePath(file_name).stem or "datos",
                (s.name for s in self._sources),
            ),
            headers=headers,
            rows=rows,
        )
        self._sources.append(source)
        self._refresh_mapping()

        logger.info(
            "Wizard %s imported source '%s' (%d columns, %d rows)",
            self.id,
            source.name,
            len(source.headers),
            len(source.rows),
        )
        return source

    def remove_source(self, name: str) -> bool:
        self._ensure_open()
        kept = [s for s in self._sources if s.name != name]
        removed = len(kept) != len(self._sources)
        self._sources = kept
        if removed:
            self._refresh_mapping()
        return removed

    # ------------------------------------------------------------------
    # Step 2: calculated fields
    # ------------------------------------------------------------------

    def set_calculated_fields(self, values: Mapping[str, str]) -> None:
        self._ensure_open()
        self._calculated = {str(k): str(v) for k, v in values.items()}
        self._refresh_mapping()

    # ------------------------------------------------------------------
    # Step 3: template and mapping
    # ------------------------------------------------------------------

    async def set_template(self, file_name: str, content: bytes) -> TemplateDocument:
        """
        Load a template; any previous template and its mapping are discarded.

        Raises:
            TemplateValidationError: rejected or undecodable upload.
        """
        self._ensure_open()
        document = await load_template(
            file_name,
            content,
            allowed_extensions=self._settings.template_extensions,
            max_size_bytes=self._settings.max_upload_size_bytes,
        )
        self._template = document
        self._mapping = None
        self._refresh_mapping()
        return document

    def map_field(self, placeholder: str, field_id: str) -> FieldRef:
        self._ensure_open()
        if self._mapping is None:
            raise TemplateValidationError("Debes seleccionar una plantilla")
        return self._mapping.assign(placeholder, field_id)

    def unmap_field(self, placeholder: str) -> None:
        self._ensure_open()
        if self._mapping is not None:
            self._mapping.unassign(placeholder)

    def set_auto_generate(self, enabled: bool) -> None:
        self._ensure_open()
        self._auto_generate = bool(enabled)

    # ------------------------------------------------------------------
    # Step 4: permissions and generation
    # ------------------------------------------------------------------

    def set_permissions(self, permissions: ReportPermissions) -> None:
        self._ensure_open()
        self._permissions = permissions

    def build_request(self) -> ReportRequest:
        responses = self.selected_responses
        if not responses:
            raise NoDataError("No hay datos seleccionados para el informe")
        return ReportRequest(
            responses=responses,
            mode=self._mode,
            imported_sources=self._sources,
            calculated_fields=self._calculated,
            permissions=self._permissions,
        )

    def validate(self) -> Tuple[Dict[str, FieldRef], ReportRequest]:
        """
        Check that the session can generate: a template is loaded, every
        placeholder is mapped and at least one response is selected.
        """
        self._ensure_open()
        if self._template is None or self._mapping is None:
            raise TemplateValidationError("Debes seleccionar una plantilla")
        return self._mapping.require_complete(), self.build_request()

    async def generate(
        self,
        emitter: Optional[GenerationEventEmitter] = None,
    ) -> GenerationResult:
        """
        Run the pipeline once and close the session.

        Validation errors leave the session open so the user can fix the
        offending step. Once jobs ran, the session is closed whatever the
        outcome.

        Raises:
            TemplateValidationError: no template loaded.
            IncompleteMappingError: unmapped placeholders.
            NoDataError: no responses selected.
        """
        mapping, request = self.validate()

        try:
            prepared = await self._coordinator.prepare_template(self._template)
            result = await self._coordinator.generate(
                request=request,
                template=prepared,
                mapping=mapping,
                created_by=self.identity.user_id,
                emitter=emitter,
            )
            if self._mode == ReportMode.INDIVIDUAL:
                await self._store_template(request, prepared.reference.locator, mapping)
        finally:
            self.close()
        return result

    async def _store_template(
        self,
        request: ReportRequest,
        locator: str,
        mapping: Mapping[str, FieldRef],
    ) -> None:
        form_id = request.responses[0].form_id
        auto_generate = self.auto_generate
        session_only = sorted(
            placeholder
            for placeholder, ref in mapping.items()
            if isinstance(ref, (CalculatedField, ExternalField))
        )
        if auto_generate and session_only:
            # Imported sources and calculated values do not outlive the session
            logger.warning(
                "Auto-generation disabled for form %s: placeholders %s use session fields",
                form_id,
                ", ".join(session_only),
            )
            auto_generate = False
        try:
            await self._templates.set(
                ReportTemplate(
                    form_id=form_id,
                    locator=locator,
                    file_name=self._template.file_name,
                    fields=self._template.placeholders,
                    mappings=dict(mapping),
                    auto_generate=auto_generate,
                )
            )
        except Exception:
            logger.exception("Failed to store report template of form %s", form_id)
            return
        logger.info(
            "Stored report template of form %s (auto_generate=%s)",
            form_id,
            auto_generate,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._responses = []
        self._sources = []
        self._calculated = {}
        self._template = None
        self._mapping = None
        logger.debug("Wizard %s closed", self.id)


class WizardRegistry:
    """
    Open wizards by id.

    A wizard nobody has looked up for ``idle_timeout`` is closed and
    forgotten the next time the registry is used.
    """

    def __init__(
        self,
        idle_timeout: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._wizards: Dict[str, ReportWizard] = {}
        self._last_used: Dict[str, datetime] = {}
        self._idle_timeout = idle_timeout
        self._clock = clock or utcnow

    def add(self, wizard: ReportWizard) -> ReportWizard:
        self.evict_idle()
        self._wizards[wizard.id] = wizard
        self._last_used[wizard.id] = self._clock()
        return wizard

    def get(self, wizard_id: str) -> ReportWizard:
        self.evict_idle()
        wizard = self._wizards.get(wizard_id)
        if wizard is None or wizard.closed:
            self._forget(wizard_id)
            raise WizardClosedError(f"Wizard '{wizard_id}' is not open")
        self._last_used[wizard_id] = self._clock()
        return wizard

    def close(self, wizard_id: str) -> bool:
        wizard = self._forget(wizard_id)
        if wizard is None:
            return False
        wizard.close()
        return True

    def evict_idle(self) -> List[str]:
        if self._idle_timeout is None:
            return []
        cutoff = self._clock() - self._idle_timeout
        stale = [wid for wid, seen in self._last_used.items() if seen < cutoff]
        for wizard_id in stale:
            self.close(wizard_id)
        if stale:
            logger.info("Closed %d idle wizard(s)", len(stale))
        return stale

    def _forget(self, wizard_id: str) -> Optional[ReportWizard]:
        self._last_used.pop(wizard_id, None)
        return self._wizards.pop(wizard_id, None)

    def __len__(self) -> int:
        return len(self._wizards)
