"""
Available-field catalog.

Pure function of a data context: the owning form's fields, the response
metadata fields, calculated fields and imported source columns, in that
registration order.

Display ids from different origins can collide (a form field called
``calc_total`` and a calculated field ``total``). Collisions are kept:
the catalog lists every entry, and a lookup by display id returns the
last registered one. Mappings store explicit field references, so a
collision can only affect which entry a display id selects, never how a
mapped value resolves.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from reporter.app.schemas.fields import (
    AvailableField,
    CalculatedField,
    ExternalField,
    FieldRef,
    MetadataField,
    MetadataKind,
    RawField,
)
from reporter.app.schemas.forms import Form, FormResponse
from reporter.app.schemas.imports import ImportedSource

logger = logging.getLogger(__name__)


METADATA_LABELS: Dict[MetadataKind, str] = {
    MetadataKind.USER_NAME: "Nombre del usuario",
    MetadataKind.USER_ROLE: "Rol del usuario",
    MetadataKind.TIMESTAMP: "Fecha de envío",
}


class DataContext(BaseModel):
    """Everything a template can draw values from in one session."""

    form: Optional[Form] = None
    responses: List[FormResponse] = Field(default_factory=list)
    calculated_fields: Dict[str, str] = Field(default_factory=dict)
    imported_sources: List[ImportedSource] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class FieldCatalog:
    """Ordered list of selectable mapping targets."""

    def __init__(self, entries: Iterable[AvailableField] = ()) -> None:
        self._entries: List[AvailableField] = []
        self._by_id: Dict[str, AvailableField] = {}
        for entry in entries:
            self._register(entry)

    def _register(self, entry: AvailableField) -> None:
        existing = self._by_id.get(entry.field_id)
        if existing is not None and existing.ref != entry.ref:
            logger.warning(
                "Field id '%s' registered by %s shadows %s",
                entry.field_id,
                entry.ref.kind,
                existing.ref.kind,
            )
        self._entries.append(entry)
        self._by_id[entry.field_id] = entry

    @property
    def entries(self) -> List[AvailableField]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def find(self, field_id: str) -> Optional[AvailableField]:
        """Last registered entry for a display id."""
        return self._by_id.get(field_id)

    def contains(self, ref: FieldRef) -> bool:
        return any(entry.ref == ref for entry in self._entries)

    def ids(self) -> List[str]:
        return [entry.field_id for entry in self._entries]


def _metadata_entries() -> List[AvailableField]:
    return [
        AvailableField(ref=MetadataField(name=kind), label=label)
        for kind, label in METADATA_LABELS.items()
    ]


def _form_entries(form: Form) -> List[AvailableField]:
    return [
        AvailableField(ref=RawField(id=field.id), label=field.label or field.id)
        for field in form.fields
    ]


def _calculated_entries(calculated: Mapping[str, str]) -> List[AvailableField]:
    return [
        AvailableField(ref=CalculatedField(name=name), label=f"{name} ({value})")
        for name, value in calculated.items()
    ]


def _external_entries(sources: Sequence[ImportedSource]) -> List[AvailableField]:
    return [
        AvailableField(
            ref=ExternalField(source=source.name, header=header),
            label=f"{source.name} - {header}",
        )
        for source in sources
        for header in source.headers
    ]


def build_catalog(context: DataContext) -> FieldCatalog:
    """
    Build the available-field catalog of a data context.

    Form and metadata entries are only offered when responses are present.
    """
    entries: List[AvailableField] = []

    if context.responses:
        if context.form is not None:
            entries.extend(_form_entries(context.form))
        entries.extend(_metadata_entries())

    entries.extend(_calculated_entries(context.calculated_fields))
    entries.extend(_external_entries(context.imported_sources))

    return FieldCatalog(entries)
