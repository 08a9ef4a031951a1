"""
Data aggregation.

Turns a report request into rendering jobs. Each job carries one
representative response and a value resolver combining every origin a
template can draw from:

    MetadataField    response attributes (name, role, timestamp)
    CalculatedField  pre-computed values supplied with the request
    ExternalField    the aligned row of an imported source
    RawField         the submitted value of a form field

Missing raw or calculated values resolve to the empty string; lookups
never raise for absent data.

Mode semantics: individual mode yields one job per selected response;
general mode yields exactly one job that uses only the first selected
response as context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Union

from reporter.app.errors import NoDataError
from reporter.app.schemas.fields import (
    CalculatedField,
    ExternalField,
    FieldRef,
    MetadataField,
    MetadataKind,
    RawField,
    parse_field_ref,
)
from reporter.app.schemas.forms import FormResponse
from reporter.app.schemas.generation import ReportRequest
from reporter.app.schemas.imports import ImportedSource
from reporter.app.schemas.report import ReportMode
from reporter.app.utils.text import stringify


DEFAULT_TIMESTAMP_FORMAT = "%d/%m/%Y, %H:%M:%S"


class ValueResolver:
    """
    Per-job value lookup keyed by field reference.

    ``row_index`` selects the imported-source row aligned with the
    response being rendered; sources shorter than that fall back to
    their first row.
    """

    def __init__(
        self,
        response: FormResponse,
        *,
        row_index: int = 0,
        calculated_fields: Mapping[str, str] | None = None,
        imported_sources: Sequence[ImportedSource] = (),
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ) -> None:
        self._response = response
        self._row_index = row_index
        self._calculated = dict(calculated_fields or {})
        self._sources: Dict[str, ImportedSource] = {}
        for source in imported_sources:
            # Later sources shadow earlier ones with the same name
            self._sources[source.name] = source
        self._timestamp_format = timestamp_format

    @property
    def response(self) -> FormResponse:
        return self._response

    def resolve(self, field: Union[FieldRef, str]) -> str:
        """
        Resolve a field reference (or a legacy display id) to text.
        """
        ref = (
            parse_field_ref(field, self._sources.keys())
            if isinstance(field, str)
            else field
        )

        if isinstance(ref, MetadataField):
            return self._resolve_metadata(ref.name)
        if isinstance(ref, CalculatedField):
            return stringify(self._calculated.get(ref.name))
        if isinstance(ref, ExternalField):
            return self._resolve_external(ref)
        if isinstance(ref, RawField):
            return stringify(self._response.responses.get(ref.id))

        raise TypeError(f"Unsupported field reference: {ref!r}")

    __call__ = resolve

    def _resolve_metadata(self, kind: MetadataKind) -> str:
        if kind == MetadataKind.USER_NAME:
            return self._response.user_name
        if kind == MetadataKind.USER_ROLE:
            return self._response.user_role
        return self._response.effective_timestamp.strftime(self._timestamp_format)

    def _resolve_external(self, ref: ExternalField) -> str:
        source = self._sources.get(ref.source)
        if source is None:
            return ""
        row = source.row(self._row_index)
        if row is None:
            return ""
        return stringify(row.get(ref.header))


@dataclass(frozen=True)
class RenderJob:
    """One document to render."""

    index: int
    response: FormResponse
    resolver: ValueResolver
    mode: ReportMode


class DataAggregator:

    def __init__(self, timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT) -> None:
        self._timestamp_format = timestamp_format

    def build_jobs(self, request: ReportRequest) -> List[RenderJob]:
        """
        Raises:
            NoDataError: the request selects no responses.
        """
        if not request.responses:
            raise NoDataError("No hay datos seleccionados para el informe")

        if request.mode == ReportMode.INDIVIDUAL:
            selected = list(request.responses)
        else:
            selected = [request.responses[0]]

        return [
            RenderJob(
                index=index,
                response=response,
                resolver=ValueResolver(
                    response,
                    row_index=index,
                    calculated_fields=request.calculated_fields,
                    imported_sources=request.imported_sources,
                    timestamp_format=self._timestamp_format,
                ),
                mode=request.mode,
            )
            for index, response in enumerate(selected)
        ]
