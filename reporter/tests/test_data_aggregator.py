from datetime import datetime, timezone

import pytest

from reporter.app.errors import NoDataError
from reporter.app.generation.aggregator import DataAggregator, ValueResolver
from reporter.app.schemas.fields import (
    CalculatedField,
    ExternalField,
    MetadataField,
    MetadataKind,
    RawField,
)
from reporter.app.schemas.generation import ReportRequest
from reporter.app.schemas.imports import ImportedSource
from reporter.app.schemas.report import ReportMode
from reporter.tests.fixtures.factories import make_response, make_responses


NOTAS = ImportedSource(
    name="notas",
    headers=["media"],
    rows=[{"media": 7.5}, {"media": 9.0}],
)


def test_individual_mode_yields_one_job_per_response():
    request = ReportRequest(responses=make_responses(3), mode=ReportMode.INDIVIDUAL)

    jobs = DataAggregator().build_jobs(request)

    assert [job.response.id for job in jobs] == ["resp-1", "resp-2", "resp-3"]
    assert [job.index for job in jobs] == [0, 1, 2]


def test_general_mode_uses_only_first_response():
    request = ReportRequest(responses=make_responses(5), mode=ReportMode.GENERAL)

    jobs = DataAggregator().build_jobs(request)

    assert len(jobs) == 1
    assert jobs[0].response.id == "resp-1"
    assert jobs[0].resolver(RawField(id="name")) == "User1"


def test_empty_selection_is_rejected():
    with pytest.raises(NoDataError):
        DataAggregator().build_jobs(ReportRequest(responses=[]))


def test_metadata_values_and_timestamp_format():
    response = make_response(user_name="Ana", user_role="teacher")
    resolver = ValueResolver(response, timestamp_format="%Y-%m-%d %H:%M")

    assert resolver(MetadataField(name=MetadataKind.USER_NAME)) == "Ana"
    assert resolver(MetadataField(name=MetadataKind.USER_ROLE)) == "teacher"
    assert resolver(MetadataField(name=MetadataKind.TIMESTAMP)) == "2024-03-05 14:30"


def test_timestamp_falls_back_to_last_modification():
    response = make_response(submitted_at=None)
    response = response.model_copy(
        update={"last_modified_timestamp": datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)}
    )

    resolver = ValueResolver(response)

    assert resolver(MetadataField(name=MetadataKind.TIMESTAMP)) == "02/01/2023, 03:04:05"


def test_missing_raw_and_calculated_values_are_empty():
    resolver = ValueResolver(make_response(values={}), calculated_fields={})

    assert resolver(RawField(id="nope")) == ""
    assert resolver(CalculatedField(name="nope")) == ""


def test_values_are_stringified():
    response = make_response(values={"tags": ["a", "b"], "ok": True, "n": 3.0})
    resolver = ValueResolver(response)

    assert resolver(RawField(id="tags")) == "a, b"
    assert resolver(RawField(id="ok")) == "true"
    assert resolver(RawField(id="n")) == "3"


def test_external_rows_align_with_job_index_and_fall_back_to_first():
    assert ValueResolver(make_response(), row_index=1, imported_sources=[NOTAS])(
        ExternalField(source="notas", header="media")
    ) == "9"
    assert ValueResolver(make_response(), row_index=7, imported_sources=[NOTAS])(
        ExternalField(source="notas", header="media")
    ) == "7.5"


def test_external_lookup_of_unknown_source_or_empty_rows():
    empty = ImportedSource(name="vacio", headers=["x"], rows=[])
    resolver = ValueResolver(make_response(), imported_sources=[empty])

    assert resolver(ExternalField(source="vacio", header="x")) == ""
    assert resolver(ExternalField(source="otro", header="x")) == ""


def test_string_ids_are_parsed_against_known_sources():
    resolver = ValueResolver(
        make_response(),
        calculated_fields={"total": "42"},
        imported_sources=[NOTAS],
    )

    assert resolver("calc_total") == "42"
    assert resolver("notas_media") == "7.5"
    assert resolver("_userName") == "Ana"
    assert resolver("city") == "Lima"


def test_colliding_ids_resolve_by_reference_kind():
    response = make_response(values={"calc_total": "del formulario"})
    resolver = ValueResolver(response, calculated_fields={"total": "calculado"})

    assert resolver(RawField(id="calc_total")) == "del formulario"
    assert resolver(CalculatedField(name="total")) == "calculado"
