from datetime import datetime, timezone

import pytest

from reporter.app.codecs.docx_codec import extract_text
from reporter.app.errors import IncompleteMappingError
from reporter.app.generation.aggregator import DataAggregator
from reporter.app.generation.renderer import (
    DocumentRenderer,
    iso_timestamp,
    output_file_name,
    render_text,
)
from reporter.app.schemas.fields import MetadataField, MetadataKind, RawField
from reporter.app.schemas.generation import ReportRequest
from reporter.app.schemas.report import ReportMode
from reporter.app.utils.hashing import compute_artifact_digest
from reporter.tests.fixtures.factories import make_response


MOMENT = datetime(2024, 3, 5, 10, 0, 0, 123456, tzinfo=timezone.utc)


def test_every_occurrence_is_substituted():
    text = render_text(
        "<<n>> y <<n>>",
        ["n"],
        {"n": RawField(id="name")},
        lambda ref: "Ana",
    )

    assert text == "Ana y Ana"


def test_substituted_values_are_not_rescanned():
    text = render_text(
        "<<a>> <<b>>",
        ["a", "b"],
        {"a": RawField(id="x"), "b": RawField(id="y")},
        lambda ref: "<<b>>" if ref.id == "x" else "B",
    )

    assert text == "<<b>> B"


def test_empty_brackets_keep_surrounding_text():
    text = render_text(
        "Vacio <<>> y luego <<nombre>>",
        ["nombre"],
        {"nombre": RawField(id="name")},
        lambda ref: "Ana",
    )

    assert text == "Vacio <<>> y luego Ana"


def test_unmapped_placeholder_aborts_rendering():
    with pytest.raises(IncompleteMappingError):
        render_text("<<a>>", ["a"], {}, lambda ref: "")


def test_template_without_placeholders_renders_verbatim():
    assert render_text("Sin campos", [], {}, lambda ref: "") == "Sin campos"


def test_output_names():
    assert iso_timestamp(MOMENT) == "2024-03-05T10:00:00.123Z"
    assert output_file_name(ReportMode.INDIVIDUAL, "Ana", MOMENT) == (
        "informe_Ana_2024-03-05T10:00:00.123Z.docx"
    )
    assert output_file_name(ReportMode.GENERAL, "Ana", MOMENT) == (
        "informe_general_2024-03-05T10:00:00.123Z.docx"
    )
    assert output_file_name(ReportMode.INDIVIDUAL, "a/b", MOMENT).startswith("informe_a_b_")


@pytest.mark.anyio
async def test_renderer_produces_docx_with_digest():
    job = DataAggregator().build_jobs(
        ReportRequest(responses=[make_response()], mode=ReportMode.INDIVIDUAL)
    )[0]
    renderer = DocumentRenderer(clock=lambda: MOMENT)

    rendered = await renderer.render(
        job,
        template_text="Hola <<nombre>>",
        placeholders=["nombre"],
        mapping={"nombre": MetadataField(name=MetadataKind.USER_NAME)},
    )

    assert rendered.text == "Hola Ana"
    assert extract_text(rendered.content) == "Hola Ana"
    assert rendered.digest == compute_artifact_digest(rendered.content)
    assert rendered.digest.startswith("SHA-256:")
    assert rendered.file_name == "informe_Ana_2024-03-05T10:00:00.123Z.docx"
    assert rendered.generated_at == MOMENT
