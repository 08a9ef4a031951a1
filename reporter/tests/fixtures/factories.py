import io
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from docx import Document
from openpyxl import Workbook

from reporter.app.config import ReporterSettings
from reporter.app.schemas.forms import (
    Form,
    FormField,
    FormResponse,
    FormStatus,
    ResponseStatus,
)
from reporter.app.schemas.report import (
    Report,
    ReportDataSnapshot,
    ReportMode,
    ReportOutput,
    ReportPermissions,
    TemplateReference,
)


FIXED_TIME = datetime(2024, 3, 5, 14, 30, 0, tzinfo=timezone.utc)


# ------------------------------------------------------------------
# Forms and responses
# ------------------------------------------------------------------

def make_form(
    form_id: str = "form-1",
    *,
    fields: Sequence[tuple] = (("name", "Nombre"), ("city", "Ciudad")),
    status: FormStatus = FormStatus.PUBLISHED,
    allow_multiple_responses: bool = False,
    allow_response_modification: bool = True,
) -> Form:
    return Form(
        id=form_id,
        title=f"Formulario {form_id}",
        fields=[FormField(id=fid, label=label) for fid, label in fields],
        status=status,
        allow_multiple_responses=allow_multiple_responses,
        allow_response_modification=allow_response_modification,
        created_by="admin",
    )


def make_response(
    response_id: str = "resp-1",
    *,
    form_id: str = "form-1",
    user_id: str = "u1",
    user_name: str = "Ana",
    user_role: str = "teacher",
    values: Optional[dict] = None,
    status: ResponseStatus = ResponseStatus.SUBMITTED,
    submitted_at: Optional[datetime] = FIXED_TIME,
) -> FormResponse:
    return FormResponse(
        id=response_id,
        form_id=form_id,
        user_id=user_id,
        user_name=user_name,
        user_role=user_role,
        responses=values if values is not None else {"name": user_name, "city": "Lima"},
        submission_timestamp=submitted_at,
        last_modified_timestamp=FIXED_TIME,
        status=status,
    )


def make_responses(count: int, form_id: str = "form-1") -> List[FormResponse]:
    return [
        make_response(
            f"resp-{i}",
            form_id=form_id,
            user_id=f"u{i}",
            user_name=f"User{i}",
            values={"name": f"User{i}", "city": f"City{i}"},
        )
        for i in range(1, count + 1)
    ]


def make_report(
    report_id: str,
    *,
    title: str = "Informe - Ana",
    description: str = "Informe generado para Ana",
    created_by: str = "creator",
    permissions: ReportPermissions = ReportPermissions(),
    form_id: str = "form-1",
    response_id: Optional[str] = "resp-1",
    auto_generated: bool = False,
) -> Report:
    return Report(
        id=report_id,
        title=title,
        description=description,
        mode=ReportMode.INDIVIDUAL,
        form_id=form_id,
        response_id=response_id,
        auto_generated=auto_generated,
        template=TemplateReference(locator="artifact://t.docx", file_name="t.docx"),
        data=ReportDataSnapshot(),
        permissions=permissions,
        output=ReportOutput(
            locator=f"artifact://{report_id}.docx",
            file_name=f"{report_id}.docx",
            digest="SHA-256:00",
            generated_at=FIXED_TIME,
        ),
        created_by=created_by,
        created_at=FIXED_TIME,
        updated_at=FIXED_TIME,
    )


def make_settings(tmp_path, **overrides) -> ReporterSettings:
    return ReporterSettings(storage_dir=tmp_path / "data", **overrides)


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------

def docx_bytes(*paragraphs: str, table: Optional[Iterable[Sequence[str]]] = None) -> bytes:
    """Word document with one paragraph per argument and an optional table."""
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table is not None:
        rows = [list(r) for r in table]
        grid = document.add_table(rows=len(rows), cols=len(rows[0]))
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def docx_text(content: bytes) -> str:
    document = Document(io.BytesIO(content))
    return "\n".join(p.text for p in document.paragraphs)


def xlsx_bytes(rows: Sequence[Sequence[object]]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def csv_bytes(text: str, *, bom: bool = False) -> bytes:
    data = text.encode("utf-8")
    return (b"\xef\xbb\xbf" + data) if bom else data
