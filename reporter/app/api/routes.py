import asyncio
import logging
from typing import Annotated, Dict, List, NoReturn, Optional
from urllib.parse import quote

from fastapi import (
    APIRouter,
    Body,
    Depends,
    File,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import Response, StreamingResponse

from reporter.app.codecs.docx_codec import DOCX_MEDIA_TYPE
from reporter.app.container import ServiceContainer
from reporter.app.errors import (
    ArtifactLoadError,
    DataImportError,
    IncompleteMappingError,
    NoDataError,
    ReportEngineError,
    ReportNotFoundError,
    ResponsePolicyError,
    TemplateParseError,
    TemplateValidationError,
    UnknownFieldError,
    WizardClosedError,
)
from reporter.app.events import (
    GenerationEvent,
    GenerationEventType,
    MemoryQueueEventEmitter,
)
from reporter.app.generation.extractor import load_template
from reporter.app.schemas.api import (
    CatalogEntry,
    MappingState,
    MappingUpdateRequest,
    ReportSummary,
    SourceSummary,
    TemplateFields,
    WizardCreateRequest,
    WizardState,
    WizardUpdateRequest,
)
from reporter.app.schemas.forms import Form, FormResponse
from reporter.app.schemas.generation import GenerationResult
from reporter.app.schemas.report import Identity, Report, ReportPermissions
from reporter.app.services.viewer import download_name
from reporter.app.services.wizard import ReportWizard

logger = logging.getLogger("reporter.api")

router = APIRouter(tags=["Reports"])

# =============================================================================
# Dependency providers
# =============================================================================

def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("service container not initialized")
    return container


def get_identity(
    x_user_id: Annotated[
        Optional[str],
        Header(description="Authenticated user id"),
    ] = None,
    x_user_role: Annotated[
        Optional[str],
        Header(description="Authenticated user role"),
    ] = None,
    x_user_subnet: Annotated[
        Optional[str],
        Header(description="Organizational subnet of the user"),
    ] = None,
) -> Identity:
    """Identity as forwarded by the authentication layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return Identity(
        user_id=x_user_id,
        role=x_user_role or None,
        subnet=x_user_subnet or None,
    )


Container = Annotated[ServiceContainer, Depends(get_container)]
CurrentIdentity = Annotated[Identity, Depends(get_identity)]


def get_wizard(
    wizard_id: str,
    container: Container,
    identity: CurrentIdentity,
) -> ReportWizard:
    try:
        wizard = container.wizards.get(wizard_id)
    except WizardClosedError as exc:
        raise_http(exc)
    if wizard.identity.user_id != identity.user_id:
        raise HTTPException(status_code=404, detail=f"Wizard '{wizard_id}' is not open")
    return wizard


OpenWizard = Annotated[ReportWizard, Depends(get_wizard)]


# =============================================================================
# Error translation
# =============================================================================

_STATUS_BY_ERROR = (
    (TemplateParseError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (TemplateValidationError, status.HTTP_400_BAD_REQUEST),
    (DataImportError, status.HTTP_400_BAD_REQUEST),
    (UnknownFieldError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (IncompleteMappingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NoDataError, status.HTTP_400_BAD_REQUEST),
    (ReportNotFoundError, status.HTTP_404_NOT_FOUND),
    (WizardClosedError, status.HTTP_404_NOT_FOUND),
    (ResponsePolicyError, status.HTTP_409_CONFLICT),
    (ArtifactLoadError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def raise_http(exc: ReportEngineError) -> NoReturn:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    detail: object = str(exc)
    if isinstance(exc, IncompleteMappingError):
        detail = {"message": str(exc), "unmapped": exc.unmapped}
    if isinstance(exc, ArtifactLoadError):
        logger.error("Artifact fetch failed: %s", exc)
        detail = "Error al cargar el documento"

    raise HTTPException(status_code=status_code, detail=detail) from exc


async def read_upload(upload: UploadFile, container: ServiceContainer) -> bytes:
    try:
        content = await upload.read()
    except Exception as exc:
        raise HTTPException(
            status_code=400,
            detail="Failed to read uploaded file",
        ) from exc

    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    settings = container.settings
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=(
                f"File exceeds maximum allowed size of "
                f"{settings.max_upload_size_mb} MB"
            ),
        )
    return content


def wizard_state(wizard: ReportWizard) -> WizardState:
    template = wizard.template
    mapping = wizard.mapping
    return WizardState(
        id=wizard.id,
        mode=wizard.mode,
        response_ids=[r.id for r in wizard.selected_responses],
        sources=[
            SourceSummary(name=s.name, headers=s.headers, row_count=len(s.rows))
            for s in wizard.sources
        ],
        calculated_fields=wizard.calculated_fields,
        template_file_name=template.file_name if template else None,
        placeholders=template.placeholders if template else [],
        mappings=mapping.as_field_ids() if mapping else {},
        unmapped=mapping.missing() if mapping else [],
        permissions=wizard.permissions,
        auto_generate=wizard.auto_generate,
    )


# =============================================================================
# Forms and responses (collaborator writes)
# =============================================================================

@router.put("/forms/{form_id}", response_model=Form, summary="Register or replace a form")
def put_form(form_id: str, form: Form, container: Container) -> Form:
    if form.id != form_id:
        raise HTTPException(status_code=400, detail="Form id does not match the path")
    container.forms.put(form)
    return form


@router.get("/forms", response_model=List[Form], summary="List registered forms")
def list_forms(container: Container) -> List[Form]:
    return container.forms.list_all()


@router.delete(
    "/forms/{form_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a form together with its responses and report template",
)
async def delete_form(form_id: str, container: Container) -> Response:
    if container.forms.remove(form_id) is None:
        raise HTTPException(status_code=404, detail=f"Form '{form_id}' not found")
    removed = container.responses.remove_form(form_id)
    template = await container.templates.delete(form_id)
    logger.info(
        "Removed form %s with %d response(s) (template removed=%s)",
        form_id,
        removed,
        template is not None,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/responses",
    response_model=FormResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a new form response",
)
async def create_response(response: FormResponse, container: Container) -> FormResponse:
    try:
        return await container.response_service.create(response)
    except ReportEngineError as exc:
        raise_http(exc)


@router.put(
    "/responses/{response_id}",
    response_model=FormResponse,
    summary="Update an existing form response",
)
async def update_response(
    response_id: str,
    response: FormResponse,
    container: Container,
) -> FormResponse:
    if response.id != response_id:
        raise HTTPException(status_code=400, detail="Response id does not match the path")
    try:
        return await container.response_service.update(response)
    except ReportEngineError as exc:
        raise_http(exc)


# =============================================================================
# Template extraction
# =============================================================================

@router.post(
    "/templates/extract",
    response_model=TemplateFields,
    summary="List the placeholders of a template document",
)
async def extract_template_fields(
    container: Container,
    _: CurrentIdentity,
    template: UploadFile = File(..., description="Word template (.docx)"),
) -> TemplateFields:
    content = await read_upload(template, container)
    try:
        document = await load_template(
            template.filename or "",
            content,
            allowed_extensions=container.settings.template_extensions,
            max_size_bytes=container.settings.max_upload_size_bytes,
        )
    except ReportEngineError as exc:
        raise_http(exc)
    return TemplateFields(file_name=document.file_name, placeholders=document.placeholders)


# =============================================================================
# Report wizard
# =============================================================================

@router.post(
    "/wizards",
    response_model=WizardState,
    status_code=status.HTTP_201_CREATED,
    summary="Open a report generation session",
)
def create_wizard(
    body: WizardCreateRequest,
    container: Container,
    identity: CurrentIdentity,
) -> WizardState:
    if body.response_ids is not None:
        responses = []
        for response_id in body.response_ids:
            response = container.responses.get(response_id)
            if response is None:
                raise HTTPException(
                    status_code=404,
                    detail=f"Response '{response_id}' not found",
                )
            responses.append(response)
    else:
        responses = [
            response
            for form_id in body.form_ids
            for response in container.responses.by_form(form_id)
        ]

    wizard = container.wizards.add(
        ReportWizard(
            identity=identity,
            responses=responses,
            forms=container.forms,
            coordinator=container.coordinator,
            templates=container.templates,
            settings=container.settings,
        )
    )
    wizard.set_mode(body.mode)
    logger.info(
        "Opened wizard %s for %s with %d response(s)",
        wizard.id,
        identity.user_id,
        len(responses),
    )
    return wizard_state(wizard)


@router.get("/wizards/{wizard_id}", response_model=WizardState)
def get_wizard_state(wizard: OpenWizard) -> WizardState:
    return wizard_state(wizard)


@router.patch("/wizards/{wizard_id}", response_model=WizardState)
def update_wizard(body: WizardUpdateRequest, wizard: OpenWizard) -> WizardState:
    if body.mode is not None:
        wizard.set_mode(body.mode)
    if body.form_ids is not None:
        wizard.filter_forms(body.form_ids)
    if body.auto_generate is not None:
        wizard.set_auto_generate(body.auto_generate)
    return wizard_state(wizard)


@router.post(
    "/wizards/{wizard_id}/sources",
    response_model=SourceSummary,
    status_code=status.HTTP_201_CREATED,
    summary="Import a spreadsheet as an external data source",
)
async def add_source(
    wizard: OpenWizard,
    container: Container,
    file: UploadFile = File(..., description="Spreadsheet (.xlsx, .xlsm, .csv)"),
) -> SourceSummary:
    content = await read_upload(file, container)
    try:
        source = await wizard.add_source(file.filename or "", content)
    except ReportEngineError as exc:
        raise_http(exc)
    return SourceSummary(name=source.name, headers=source.headers, row_count=len(source.rows))


@router.delete(
    "/wizards/{wizard_id}/sources/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_source(name: str, wizard: OpenWizard) -> Response:
    if not wizard.remove_source(name):
        raise HTTPException(status_code=404, detail=f"Source '{name}' not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/wizards/{wizard_id}/calculated-fields", response_model=WizardState)
def set_calculated_fields(
    wizard: OpenWizard,
    values: Dict[str, str] = Body(...),
) -> WizardState:
    wizard.set_calculated_fields(values)
    return wizard_state(wizard)


@router.post(
    "/wizards/{wizard_id}/template",
    response_model=TemplateFields,
    summary="Upload the template of the session",
)
async def set_template(
    wizard: OpenWizard,
    container: Container,
    template: UploadFile = File(..., description="Word template (.docx)"),
) -> TemplateFields:
    content = await read_upload(template, container)
    try:
        document = await wizard.set_template(template.filename or "", content)
    except ReportEngineError as exc:
        raise_http(exc)
    return TemplateFields(file_name=document.file_name, placeholders=document.placeholders)


@router.get("/wizards/{wizard_id}/catalog", response_model=List[CatalogEntry])
def get_catalog(wizard: OpenWizard) -> List[CatalogEntry]:
    return [CatalogEntry.from_field(entry) for entry in wizard.catalog()]


@router.put("/wizards/{wizard_id}/mapping", response_model=MappingState)
def update_mapping(body: MappingUpdateRequest, wizard: OpenWizard) -> MappingState:
    if wizard.mapping is None:
        raise HTTPException(status_code=400, detail="Debes seleccionar una plantilla")
    try:
        for placeholder, field_id in body.mappings.items():
            if field_id is None:
                wizard.unmap_field(placeholder)
            else:
                wizard.map_field(placeholder, field_id)
    except ReportEngineError as exc:
        raise_http(exc)
    return MappingState(
        mappings=wizard.mapping.as_dict(),
        unmapped=wizard.mapping.missing(),
    )


@router.put("/wizards/{wizard_id}/permissions", response_model=WizardState)
def set_permissions(permissions: ReportPermissions, wizard: OpenWizard) -> WizardState:
    wizard.set_permissions(permissions)
    return wizard_state(wizard)


@router.post(
    "/wizards/{wizard_id}/generate",
    response_model=GenerationResult,
    summary="Generate the reports of the session and close it",
)
async def generate(wizard: OpenWizard, container: Container) -> GenerationResult:
    try:
        result = await wizard.generate(emitter=container.notifications)
    except ReportEngineError as exc:
        raise_http(exc)
    finally:
        if wizard.closed:
            container.wizards.close(wizard.id)
    return result


@router.post(
    "/wizards/{wizard_id}/generate/stream",
    summary="Generate the reports of the session (streaming progress)",
)
async def generate_stream(wizard: OpenWizard, container: Container):
    """
    Generate while streaming progress events.

    Client disconnects do not cancel the run. The final
    GENERATION_COMPLETED event carries the run summary.
    """
    try:
        wizard.validate()
    except ReportEngineError as exc:
        raise_http(exc)

    emitter = MemoryQueueEventEmitter()

    async def run_generation_task() -> None:
        try:
            await wizard.generate(emitter=emitter)
        except Exception as exc:
            logger.exception("Streaming generation of wizard %s failed", wizard.id)
            await emitter.emit(
                GenerationEvent(
                    run_id=wizard.id,
                    event_type=GenerationEventType.GENERATION_REJECTED,
                    details={"error_type": type(exc).__name__, "message": str(exc)},
                )
            )
        finally:
            container.wizards.close(wizard.id)

    task = asyncio.create_task(run_generation_task())
    container.background_tasks.add(task)
    task.add_done_callback(container.background_tasks.discard)

    async def event_stream():
        try:
            async for event in emitter.stream():
                yield event.to_sse_payload()
        except asyncio.CancelledError:
            # Client disconnected; generation continues
            pass

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("/wizards/{wizard_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_wizard(wizard: OpenWizard, container: Container) -> Response:
    container.wizards.close(wizard.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Reports
# =============================================================================

@router.get("/reports", response_model=List[ReportSummary], summary="List visible reports")
def list_reports(
    container: Container,
    identity: CurrentIdentity,
    search: Annotated[Optional[str], Query(description="Title/description filter")] = None,
) -> List[ReportSummary]:
    return [
        ReportSummary.from_report(report)
        for report in container.viewer.list_for(identity, search)
    ]


@router.get("/reports/{report_id}", response_model=Report)
def get_report(report_id: str, container: Container, identity: CurrentIdentity) -> Report:
    try:
        return container.viewer.get(report_id, identity)
    except ReportEngineError as exc:
        raise_http(exc)


@router.get(
    "/reports/{report_id}/artifact",
    response_class=Response,
    responses={
        200: {
            "content": {DOCX_MEDIA_TYPE: {}},
            "description": "Generated report document",
        },
        404: {"description": "Report not found"},
    },
)
async def download_report(
    report_id: str,
    container: Container,
    identity: CurrentIdentity,
) -> Response:
    try:
        report, content = await container.viewer.open(report_id, identity)
    except ReportEngineError as exc:
        raise_http(exc)

    return Response(
        content=content,
        media_type=DOCX_MEDIA_TYPE,
        headers={
            "Content-Disposition": (
                f"attachment; filename*=UTF-8''{quote(download_name(report))}"
            ),
            "X-Report-Digest": report.output.digest,
        },
    )


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: str,
    container: Container,
    identity: CurrentIdentity,
) -> Response:
    try:
        await container.viewer.delete(report_id, identity)
    except ReportEngineError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Notifications
# =============================================================================

@router.get("/notifications", response_model=List[GenerationEvent])
def list_notifications(
    container: Container,
    _: CurrentIdentity,
    event_type: Optional[GenerationEventType] = None,
) -> List[GenerationEvent]:
    return container.notifications.recent(event_type)
