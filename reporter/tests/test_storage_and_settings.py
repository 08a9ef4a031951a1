from datetime import date, datetime

import pytest
from pydantic import ValidationError

from reporter.app.config import ReporterSettings
from reporter.app.errors import ArtifactLoadError, ReportNotFoundError
from reporter.app.events import (
    GenerationEvent,
    GenerationEventType,
    MemoryQueueEventEmitter,
    NotificationLog,
)
from reporter.app.schemas.fields import RawField
from reporter.app.schemas.report import Identity
from reporter.app.schemas.template import ReportTemplate
from reporter.app.services.viewer import ReportViewerService
from reporter.app.storage.artifacts import ArtifactStore
from reporter.app.storage.downloads import DirectoryDownloadSink
from reporter.app.storage.report_repository import ReportRepository
from reporter.app.storage.template_repository import TemplateRepository
from reporter.app.utils.hashing import compute_artifact_digest
from reporter.app.utils.text import stringify
from reporter.tests.fixtures.factories import make_report


# ------------------------------------------------------------------
# Artifacts
# ------------------------------------------------------------------

@pytest.mark.anyio
async def test_artifact_round_trip_and_digest_check(tmp_path):
    store = ArtifactStore(tmp_path)
    locator = await store.put(b"contenido")

    assert locator.startswith("artifact://") and locator.endswith(".docx")
    assert await store.load(locator, compute_artifact_digest(b"contenido")) == b"contenido"

    with pytest.raises(ArtifactLoadError, match="digest mismatch"):
        await store.load(locator, "SHA-256:deadbeef")

    assert await store.delete(locator) is True
    assert await store.delete(locator) is False
    with pytest.raises(ArtifactLoadError):
        await store.load(locator)


@pytest.mark.anyio
async def test_locators_cannot_escape_the_store(tmp_path):
    store = ArtifactStore(tmp_path / "artifacts")

    with pytest.raises(ArtifactLoadError):
        await store.load("artifact://../secret.txt")
    with pytest.raises(ArtifactLoadError):
        await store.load("file:///etc/passwd")
    assert await store.exists("artifact://../secret.txt") is False


@pytest.mark.anyio
async def test_downloads_land_inside_their_directory(tmp_path):
    sink = DirectoryDownloadSink(tmp_path / "downloads")

    await sink.deliver("informe.docx", b"x")

    assert (tmp_path / "downloads" / "informe.docx").read_bytes() == b"x"
    with pytest.raises(ValueError):
        sink.safe_path("../fuera.docx")


# ------------------------------------------------------------------
# Viewer
# ------------------------------------------------------------------

@pytest.mark.anyio
async def test_viewer_hides_reports_and_reports_missing_artifacts(tmp_path):
    reports = ReportRepository()
    viewer = ReportViewerService(reports=reports, artifacts=ArtifactStore(tmp_path))
    await reports.add(make_report("r1"))

    with pytest.raises(ReportNotFoundError):
        await viewer.open("r1", Identity(user_id="stranger"))
    with pytest.raises(ArtifactLoadError):
        await viewer.open("r1", Identity(user_id="creator"))


# ------------------------------------------------------------------
# Template repository
# ------------------------------------------------------------------

@pytest.mark.anyio
async def test_one_template_per_form_persisted(tmp_path):
    path = tmp_path / "templates.json"
    repository = await TemplateRepository.open(path)
    first = ReportTemplate(form_id="f", locator="artifact://a.docx", file_name="a.docx")
    second = ReportTemplate(
        form_id="f",
        locator="artifact://b.docx",
        file_name="b.docx",
        mappings={"x": RawField(id="y")},
        auto_generate=True,
    )

    assert await repository.set(first) is None
    assert await repository.set(second) == first

    reopened = await TemplateRepository.open(path)
    assert reopened.list_all() == [second]
    assert await reopened.delete("f") == second
    assert reopened.get("f") is None


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------

def _event(event_type):
    return GenerationEvent(run_id="run", event_type=event_type)


@pytest.mark.anyio
async def test_notification_log_is_bounded_and_filterable():
    log = NotificationLog(maxlen=2)
    for event_type in (
        GenerationEventType.GENERATION_STARTED,
        GenerationEventType.AUTO_GENERATION_FAILED,
        GenerationEventType.AUTO_GENERATION_COMPLETED,
    ):
        await log.emit(_event(event_type))

    assert [e.event_type for e in log.recent()] == [
        GenerationEventType.AUTO_GENERATION_FAILED,
        GenerationEventType.AUTO_GENERATION_COMPLETED,
    ]
    assert len(log.recent(GenerationEventType.AUTO_GENERATION_FAILED)) == 1


@pytest.mark.anyio
async def test_queue_emitter_stream_ends_on_terminal_event():
    emitter = MemoryQueueEventEmitter()
    await emitter.emit(_event(GenerationEventType.GENERATION_STARTED))
    await emitter.emit(_event(GenerationEventType.GENERATION_COMPLETED))
    await emitter.emit(_event(GenerationEventType.REPORT_GENERATED))

    streamed = [event.event_type async for event in emitter.stream()]

    assert streamed == [
        GenerationEventType.GENERATION_STARTED,
        GenerationEventType.GENERATION_COMPLETED,
    ]


def test_sse_payload_frame():
    payload = _event(GenerationEventType.REPORT_GENERATED).to_sse_payload()

    assert payload.startswith("event: report_generated\ndata: {")
    assert payload.endswith("\n\n")


# ------------------------------------------------------------------
# Settings and text
# ------------------------------------------------------------------

def test_settings_normalize_and_validate(tmp_path):
    settings = ReporterSettings(
        storage_dir=tmp_path,
        data_extensions=[".CSV", " .xlsx"],
        log_level="debug",
    )

    assert settings.data_extensions == [".csv", ".xlsx"]
    assert settings.log_level == "DEBUG"
    assert settings.reports_file == tmp_path / "reports.json"
    assert settings.max_upload_size_bytes == 25 * 1024 * 1024

    with pytest.raises(ValidationError):
        ReporterSettings(template_extensions=["docx"])
    with pytest.raises(ValidationError):
        ReporterSettings(log_level="chatty")


def test_settings_read_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("REPORTER_STORAGE_DIR", str(tmp_path))
    monkeypatch.setenv("REPORTER_MAX_UPLOAD_SIZE_MB", "5")

    settings = ReporterSettings()

    assert settings.storage_dir == tmp_path
    assert settings.max_upload_size_mb == 5


def test_stringify():
    assert stringify(None) == ""
    assert stringify(False) == "false"
    assert stringify(2.0) == "2"
    assert stringify(2.5) == "2.5"
    assert stringify(["a", 1]) == "a, 1"
    assert stringify(date(2024, 1, 2)) == "2024-01-02"
    assert stringify(datetime(2024, 1, 2, 3, 4)) == "2024-01-02 03:04:00"


@pytest.mark.anyio
async def test_queue_emitter_drops_events_after_rejection():
    emitter = MemoryQueueEventEmitter()
    await emitter.emit(_event(GenerationEventType.GENERATION_REJECTED))
    await emitter.emit(_event(GenerationEventType.GENERATION_STARTED))

    streamed = [event.event_type async for event in emitter.stream()]

    assert streamed == [GenerationEventType.GENERATION_REJECTED]


def test_wizard_idle_timeout_setting(tmp_path):
    assert ReporterSettings(storage_dir=tmp_path).wizard_idle_timeout_minutes == 60
    with pytest.raises(ValidationError):
        ReporterSettings(wizard_idle_timeout_minutes=0)
