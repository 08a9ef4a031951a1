"""
FastAPI entrypoint for the report generation service.

Exposes the collaborator write path (forms, responses), the interactive
report wizard, and the permission-filtered report viewer.
"""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from reporter.app.api.routes import router as reports_router
from reporter.app.config import ReporterSettings, configure_logging, get_settings
from reporter.app.container import ServiceContainer

logger = logging.getLogger("reporter.main")


def get_app_version() -> str:
    try:
        return version("form-report-engine")
    except PackageNotFoundError:
        return "1.0.0"


def create_app(settings: Optional[ReporterSettings] = None) -> FastAPI:
    """
    Application factory.

    ``settings`` defaults to the process-wide environment settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ------------------------------------------------------------------
        # Load and validate configuration (FAIL FAST)
        # ------------------------------------------------------------------
        try:
            resolved = settings or get_settings()
        except Exception:
            logger.exception("invalid_reporter_configuration")
            raise

        configure_logging(resolved.log_level)
        logger.info(
            "report_engine_startup_begin",
            extra={"service": "reporter", "version": get_app_version()},
        )

        app.state.container = await ServiceContainer.build(resolved)
        try:
            yield
        finally:
            logger.info("report_engine_shutdown_begin")
            for task in list(app.state.container.background_tasks):
                task.cancel()

    app = FastAPI(
        title="Report Engine",
        description=(
            "Merges form responses, imported spreadsheets and calculated "
            "values into Word templates"
        ),
        version=get_app_version(),
        lifespan=lifespan,
    )
    app.include_router(reports_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Service health check",
    )
    def health_check() -> JSONResponse:
        """Simple health check endpoint."""
        return JSONResponse(
            content={
                "status": "ok",
                "service": "reporter",
                "version": app.version,
            }
        )

    return app
