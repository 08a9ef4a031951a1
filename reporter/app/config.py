"""
Runtime configuration for the Reporter service.

Pydantic v2 settings management: values are read from the environment
(prefix ``REPORTER_``) or a local ``.env`` file, validated once at startup
and treated as immutable for the lifetime of the process.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReporterSettings(BaseSettings):
    """
    Application settings parsed from the environment.

    Fails fast at startup if an extension list or size limit is malformed.
    """

    # ---------------------------------------------------------------------
    # Durable local storage
    # ---------------------------------------------------------------------

    storage_dir: Annotated[
        Path,
        Field(
            default=Path("reporter-data"),
            description=(
                "Root directory for persisted report records, report "
                "templates and generated artifacts"
            ),
        ),
    ]

    downloads_dir: Annotated[
        Optional[Path],
        Field(
            default=None,
            description=(
                "Directory receiving the download copy of every generated "
                "artifact. Delivery is disabled when unset."
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Upload validation
    # ---------------------------------------------------------------------

    template_extensions: Annotated[
        List[str],
        Field(
            default_factory=lambda: [".docx"],
            description="File extensions accepted as report templates",
        ),
    ]

    data_extensions: Annotated[
        List[str],
        Field(
            default_factory=lambda: [".xlsx", ".xlsm", ".csv"],
            description="File extensions accepted as imported data sources",
        ),
    ]

    max_upload_size_mb: Annotated[
        int,
        Field(
            default=25,
            ge=1,
            le=100,
            description="Maximum size of an uploaded template or data file",
        ),
    ]

    # ---------------------------------------------------------------------
    # Rendering, sessions and notifications
    # ---------------------------------------------------------------------

    timestamp_format: Annotated[
        str,
        Field(
            default="%d/%m/%Y, %H:%M:%S",
            description="strftime format used for the _timestamp metadata field",
        ),
    ]

    notification_buffer_size: Annotated[
        int,
        Field(
            default=100,
            ge=1,
            description="Number of recent notification events retained",
        ),
    ]

    wizard_idle_timeout_minutes: Annotated[
        int,
        Field(
            default=60,
            ge=1,
            description=(
                "Minutes after which an untouched report wizard is closed "
                "and its session state discarded"
            ),
        ),
    ]

    log_level: Annotated[
        str,
        Field(default="INFO", description="Root logging level"),
    ]

    model_config = SettingsConfigDict(
        env_prefix="REPORTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("template_extensions", "data_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext.startswith("."):
                raise ValueError(
                    f"Extension '{ext}' must start with a dot (e.g. '.docx')"
                )
            normalized.append(ext)
        if not normalized:
            raise ValueError("At least one extension must be accepted")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def artifacts_dir(self) -> Path:
        return self.storage_dir / "artifacts"

    @property
    def reports_file(self) -> Path:
        return self.storage_dir / "reports.json"

    @property
    def templates_file(self) -> Path:
        return self.storage_dir / "templates.json"


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> ReporterSettings:
    """
    Dependency injection provider for application settings.

    Parsed once per process.
    """
    return ReporterSettings()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at service startup."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
