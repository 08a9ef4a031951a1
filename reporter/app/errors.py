"""
Error taxonomy of the report generation engine.

Wizard-step validation errors block progression to the next step.
Generation-time errors abort only the rendering job they occur in.
Auto-generation errors never escape the response write path.
None of these errors is process-fatal.
"""

from __future__ import annotations

from typing import Iterable, List


class ReportEngineError(Exception):
    """Base class for all report engine errors."""


class TemplateValidationError(ReportEngineError):
    """Raised when an uploaded template is rejected before or during parsing."""


class TemplateParseError(TemplateValidationError):
    """Raised when the document codec cannot decode a template container."""


class DataImportError(ReportEngineError):
    """Raised when an imported spreadsheet or CSV file is rejected."""


class UnknownFieldError(ReportEngineError):
    """Raised when a mapping references a field or placeholder that does not exist."""


class IncompleteMappingError(ReportEngineError):
    """Raised when generation is attempted with unmapped placeholders."""

    def __init__(self, unmapped: Iterable[str]) -> None:
        self.unmapped: List[str] = list(unmapped)
        super().__init__(
            "Unmapped template placeholders: "
            + ", ".join(f"<<{name}>>" for name in self.unmapped)
        )


class NoDataError(ReportEngineError):
    """Raised when a report is requested without any selected response."""


class ArtifactLoadError(ReportEngineError):
    """Raised when a persisted artifact cannot be fetched."""


class AutoGenerationError(ReportEngineError):
    """Raised (and swallowed at the write boundary) when auto-generation fails."""


class ResponsePolicyError(ReportEngineError):
    """Raised when a response write violates the form's response policy."""


class WizardClosedError(ReportEngineError):
    """Raised when an operation targets a wizard that was already closed."""


class ReportNotFoundError(ReportEngineError, LookupError):
    """Raised when a report does not exist or is not visible to the identity."""
