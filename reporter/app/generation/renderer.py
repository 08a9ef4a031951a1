"""
Document rendering.

Rendering is literal text substitution, not template-engine evaluation:
every ``<<placeholder>>`` occurrence is replaced by the resolved value of
its mapped field. There is no escaping and no conditional logic.

Substitution is a single left-to-right pass over the template text, so
a resolved value that itself looks like a placeholder is emitted
verbatim and never substituted again.

The substituted text is handed to the document codec, which produces the
binary artifact.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Sequence

import anyio

from reporter.app.codecs import docx_codec
from reporter.app.errors import IncompleteMappingError
from reporter.app.generation.aggregator import RenderJob
from reporter.app.generation.extractor import PLACEHOLDER_PATTERN
from reporter.app.schemas.fields import FieldRef
from reporter.app.schemas.report import ReportMode
from reporter.app.utils.hashing import compute_artifact_digest


Resolve = Callable[[FieldRef], str]
Clock = Callable[[], datetime]


def render_text(
    template_text: str,
    placeholders: Sequence[str],
    mapping: Mapping[str, FieldRef],
    resolve: Resolve,
) -> str:
    """
    Substitute every placeholder occurrence with its resolved value.

    Values are computed once per placeholder, in extraction order.

    Raises:
        IncompleteMappingError: a placeholder has no mapping.
    """
    unmapped = [name for name in placeholders if name not in mapping]
    if unmapped:
        raise IncompleteMappingError(unmapped)

    values = {name: resolve(mapping[name]) for name in placeholders}

    def substitute(match) -> str:
        name = match.group(1)
        if name in values:
            return values[name]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(substitute, template_text)


def iso_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 timestamp with millisecond precision (``...T10:00:00.000Z``)."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _safe_name_component(value: str) -> str:
    return value.replace("/", "_").replace("\\", "_")


def output_file_name(mode: ReportMode, user_name: str, moment: datetime) -> str:
    stamp = iso_timestamp(moment)
    if mode == ReportMode.INDIVIDUAL:
        return f"informe_{_safe_name_component(user_name)}_{stamp}.docx"
    return f"informe_general_{stamp}.docx"


@dataclass(frozen=True)
class RenderedDocument:
    file_name: str
    text: str
    content: bytes
    digest: str
    generated_at: datetime


class DocumentRenderer:
    """Renders a job to a Word artifact."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def render(
        self,
        job: RenderJob,
        *,
        template_text: str,
        placeholders: Sequence[str],
        mapping: Mapping[str, FieldRef],
    ) -> RenderedDocument:
        text = render_text(template_text, placeholders, mapping, job.resolver.resolve)
        content = await anyio.to_thread.run_sync(docx_codec.serialize_text, text)

        generated_at = self._clock()
        return RenderedDocument(
            file_name=output_file_name(job.mode, job.response.user_name, generated_at),
            text=text,
            content=content,
            digest=compute_artifact_digest(content),
            generated_at=generated_at,
        )
