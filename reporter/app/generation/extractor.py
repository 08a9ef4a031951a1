"""
Template field extraction.

A placeholder is a ``<<name>>`` token where ``name`` is any run of
characters not containing ``>>``. Extraction returns the distinct names
in first-appearance order. Duplicate occurrences collapse into one entry
here, but every literal occurrence is substituted at render time.

A template without placeholders is valid.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Iterable, List

import anyio

from reporter.app.codecs import docx_codec
from reporter.app.errors import TemplateValidationError
from reporter.app.schemas.template import TemplateDocument

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"<<((?:(?!>>).)+?)>>")


def extract_placeholders(text: str) -> List[str]:
    """Return distinct placeholder names in first-occurrence order."""
    seen = set()
    names: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(text):
        name = match.group(1)
        if name not in seen:
            seen.add(name)
            names.append(name)
    return names


def validate_template_upload(
    file_name: str,
    content: bytes,
    *,
    allowed_extensions: Iterable[str] = (".docx",),
    max_size_bytes: int | None = None,
) -> None:
    """
    Reject an upload before any parsing is attempted.

    Raises:
        TemplateValidationError: unrecognized extension, empty or
        oversized upload.
    """
    suffix = PurePath(file_name).suffix.lower()
    allowed = {ext.lower() for ext in allowed_extensions}
    if suffix not in allowed:
        logger.warning("Rejected template '%s': extension not allowed", file_name)
        raise TemplateValidationError(
            f"Unsupported template type '{suffix or file_name}'. "
            f"Allowed: {', '.join(sorted(allowed))}"
        )
    if not content:
        raise TemplateValidationError("Uploaded template is empty")
    if max_size_bytes is not None and len(content) > max_size_bytes:
        raise TemplateValidationError(
            f"Template exceeds maximum allowed size of {max_size_bytes} bytes"
        )


async def load_template(
    file_name: str,
    content: bytes,
    *,
    allowed_extensions: Iterable[str] = (".docx",),
    max_size_bytes: int | None = None,
) -> TemplateDocument:
    """
    Validate, decode and scan an uploaded template.

    Decoding runs in a worker thread so large documents never block the
    event loop.

    Raises:
        TemplateValidationError: the upload was rejected.
        TemplateParseError: the codec could not decode the container.
    """
    validate_template_upload(
        file_name,
        content,
        allowed_extensions=allowed_extensions,
        max_size_bytes=max_size_bytes,
    )

    try:
        text = await anyio.to_thread.run_sync(docx_codec.extract_text, content)
    except TemplateValidationError:
        logger.warning("Failed to decode template '%s'", file_name)
        raise

    placeholders = extract_placeholders(text)
    logger.info(
        "Loaded template '%s' with %d placeholder(s)",
        file_name,
        len(placeholders),
    )

    return TemplateDocument(
        file_name=file_name,
        content=content,
        text=text,
        placeholders=placeholders,
    )
