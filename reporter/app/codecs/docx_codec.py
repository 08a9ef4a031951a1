"""
Word document codec.

Opaque parse/serialize functions for the ``.docx`` container:

- ``extract_text`` decodes a container into plain text, one line per
  paragraph and per table row, in body order.
- ``serialize_text`` encodes plain text into a new container, one
  paragraph per line.

Only literal text survives a round trip. Formatting is not carried over.
Both functions are synchronous and CPU-bound; async callers run them in a
worker thread.
"""

from __future__ import annotations

import io
from typing import List

from docx import Document
from docx.table import Table

from reporter.app.errors import TemplateParseError


DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


def _table_lines(table: Table) -> List[str]:
    lines = []
    for row in table.rows:
        cells = []
        seen = set()
        for cell in row.cells:
            # Merged cells are reported once per spanned grid column
            if id(cell._tc) in seen:
                continue
            seen.add(id(cell._tc))
            cells.append(cell.text)
        lines.append("\t".join(cells))
    return lines


def extract_text(content: bytes) -> str:
    """
    Decode a Word container and return its visible text.

    Raises:
        TemplateParseError: the bytes are not a readable Word document.
    """
    try:
        document = Document(io.BytesIO(content))
    except Exception as exc:
        raise TemplateParseError(
            f"Unable to decode Word document: {exc}"
        ) from exc

    lines: List[str] = []
    for block in document.iter_inner_content():
        if isinstance(block, Table):
            lines.extend(_table_lines(block))
        else:
            lines.append(block.text)

    return "\n".join(lines)


def serialize_text(text: str) -> bytes:
    """Encode plain text as a Word container, one paragraph per line."""
    document = Document()
    for line in text.split("\n"):
        document.add_paragraph(line)

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()
