"""
Tabular data codec for imported sources.

Reads the first worksheet of an Excel workbook (openpyxl, cached values
only) or a CSV file. The first row becomes the header row; blank header
cells are skipped and fully empty data rows are dropped.
"""

from __future__ import annotations

import csv
import io
from pathlib import PurePath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from reporter.app.errors import DataImportError


EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv"}

Table = Tuple[List[str], List[Dict[str, Any]]]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _build_table(raw_rows: Iterable[Sequence[Any]]) -> Table:
    iterator = iter(raw_rows)
    header_row: Optional[Sequence[Any]] = next(iterator, None)
    if header_row is None:
        raise DataImportError("The imported file is empty")

    columns = [
        (index, str(value).strip())
        for index, value in enumerate(header_row)
        if not _is_blank(value)
    ]
    if not columns:
        raise DataImportError("The first row of the imported file has no headers")

    rows: List[Dict[str, Any]] = []
    for raw in iterator:
        if all(_is_blank(value) for value in raw):
            continue
        rows.append({
            header: (raw[index] if index < len(raw) else None)
            for index, header in columns
        })

    return [header for _, header in columns], rows


def _read_excel(content: bytes) -> Table:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise DataImportError(f"Unable to read workbook: {exc}") from exc

    try:
        if not workbook.worksheets:
            raise DataImportError("The workbook has no worksheets")
        sheet = workbook.worksheets[0]
        return _build_table(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def _read_csv(content: bytes) -> Table:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise DataImportError("CSV files must be UTF-8 encoded") from exc

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel

    return _build_table(csv.reader(io.StringIO(text), dialect))


def extract_table(file_name: str, content: bytes) -> Table:
    """
    Decode an uploaded spreadsheet into (headers, rows).

    Raises:
        DataImportError: unsupported extension, unreadable container or
        empty header row.
    """
    suffix = PurePath(file_name).suffix.lower()
    if suffix in EXCEL_EXTENSIONS:
        return _read_excel(content)
    if suffix in CSV_EXTENSIONS:
        return _read_csv(content)
    raise DataImportError(f"Unsupported data file type '{suffix or file_name}'")
