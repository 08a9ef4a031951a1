"""
Value stringification for template substitution.

Submitted answers and spreadsheet cells arrive as arbitrary JSON-ish
values; templates only accept literal text.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any


def stringify(value: Any) -> str:
    """Render a response or cell value as substitution text ('' for missing)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(item) for item in value)
    return str(value)
