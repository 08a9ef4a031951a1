from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ImportedSource(BaseModel):
    """
    A tabular dataset uploaded during one report-generation session.

    Transient: only persisted as part of the data snapshot of the reports
    it contributes to.
    """

    name: str = Field(..., min_length=1, description="Derived from the file name")
    headers: List[str] = Field(..., min_length=1)
    rows: List[Dict[str, Any]] = Field(default_factory=list)

    def row(self, index: int) -> Optional[Dict[str, Any]]:
        """Row aligned with ``index`` when present, else the first row."""
        if not self.rows:
            return None
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return self.rows[0]
