"""
Durable JSON document files.

Each repository persists its full state as one JSON document. Writes go
to a sibling temporary file that atomically replaces the target, so a
crash never leaves a half-written store behind.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

import anyio


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        fh.write(text)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp, path)


async def write_json_atomic(path: Path, payload: Any) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    await anyio.to_thread.run_sync(_write_atomic, path, text)


async def read_json(path: Path) -> Optional[Any]:
    """Return the decoded document, or None when the file does not exist."""
    apath = anyio.Path(path)
    if not await apath.exists():
        return None
    text = await apath.read_text(encoding="utf-8")
    return json.loads(text)
