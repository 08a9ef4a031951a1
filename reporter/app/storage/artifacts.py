"""
Artifact storage.

Generated documents and uploaded templates are stored as opaque files
under a single root directory and addressed by ``artifact://<name>``
locators. Locators are server-generated; any locator resolving outside
the root is rejected.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from uuid import uuid4

import anyio

from reporter.app.errors import ArtifactLoadError
from reporter.app.utils.hashing import compute_artifact_digest

logger = logging.getLogger(__name__)

LOCATOR_SCHEME = "artifact://"


class ArtifactStore:

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, locator: str) -> Path:
        if not locator.startswith(LOCATOR_SCHEME):
            raise ArtifactLoadError(f"Unsupported artifact locator: {locator}")

        candidate = (self._root / locator[len(LOCATOR_SCHEME):]).resolve()
        try:
            candidate.relative_to(self._root)
        except ValueError:
            raise ArtifactLoadError(
                f"Artifact locator escapes the artifact store: {locator}"
            )
        return candidate

    async def put(self, content: bytes, suffix: str = ".docx") -> str:
        name = f"{uuid4().hex}{suffix}"
        path = self._root / name
        tmp = path.with_name(path.name + ".tmp")
        await anyio.Path(tmp).write_bytes(content)
        await anyio.to_thread.run_sync(os.replace, tmp, path)
        return f"{LOCATOR_SCHEME}{name}"

    async def load(self, locator: str, digest: Optional[str] = None) -> bytes:
        """
        Fetch an artifact, verifying its digest when one is supplied.

        Raises:
            ArtifactLoadError: missing, unreadable or altered artifact.
        """
        path = self._path_for(locator)
        try:
            content = await anyio.Path(path).read_bytes()
        except OSError as exc:
            logger.error("Failed to load artifact %s: %s", locator, exc)
            raise ArtifactLoadError(f"Artifact not available: {locator}") from exc

        if digest is not None and compute_artifact_digest(content) != digest:
            logger.error("Digest mismatch for artifact %s", locator)
            raise ArtifactLoadError(f"Artifact digest mismatch: {locator}")

        return content

    async def delete(self, locator: str) -> bool:
        path = anyio.Path(self._path_for(locator))
        if not await path.exists():
            return False
        await path.unlink()
        return True

    async def exists(self, locator: str) -> bool:
        try:
            path = self._path_for(locator)
        except ArtifactLoadError:
            return False
        return await anyio.Path(path).exists()
