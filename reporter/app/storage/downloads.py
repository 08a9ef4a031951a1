"""
Download delivery.

Every successful render hands a copy of its artifact to the client as a
download. In this service the "client" is a downloads directory; the
persisted artifact in the ArtifactStore is unaffected by delivery.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Protocol, Tuple

import anyio

logger = logging.getLogger(__name__)


class DownloadSink(Protocol):

    async def deliver(self, file_name: str, content: bytes) -> None:
        ...


class NullDownloadSink:
    """Delivery disabled."""

    async def deliver(self, file_name: str, content: bytes) -> None:
        return


class MemoryDownloadSink:
    """Collects deliveries in memory (tests, embedding callers)."""

    def __init__(self) -> None:
        self.deliveries: List[Tuple[str, bytes]] = []

    async def deliver(self, file_name: str, content: bytes) -> None:
        self.deliveries.append((file_name, content))


class DirectoryDownloadSink:

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory).expanduser().resolve()
        self._directory.mkdir(parents=True, exist_ok=True)

    def safe_path(self, file_name: str) -> Path:
        """
        Resolve ``file_name`` inside the downloads directory.

        Raises ValueError if the resolved path escapes the directory.
        """
        candidate = (self._directory / file_name).resolve()
        try:
            candidate.relative_to(self._directory)
        except ValueError:
            raise ValueError(
                f"Download path escapes the downloads directory: {candidate}"
            )
        return candidate

    async def deliver(self, file_name: str, content: bytes) -> None:
        path = self.safe_path(file_name)
        await anyio.Path(path).write_bytes(content)
        logger.info("Delivered %s (%d bytes)", path.name, len(content))
