"""Local filesystem artifact loading."""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Mapping

from ciupload.artifacts.base import ArtifactReader
from ciupload.errors import LoadError
from ciupload.types import ArtifactBuffer, ArtifactKind, freeze_buffers

logger = logging.getLogger(__name__)


class LocalArtifactReader:
    """Reads artifacts from the local filesystem."""

    def __init__(self, base_path: Path | None = None):
        self.base_path = base_path

    def read(self, path: Path) -> bytes:
        """Read the full content of an artifact."""
        if self.base_path is not None and not path.is_absolute():
            path = self.base_path / path
        if not path.is_file():
            raise FileNotFoundError(f"Artifact not found: {path}")
        return path.read_bytes()


async def load_artifacts(
    declared: Mapping[ArtifactKind, Path],
    reader: ArtifactReader | None = None,
) -> ArtifactBuffer:
    """Load every declared artifact before anything is negotiated.

    Reads run in worker threads so a slow disk does not block the event loop.
    The first unreadable path raises LoadError.
    """
    reader = reader or LocalArtifactReader()
    kinds = list(declared)
    results = await asyncio.gather(
        *(asyncio.to_thread(reader.read, declared[kind]) for kind in kinds),
        return_exceptions=True,
    )

    buffers: dict[ArtifactKind, bytes] = {}
    for kind, result in zip(kinds, results):
        if isinstance(result, BaseException):
            if not isinstance(result, OSError):
                raise result
            raise LoadError(kind, declared[kind], str(result)) from result
        buffers[kind] = result
        logger.debug(
            "Loaded %s (%d bytes, sha1 %s)",
            kind.value,
            len(result),
            _digest(result)[:12],
        )

    return freeze_buffers(buffers)


def _digest(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()
