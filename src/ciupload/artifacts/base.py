"""Artifact reader protocol."""

from pathlib import Path
from typing import Protocol


class ArtifactReader(Protocol):
    """Protocol for reading declared artifacts into memory."""

    def read(self, path: Path) -> bytes:
        """Read the full content of an artifact. Raises OSError if unreadable."""
        ...
