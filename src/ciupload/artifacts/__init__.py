"""Artifact loading module."""

from ciupload.artifacts.base import ArtifactReader
from ciupload.artifacts.local import LocalArtifactReader, load_artifacts

__all__ = ["ArtifactReader", "LocalArtifactReader", "load_artifacts"]
