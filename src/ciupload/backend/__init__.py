"""Backend protocol client module."""

from ciupload.backend.base import BackendClient
from ciupload.backend.http import HttpBackendClient

__all__ = ["BackendClient", "HttpBackendClient"]
