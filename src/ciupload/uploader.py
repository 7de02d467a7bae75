"""Slot uploader: sends one artifact buffer to one negotiated URL.

Upload URLs are presigned object-store destinations, so the request carries
no backend credentials.
"""

import logging
from typing import Protocol, Self

import httpx

from ciupload.errors import UploadError

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT = 60

UPLOAD_HEADERS = {
    "x-amz-server-side-encryption": "AES256",
}


class SlotUploader(Protocol):
    """Protocol for transferring a buffer to an upload slot."""

    async def upload(self, url: str, content: bytes) -> None:
        """Send content to url in a single attempt. Raises UploadError."""
        ...


class HttpSlotUploader:
    """PUTs the exact bytes of a buffer to a presigned URL."""

    def __init__(
        self,
        timeout: float = UPLOAD_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def upload(self, url: str, content: bytes) -> None:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )

        try:
            response = await self._client.put(
                url,
                content=content,
                headers=UPLOAD_HEADERS,
            )
        except httpx.HTTPError as e:
            raise UploadError(url, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise UploadError(url, f"HTTP {response.status_code}")

        logger.debug("Uploaded %d bytes to %s", len(content), url)
