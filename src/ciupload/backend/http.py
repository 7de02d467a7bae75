"""HTTP implementation of the backend protocol using httpx."""

import logging
from typing import Any, Callable, Self

import httpx
from pydantic import ValidationError

from ciupload.errors import (
    CompletionError,
    FinalizeError,
    NegotiationError,
    SessionStartError,
)
from ciupload.types import ArtifactKind, RunMetadata, Session, UploadSlot

logger = logging.getLogger(__name__)

API_TIMEOUT = 30

TokenProvider = Callable[[], str]


class HttpBackendClient:
    """Talks to the analysis backend over its JSON API."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._ensure_client()
        headers = {
            "Authorization": f"Token {self._token_provider()}",
            "Accept": "application/json",
        }
        response = await client.request(method, path, headers=headers, **kwargs)
        response.raise_for_status()
        return response

    async def start_session(self, metadata: RunMetadata) -> str:
        """Create a session for one run. Returns session ID."""
        try:
            response = await self._request(
                "POST",
                "/api/runs",
                json=metadata.model_dump(mode="json"),
            )
            session_id = response.json()["id"]
        except httpx.HTTPError as e:
            raise SessionStartError(f"Backend rejected session start: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SessionStartError(f"Malformed session start response: {e}") from e

        logger.debug("Started session %s (%s)", session_id, metadata.type.value)
        return str(session_id)

    async def get_upload_urls(
        self,
        session_id: str,
        kinds: list[ArtifactKind],
    ) -> list[UploadSlot]:
        """Ask which of the declared kinds the backend wants."""
        try:
            response = await self._request(
                "POST",
                f"/api/runs/{session_id}/upload",
                json={"slots": [kind.value for kind in kinds]},
            )
            body = response.json()
            slots = [UploadSlot.model_validate(item) for item in body["upload_slots"]]
        except httpx.HTTPError as e:
            raise NegotiationError(f"Could not negotiate upload slots: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise NegotiationError(f"Malformed upload slot response: {e}") from e

        logger.debug(
            "Session %s wants %d of %d artifacts", session_id, len(slots), len(kinds)
        )
        return slots

    async def mark_upload_as_complete(self, session_id: str, slot_id: str) -> None:
        """Acknowledge a finished transfer."""
        try:
            await self._request(
                "PATCH",
                f"/api/runs/{session_id}/uploads/{slot_id}",
                json={"status": "verified"},
            )
        except httpx.HTTPError as e:
            raise CompletionError(slot_id, str(e)) from e

    async def get_session(self, session_id: str) -> Session:
        """Get the current session state."""
        try:
            response = await self._request("GET", f"/api/runs/{session_id}")
            return _parse_session(session_id, response.json())
        except httpx.HTTPError as e:
            raise FinalizeError(session_id, str(e)) from e
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            raise FinalizeError(session_id, f"malformed session response: {e}") from e


def _parse_session(session_id: str, body: Any) -> Session:
    """Flatten the backend's session envelope into a Session."""
    if not isinstance(body, dict):
        raise TypeError(f"expected a JSON object, got {type(body).__name__}")
    details = body.get("session") or {}
    if not isinstance(details, dict):
        raise TypeError(f"expected session to be an object, got {type(details).__name__}")
    return Session.model_validate(
        {
            "id": session_id,
            "type": details.get("type", "manual"),
            "status": str(body["status"]).lower(),
            "web_url": body.get("web_url"),
            "run_args": details.get("run_args") or {},
            "provider_metadata": details.get("provider_metadata") or {},
            "files": body.get("files") or [],
        }
    )
