"""BackendClient protocol: the full wire contract of an upload run."""

from typing import Protocol

from ciupload.types import ArtifactKind, RunMetadata, Session, UploadSlot


class BackendClient(Protocol):
    """Protocol for the analysis backend."""

    async def start_session(self, metadata: RunMetadata) -> str:
        """Create a session for one run. Returns session ID."""
        ...

    async def get_upload_urls(
        self,
        session_id: str,
        kinds: list[ArtifactKind],
    ) -> list[UploadSlot]:
        """Ask which of the declared kinds the backend wants.

        Returns one slot per wanted kind. An empty list means nothing needs
        uploading.
        """
        ...

    async def mark_upload_as_complete(self, session_id: str, slot_id: str) -> None:
        """Acknowledge a finished transfer. Idempotent on the backend."""
        ...

    async def get_session(self, session_id: str) -> Session:
        """Get the current session state."""
        ...
