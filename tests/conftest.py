"""Shared fixtures: an in-memory backend and uploader that record every call."""

from pathlib import Path

import pytest

from ciupload.errors import (
    CompletionError,
    FinalizeError,
    NegotiationError,
    SessionStartError,
    UploadError,
)
from ciupload.types import (
    ArtifactKind,
    RunMetadata,
    Session,
    SessionStatus,
    UploadSlot,
)

CONTENTS = {
    ArtifactKind.CHECK_RESULTS: b"check results",
    ArtifactKind.FROM_FILE: b"from file",
    ArtifactKind.TO_FILE: b"to file",
    ArtifactKind.CI_EVENT: b'{"organization": "acme", "pull_request": 1}',
}


class FakeBackend:
    """BackendClient that hands out slots for the kinds in `wanted`."""

    def __init__(self, wanted: list[ArtifactKind] | None = None):
        self.wanted = wanted
        self.calls: list[str] = []
        self.started: list[RunMetadata] = []
        self.slots: list[UploadSlot] = []
        self.completed: list[str] = []
        self.statuses = [SessionStatus.READY]
        self.web_url: str | None = "/the_web_url"
        self.extra_slots: list[UploadSlot] = []

        self.start_error = False
        self.negotiation_error = False
        self.finalize_error = False
        self.completion_failures: dict[ArtifactKind, int] = {}

    async def start_session(self, metadata: RunMetadata) -> str:
        self.calls.append("start_session")
        if self.start_error:
            raise SessionStartError("401 Unauthorized")
        self.started.append(metadata)
        return "session-1"

    async def get_upload_urls(self, session_id, kinds):
        self.calls.append("get_upload_urls")
        if self.negotiation_error:
            raise NegotiationError("connection reset")
        wanted = kinds if self.wanted is None else self.wanted
        self.slots = [
            UploadSlot(id=f"slot-{kind.value}", kind=kind, url=f"/url/{kind.value}")
            for kind in wanted
        ] + self.extra_slots
        return list(self.slots)

    async def mark_upload_as_complete(self, session_id, slot_id):
        self.calls.append("mark_upload_as_complete")
        kind = next(slot.kind for slot in self.slots if slot.id == slot_id)
        remaining = self.completion_failures.get(kind, 0)
        if remaining:
            self.completion_failures[kind] = remaining - 1
            raise CompletionError(slot_id, "502 Bad Gateway")
        self.completed.append(slot_id)

    async def get_session(self, session_id) -> Session:
        self.calls.append("get_session")
        if self.finalize_error:
            raise FinalizeError(session_id, "timed out")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return Session(
            id=session_id,
            status=status,
            web_url=self.web_url if status is SessionStatus.READY else None,
        )


class FakeUploader:
    """SlotUploader that remembers what was sent where."""

    def __init__(self, fail_urls: set[str] | None = None):
        self.fail_urls = fail_urls or set()
        self.uploads: list[tuple[str, bytes]] = []
        self.attempted: list[str] = []

    async def upload(self, url: str, content: bytes) -> None:
        self.attempted.append(url)
        if url in self.fail_urls:
            raise UploadError(url, "403 Forbidden")
        self.uploads.append((url, content))


@pytest.fixture
def artifact_paths(tmp_path: Path) -> dict[ArtifactKind, Path]:
    """One file per artifact kind with known content."""
    paths = {}
    for kind, content in CONTENTS.items():
        path = tmp_path / f"{kind.value}.dat"
        path.write_bytes(content)
        paths[kind] = path
    return paths


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()
