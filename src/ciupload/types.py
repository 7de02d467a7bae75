"""Core type definitions for ciupload."""

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, Field


class ArtifactKind(str, Enum):
    """Kinds of artifact a run can offer to the backend."""

    CHECK_RESULTS = "check-results"
    FROM_FILE = "from-file"
    TO_FILE = "to-file"
    CI_EVENT = "ci-event"


class SessionType(str, Enum):
    """Origin of a run."""

    GITHUB_ACTIONS = "github-actions"
    GITLAB_CI = "gitlab-ci"
    MANUAL = "manual"


class SessionStatus(str, Enum):
    """Backend-reported session state."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_pending(self) -> bool:
        return self is SessionStatus.PENDING

    @property
    def is_usable(self) -> bool:
        return self is SessionStatus.READY


class RunPhase(str, Enum):
    """Phases of a single upload run."""

    START = "start"
    LOADING = "loading"
    SESSION_OPEN = "session_open"
    NEGOTIATED = "negotiated"
    UPLOADING = "uploading"
    FINALIZED = "finalized"
    DONE = "done"
    ABORTED = "aborted"


# Loaded artifact content, keyed by kind. Read-only once built.
ArtifactBuffer = Mapping[ArtifactKind, bytes]


def freeze_buffers(buffers: dict[ArtifactKind, bytes]) -> ArtifactBuffer:
    return MappingProxyType(dict(buffers))


class RunMetadata(BaseModel):
    """Payload forwarded to the backend when a session starts.

    run_args and provider_metadata are opaque to the upload protocol.
    """

    type: SessionType = SessionType.MANUAL
    run_args: dict[str, Any] = {}
    provider_metadata: dict[str, Any] = {}


class UploadSlot(BaseModel):
    """A single-use upload destination issued for one artifact kind.

    Kinds this client does not know stay plain strings so the coordinator
    can reject them as unmatched.
    """

    id: str
    kind: ArtifactKind | str = Field(alias="slot", union_mode="left_to_right")
    url: str

    model_config = {"populate_by_name": True, "frozen": True}


class CompletionRecord(BaseModel):
    """Acknowledges that the transfer for one slot finished."""

    slot_id: str


class Session(BaseModel):
    """The backend's view of one run."""

    id: str
    type: SessionType = SessionType.MANUAL
    status: SessionStatus
    web_url: str | None = None
    run_args: dict[str, Any] = {}
    provider_metadata: dict[str, Any] = {}
    files: list[dict[str, Any]] = []


class RunResult(BaseModel):
    """Outcome of a successful upload run."""

    session_id: str
    status: SessionStatus
    web_url: str | None = None
    uploaded: list[ArtifactKind] = []
    completions: list[CompletionRecord] = []
