"""Error taxonomy for ciupload."""

from pathlib import Path

from ciupload.types import ArtifactKind, RunPhase, UploadSlot


class CIUploadError(Exception):
    """Base class for all ciupload errors."""


class ConfigError(CIUploadError):
    """Invalid or incomplete configuration."""


class ContextError(CIUploadError):
    """CI provider context could not be built."""


class RunError(CIUploadError):
    """A run aborted. `phase` names the phase that failed."""

    phase: RunPhase = RunPhase.START

    def __init__(self, message: str):
        super().__init__(f"[{self.phase.value}] {message}")


class LoadError(RunError):
    phase = RunPhase.LOADING

    def __init__(self, kind: ArtifactKind, path: Path, reason: str = ""):
        self.kind = kind
        self.path = path
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot read {kind.value} artifact at {path}{detail}")


class SessionStartError(RunError):
    phase = RunPhase.SESSION_OPEN


class NegotiationError(RunError):
    phase = RunPhase.NEGOTIATED


class UnmatchedSlotError(RunError):
    """The backend issued a slot for a kind the run never loaded."""

    phase = RunPhase.NEGOTIATED

    def __init__(self, slot: UploadSlot):
        self.slot = slot
        kind = slot.kind.value if isinstance(slot.kind, ArtifactKind) else slot.kind
        super().__init__(
            f"Backend requested undeclared artifact {kind} (slot {slot.id})"
        )


class UploadError(RunError):
    phase = RunPhase.UPLOADING

    def __init__(self, url: str, reason: str, kind: ArtifactKind | None = None):
        self.url = url
        self.reason = reason
        self.kind = kind
        label = f"{kind.value} " if kind else ""
        super().__init__(f"Upload of {label}artifact to {url} failed: {reason}")


class CompletionError(RunError):
    phase = RunPhase.UPLOADING

    def __init__(
        self,
        slot_id: str,
        reason: str,
        kind: ArtifactKind | None = None,
        attempts: int = 1,
    ):
        self.slot_id = slot_id
        self.reason = reason
        self.kind = kind
        self.attempts = attempts
        label = f" ({kind.value})" if kind else ""
        super().__init__(
            f"Could not acknowledge slot {slot_id}{label} after {attempts} attempt(s): {reason}"
        )


class FinalizeError(RunError):
    """Reading the final session state failed. The remote session may still exist."""

    phase = RunPhase.FINALIZED

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        super().__init__(f"Could not read session {session_id}: {reason}")
