"""Session coordinator: drives one CI run through the upload protocol.

A run moves through fixed phases:

    LOADING -> SESSION_OPEN -> NEGOTIATED -> UPLOADING -> FINALIZED -> DONE

Each phase needs the output of the previous one, so they never overlap. Any
RunError moves the run to ABORTED and is re-raised to the caller unchanged;
its `phase` attribute names where the run stopped.

Inside UPLOADING every slot is an independent upload-then-acknowledge pair.
Pairs run concurrently up to `UploadConfig.max_concurrency`.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Mapping

from ciupload.artifacts import load_artifacts
from ciupload.backend.base import BackendClient
from ciupload.config import UploadConfig
from ciupload.errors import (
    CompletionError,
    FinalizeError,
    RunError,
    UnmatchedSlotError,
    UploadError,
)
from ciupload.types import (
    ArtifactBuffer,
    ArtifactKind,
    CompletionRecord,
    RunMetadata,
    RunPhase,
    RunResult,
    Session,
    UploadSlot,
)
from ciupload.uploader import SlotUploader

logger = logging.getLogger(__name__)

ArtifactLoader = Callable[[Mapping[ArtifactKind, Path]], Awaitable[ArtifactBuffer]]


class SessionCoordinator:
    """Runs the load, negotiate, upload and finalize protocol for one CI run.

    `phase` and `failed_phase` describe the current or last run, so a
    coordinator runs one upload at a time. Use one coordinator per
    concurrent run.
    """

    def __init__(
        self,
        backend: BackendClient,
        uploader: SlotUploader,
        config: UploadConfig | None = None,
        loader: ArtifactLoader = load_artifacts,
    ):
        self.backend = backend
        self.uploader = uploader
        self.config = config or UploadConfig()
        self.loader = loader
        self.phase = RunPhase.START
        self.failed_phase: RunPhase | None = None
        self._running = False

    def _enter(self, phase: RunPhase) -> None:
        logger.debug("Run phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def upload_ci_run(
        self,
        declared: Mapping[ArtifactKind, Path],
        metadata: RunMetadata | None = None,
    ) -> RunResult:
        """Upload one CI run and return the final session state.

        Args:
            declared: One local path per artifact kind the run offers
            metadata: Session type and opaque run/provider payload

        Returns:
            RunResult with the web URL and status of the final session read

        Raises:
            RunError: a subclass naming the failed phase and artifact
        """
        if self._running:
            raise RuntimeError("SessionCoordinator is already running an upload")

        metadata = metadata or RunMetadata()
        self._running = True
        self.phase = RunPhase.START
        self.failed_phase = None

        try:
            self._enter(RunPhase.LOADING)
            buffers = await self.loader(declared)

            self._enter(RunPhase.SESSION_OPEN)
            session_id = await self.backend.start_session(metadata)

            self._enter(RunPhase.NEGOTIATED)
            slots = await self.backend.get_upload_urls(session_id, list(buffers))
            plan = match_slots(slots, buffers)
            logger.info(
                "Backend requested %d of %d artifacts for session %s",
                len(plan),
                len(buffers),
                session_id,
            )

            self._enter(RunPhase.UPLOADING)
            completions = await self._upload_all(session_id, plan)

            self._enter(RunPhase.FINALIZED)
            session = await self.backend.get_session(session_id)
        except (RunError, asyncio.CancelledError) as e:
            self.failed_phase = self.phase
            self.phase = RunPhase.ABORTED
            if isinstance(e, RunError):
                logger.error("Run aborted during %s: %s", self.failed_phase.value, e)
            else:
                logger.warning("Run cancelled during %s", self.failed_phase.value)
            raise
        finally:
            self._running = False

        self._enter(RunPhase.DONE)
        return RunResult(
            session_id=session_id,
            status=session.status,
            web_url=session.web_url,
            uploaded=[slot.kind for slot, _ in plan],
            completions=completions,
        )

    async def _upload_all(
        self,
        session_id: str,
        plan: list[tuple[UploadSlot, bytes]],
    ) -> list[CompletionRecord]:
        """Upload and acknowledge every planned slot.

        After the first failure no further slots start. With on_failure=drain
        transfers already running finish and are acknowledged only if they
        succeeded; with on_failure=cancel they are cancelled.
        """
        if not plan:
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        halted = asyncio.Event()
        failures: list[BaseException] = []
        tasks = [
            asyncio.create_task(
                self._transfer_slot(session_id, slot, content, semaphore, halted, failures),
                name=f"upload-{slot.kind.value}",
            )
            for slot, content in plan
        ]

        try:
            if self.config.on_failure == "cancel":
                _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.wait(pending)
            else:
                await asyncio.wait(tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if failures:
            # Retrieve every exception so none is reported as never retrieved.
            for task in tasks:
                if not task.cancelled():
                    task.exception()
            raise failures[0]

        return [task.result() for task in tasks]

    async def _transfer_slot(
        self,
        session_id: str,
        slot: UploadSlot,
        content: bytes,
        semaphore: asyncio.Semaphore,
        halted: asyncio.Event,
        failures: list[BaseException],
    ) -> CompletionRecord | None:
        async with semaphore:
            if halted.is_set():
                logger.debug("Not starting %s upload, run already failed", slot.kind.value)
                return None

            try:
                try:
                    await self.uploader.upload(slot.url, content)
                except UploadError as e:
                    raise UploadError(slot.url, e.reason, kind=slot.kind) from e
                record = await self._acknowledge(session_id, slot)
            except Exception as e:
                halted.set()
                failures.append(e)
                raise

        logger.debug("Slot %s (%s) uploaded and acknowledged", slot.id, slot.kind.value)
        return record

    async def _acknowledge(self, session_id: str, slot: UploadSlot) -> CompletionRecord:
        """Mark a slot complete, retrying with exponential backoff."""
        attempts = self.config.completion_attempts
        delay = self.config.completion_backoff

        for attempt in range(1, attempts + 1):
            try:
                await self.backend.mark_upload_as_complete(session_id, slot.id)
                return CompletionRecord(slot_id=slot.id)
            except CompletionError as e:
                if attempt == attempts:
                    raise CompletionError(
                        slot.id, e.reason, kind=slot.kind, attempts=attempts
                    ) from e
                logger.warning(
                    "Acknowledging %s failed (attempt %d/%d): %s. Retrying in %.1fs",
                    slot.kind.value,
                    attempt,
                    attempts,
                    e.reason,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2


def match_slots(
    slots: list[UploadSlot],
    buffers: ArtifactBuffer,
) -> list[tuple[UploadSlot, bytes]]:
    """Pair each negotiated slot with the loaded buffer of the same kind.

    Raises UnmatchedSlotError for a slot whose kind was never declared,
    including kinds this client does not know.
    """
    plan = []
    for slot in slots:
        content = buffers.get(slot.kind) if isinstance(slot.kind, ArtifactKind) else None
        if content is None:
            raise UnmatchedSlotError(slot)
        plan.append((slot, content))
    return plan


async def wait_for_session(
    backend: BackendClient,
    session_id: str,
    timeout: float = 300,
    poll_interval: float = 5,
) -> Session:
    """Poll a session until it leaves the pending state.

    Raises FinalizeError if it is still pending after `timeout` seconds.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        session = await backend.get_session(session_id)
        if not session.status.is_pending:
            return session
        if loop.time() >= deadline:
            raise FinalizeError(session_id, f"still pending after {timeout:g}s")
        logger.debug("Session %s pending, polling again in %gs", session_id, poll_interval)
        await asyncio.sleep(poll_interval)
