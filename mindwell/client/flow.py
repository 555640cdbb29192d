"""
The voice journal flow: record -> upload -> track -> finalize.

``VoiceJournalFlow`` composes the client components behind one small state
machine so a UI (or the ``record_journal`` script) only has to call the
next step and render ``state``.

States: idle -> recording -> submitting -> processing -> finalizing -> completed
        any step -> failed;  reset() / abandon() -> idle

Every fatal error releases the microphone, stops polling and lands in
``failed`` with the error kept on ``error``; the next ``start_recording()``
starts over from a clean slate. An upload timeout also lands in ``failed``
but keeps the take, which ``retry_submit()`` sends again.
"""

import logging
from collections.abc import Callable
from enum import StrEnum

from mindwell.client.api_client import JournalAPIClient
from mindwell.client.tracker import JobStatusTracker
from mindwell.client.uploader import SubmissionReceipt, UploadCoordinator
from mindwell.core.exceptions import RecordingStateError, RecordingTooShortError, UploadTimeoutError
from mindwell.core.models import EntryResponse, JobStatusResponse
from mindwell.services.audio.capture import AudioCapture, RecordingSession

logger = logging.getLogger(__name__)


class FlowState(StrEnum):
    idle = "idle"
    recording = "recording"
    submitting = "submitting"
    processing = "processing"
    finalizing = "finalizing"
    completed = "completed"
    failed = "failed"


class VoiceJournalFlow:
    """Drives one journal entry at a time through the whole client protocol.

    Args:
        capture: Microphone capture.
        uploader: Submission with retry/backoff.
        client: API client for polling and finalizing.
        poll_interval / max_not_found / max_transient_errors: Tracker settings.
        on_progress: Called with each job status change while processing.
    """

    def __init__(
        self,
        capture: AudioCapture,
        uploader: UploadCoordinator,
        client: JournalAPIClient,
        poll_interval: float = 3.0,
        max_not_found: int = 5,
        max_transient_errors: int = 10,
        on_progress: Callable[[JobStatusResponse], None] | None = None,
    ) -> None:
        self._capture = capture
        self._uploader = uploader
        self._client = client
        self._poll_interval = poll_interval
        self._max_not_found = max_not_found
        self._max_transient = max_transient_errors
        self._on_progress = on_progress

        self.state = FlowState.idle
        self.error: Exception | None = None
        self.session: RecordingSession | None = None
        self.receipt: SubmissionReceipt | None = None
        self.job_status: JobStatusResponse | None = None
        self.entry: EntryResponse | None = None
        self._tracker: JobStatusTracker | None = None
        self._mood_hint: str | None = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, *states: FlowState) -> None:
        if self.state not in states:
            allowed = ", ".join(states)
            raise RecordingStateError(f"Flow is {self.state}; expected one of: {allowed}")

    def _release(self) -> None:
        self._capture.cancel()
        if self._tracker is not None:
            self._tracker.cancel()
            self._tracker = None
        if self.session is not None:
            self.session.discard()
            self.session = None

    def _fail(self, exc: Exception) -> None:
        self._release()
        self.error = exc
        self.state = FlowState.failed
        logger.warning("Journal flow failed: %s", exc)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def start_recording(self) -> RecordingSession:
        """Start a new take. Resets a finished or failed flow first."""
        if self.state in (FlowState.completed, FlowState.failed):
            self.reset()
        self._require(FlowState.idle)

        try:
            session = await self._capture.start()
        except Exception as exc:
            self._fail(exc)
            raise
        self.session = session
        self.state = FlowState.recording
        return session

    async def stop_and_submit(self, mood_hint: str | None = None) -> SubmissionReceipt:
        """Stop recording and upload the take.

        A too-short take returns the flow to ``idle`` (record again) and
        re-raises ``RecordingTooShortError``; other errors end in ``failed``.
        After ``UploadTimeoutError`` the take is kept for :meth:`retry_submit`.
        """
        self._require(FlowState.recording)
        try:
            session = await self._capture.stop()
        except RecordingTooShortError:
            self.session = None
            self.state = FlowState.idle
            raise
        except Exception as exc:
            self._fail(exc)
            raise

        self.session = session
        return await self._submit(mood_hint)

    async def retry_submit(self, mood_hint: str | None = None) -> SubmissionReceipt:
        """Upload the kept take again after an upload timeout.

        The take goes out under its original correlation token, so an attempt
        the server did receive is answered with the existing job.
        """
        self._require(FlowState.failed)
        if self.session is None or not self.session.blob:
            raise RecordingStateError("No recording kept for resubmission")
        return await self._submit(mood_hint if mood_hint is not None else self._mood_hint)

    async def _submit(self, mood_hint: str | None) -> SubmissionReceipt:
        session = self.session
        self._mood_hint = mood_hint
        self.error = None
        self.state = FlowState.submitting
        try:
            receipt = await self._uploader.submit_session(session, mood_hint=mood_hint)
        except UploadTimeoutError as exc:
            # Keep the take on the session for retry_submit()
            self.error = exc
            self.state = FlowState.failed
            logger.warning("Upload of recording %s timed out: %s", session.id, exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise

        self.session = None
        self.receipt = receipt
        self._tracker = JobStatusTracker(
            self._client,
            receipt.job_id,
            poll_interval=self._poll_interval,
            max_not_found=self._max_not_found,
            max_transient_errors=self._max_transient,
            on_update=self._on_progress,
        )
        self.state = FlowState.processing
        return receipt

    async def await_entry(self, mood_override: str | None = None) -> EntryResponse | None:
        """Track the submitted job and finalize it when complete.

        Returns None if the flow was abandoned while waiting.
        """
        self._require(FlowState.processing)
        tracker = self._tracker

        async def _handoff(status: JobStatusResponse) -> EntryResponse:
            self.job_status = status
            return await self.finalize(mood_override)

        try:
            return await tracker.run(_handoff)
        except Exception as exc:
            # receipt and job_status survive, so a failed finalize can be retried
            self._fail(exc)
            raise

    async def finalize(self, mood_override: str | None = None) -> EntryResponse:
        """Persist the completed job as an entry. Safe to retry after a failure."""
        if self.receipt is None or self.job_status is None:
            raise RecordingStateError("No completed job to finalize")
        self.state = FlowState.finalizing
        try:
            entry = await self._client.create_entry(self.receipt.job_id, mood_override=mood_override)
        except Exception as exc:
            self.error = exc
            self.state = FlowState.failed
            logger.warning("Finalizing job %s failed: %s", self.receipt.job_id, exc)
            raise
        self.entry = entry
        self.error = None
        self.state = FlowState.completed
        logger.info("Journal entry %s saved", entry.id)
        return entry

    async def create_text_entry(
        self,
        content: str,
        mood: str | None = None,
        title: str | None = None,
        tags: list[str] | None = None,
    ) -> EntryResponse:
        """Save a typed entry directly, bypassing capture and processing."""
        if self.state in (FlowState.completed, FlowState.failed):
            self.reset()
        self._require(FlowState.idle)
        self.state = FlowState.finalizing
        try:
            entry = await self._client.create_text_entry(content, mood=mood, title=title, tags=tags)
        except Exception as exc:
            self._fail(exc)
            raise
        self.entry = entry
        self.state = FlowState.completed
        return entry

    def abandon(self) -> None:
        """Walk away: drop any recording and stop tracking. Server work continues."""
        self._release()
        self.state = FlowState.idle

    def reset(self) -> None:
        self.abandon()
        self.error = None
        self.receipt = None
        self.job_status = None
        self.entry = None
        self._mood_hint = None
