"""
MindWell journal exception hierarchy.

All application-specific exceptions inherit from MindWellError, enabling
centralized error handling in the API middleware layer. Client-side errors
(capture, upload, tracking) share the same base so callers can catch the
whole flow with one clause.
"""

from datetime import UTC, datetime

from mindwell.core.models import ErrorKind


class MindWellError(Exception):
    """Base exception for all MindWell errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "MINDWELL_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class MicrophonePermissionError(MindWellError):
    """Raised when the OS or user refuses microphone access."""

    def __init__(self, detail: str = "Microphone access was denied") -> None:
        super().__init__(detail=detail, code="PERMISSION_DENIED", status_code=403)


class NoDeviceError(MindWellError):
    """Raised when no usable input device exists."""

    def __init__(self, detail: str = "No microphone is available") -> None:
        super().__init__(detail=detail, code="NO_DEVICE", status_code=503)


class RecordingAlreadyActiveError(MindWellError):
    """Raised when trying to start a recording while one is already active."""

    def __init__(self) -> None:
        super().__init__(
            detail="A recording is already active",
            code="RECORDING_ALREADY_ACTIVE",
            status_code=409,
        )


class RecordingStateError(MindWellError):
    """Raised on an illegal recording transition (e.g. stop while idle)."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail=detail, code="INVALID_RECORDING_STATE", status_code=409)


class RecordingTooShortError(MindWellError):
    """Raised by ``stop()`` when the take is below the minimum viable size.

    Recoverable: the recording is discarded and the user records again.
    """

    def __init__(self, duration_seconds: float, size_bytes: int) -> None:
        self.duration_seconds = duration_seconds
        self.size_bytes = size_bytes
        super().__init__(
            detail=(
                f"Recording too short ({duration_seconds:.2f}s, {size_bytes} bytes); "
                "please record again"
            ),
            code="TOO_SHORT",
            status_code=422,
        )


class NoSupportedContainerError(MindWellError):
    """Raised when no preferred audio container can be encoded at runtime."""

    def __init__(self, tried: list[str]) -> None:
        super().__init__(
            detail=f"No supported audio container among: {', '.join(tried)}",
            code="NO_SUPPORTED_CONTAINER",
            status_code=500,
        )


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class SubmissionRejectedError(MindWellError):
    """Raised when the server refuses the payload (4xx). Never retried."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail=detail, code="SUBMISSION_REJECTED", status_code=status_code)


class UploadTimeoutError(MindWellError):
    """Raised when retries or the overall deadline are exhausted."""

    def __init__(self, detail: str = "Upload timed out", attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(detail=detail, code="UPLOAD_TIMEOUT", status_code=504)


class InvalidSubmissionError(MindWellError):
    """Server-side rejection of a job submission (surfaces as a 4xx)."""

    def __init__(self, detail: str, code: str = "INVALID_SUBMISSION", status_code: int = 400):
        super().__init__(detail=detail, code=code, status_code=status_code)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineStageError(MindWellError):
    """Base for stage failures; ``kind`` tags which stage failed."""

    kind: ErrorKind

    def __init__(self, detail: str) -> None:
        super().__init__(detail=detail, code=self.kind.value.upper(), status_code=500)


class TranscriptionFailedError(PipelineStageError):
    """Raised when STT processing fails or yields no text."""

    kind = ErrorKind.transcription_failed


class AnalysisFailedError(PipelineStageError):
    """Raised when mood / sentiment analysis fails."""

    kind = ErrorKind.analysis_failed


class CategorizationFailedError(PipelineStageError):
    """Raised when topic categorization fails."""

    kind = ErrorKind.categorization_failed


class TitleGenerationFailedError(PipelineStageError):
    """Raised when no usable title could be generated."""

    kind = ErrorKind.title_generation_failed


class InvalidJobTransitionError(MindWellError):
    """Raised when a job would move backwards or leave a terminal state."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(
            detail=f"Job {job_id}: illegal transition {current} -> {target}",
            code="INVALID_JOB_TRANSITION",
            status_code=500,
        )


class JobNotFoundError(MindWellError):
    """Raised when a job ID is unknown, belongs to someone else, or has expired."""

    def __init__(self, job_id: str) -> None:
        super().__init__(
            detail=f"Job not found (it may have expired): {job_id}",
            code="JOB_NOT_FOUND",
            status_code=404,
        )


class JobNotCompleteError(MindWellError):
    """Raised when finalizing a job that has not reached ``complete``."""

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(
            detail=f"Job {job_id} is {status}; only complete jobs can be finalized",
            code="JOB_NOT_COMPLETE",
            status_code=409,
        )


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


class JobFailedError(MindWellError):
    """A job reported ``error``; carries the pipeline's kind and message verbatim."""

    def __init__(self, job_id: str, kind: ErrorKind, message: str) -> None:
        self.job_id = job_id
        self.kind = kind
        self.message = message
        super().__init__(detail=f"{kind.value}: {message}", code=kind.value.upper(), status_code=500)


class JobLostError(MindWellError):
    """Raised when a job stays unfindable across repeated polls.

    Ambiguous by nature: the job may have expired after completing, or never
    started. Distinct from a pipeline-reported ``JobFailedError``.
    """

    def __init__(self, job_id: str, attempts: int) -> None:
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(
            detail=f"Job {job_id} not found after {attempts} consecutive polls",
            code="JOB_LOST",
            status_code=404,
        )


# ---------------------------------------------------------------------------
# Entries / persistence / auth
# ---------------------------------------------------------------------------


class EntryNotFoundError(MindWellError):
    """Raised when a journal entry ID does not exist for the caller."""

    def __init__(self, entry_id: int | str) -> None:
        super().__init__(
            detail=f"Journal entry not found: {entry_id}",
            code="ENTRY_NOT_FOUND",
            status_code=404,
        )


class EntryAudioNotFoundError(MindWellError):
    """Raised when an entry has no recording, or its file is gone."""

    def __init__(self, entry_id: int | str) -> None:
        super().__init__(
            detail=f"No audio stored for journal entry: {entry_id}",
            code="AUDIO_NOT_FOUND",
            status_code=404,
        )


class PersistenceError(MindWellError):
    """Raised when writing an entry fails; the caller may retry finalize."""

    def __init__(self, detail: str = "Could not save the journal entry; please retry") -> None:
        super().__init__(detail=detail, code="PERSISTENCE_ERROR", status_code=503)


class AuthenticationError(MindWellError):
    """Raised when the bearer token is missing or unknown."""

    def __init__(self) -> None:
        super().__init__(detail="Invalid or missing bearer token", code="AUTH_REQUIRED", status_code=401)
