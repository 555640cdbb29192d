"""
Pydantic v2 request / response models shared by the API and the client.

Wire format is camelCase (``jobId``, ``durationSeconds``); inputs also accept
snake_case field names.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting both spellings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: datetime


# ---------------------------------------------------------------------------
# Processing jobs
# ---------------------------------------------------------------------------


class JobStatus(StrEnum):
    """Lifecycle of a processing job, in pipeline order."""

    queued = "queued"
    transcribing = "transcribing"
    analyzing = "analyzing"
    categorizing = "categorizing"
    generating_title = "generating_title"
    complete = "complete"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.complete, JobStatus.error)


# Forward order of non-error states; error is reachable from any non-terminal state.
JOB_STATUS_ORDER: tuple[JobStatus, ...] = (
    JobStatus.queued,
    JobStatus.transcribing,
    JobStatus.analyzing,
    JobStatus.categorizing,
    JobStatus.generating_title,
    JobStatus.complete,
)

STAGE_PROGRESS: dict[JobStatus, int] = {
    JobStatus.queued: 0,
    JobStatus.transcribing: 25,
    JobStatus.analyzing: 50,
    JobStatus.categorizing: 70,
    JobStatus.generating_title: 85,
    JobStatus.complete: 100,
}


class ErrorKind(StrEnum):
    """Stage-tagged reason a job ended in ``error``."""

    transcription_failed = "transcription_failed"
    analysis_failed = "analysis_failed"
    categorization_failed = "categorization_failed"
    title_generation_failed = "title_generation_failed"
    cancelled = "cancelled"
    interrupted = "interrupted"


class TranscriptionSegment(BaseModel):
    """One timed segment of a transcription."""

    text: str
    start: float
    end: float
    avg_logprob: float = 0.0
    no_speech_prob: float = 0.0


class TranscriptionResult(BaseModel):
    """Output of the speech-to-text stage."""

    text: str
    language: str = "unknown"
    language_probability: float = 0.0
    confidence: float = 0.0
    duration: float = 0.0
    segments: list[TranscriptionSegment] = Field(default_factory=list)


class MoodAnalysis(BaseModel):
    """Output of the sentiment / emotion stage."""

    mood: str
    sentiment_score: int = Field(default=0, ge=-100, le=100)
    dominant_emotions: list[str] = Field(default_factory=list)
    emotional_tone: str = ""


class CategorizationResult(BaseModel):
    """Output of the topic categorization stage."""

    category: str
    tags: list[str] = Field(default_factory=list)


class JobResult(CamelModel):
    """Populated only when a job reaches ``complete``."""

    transcript: str
    language: str = "unknown"
    mood: str
    sentiment_score: int = 0
    dominant_emotions: list[str] = Field(default_factory=list)
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    title: str


class JobError(CamelModel):
    """Populated only when a job reaches ``error``."""

    kind: ErrorKind
    message: str


class JobSubmitResponse(CamelModel):
    """POST /jobs response."""

    job_id: str
    status: JobStatus
    duplicate: bool = False


class JobStatusResponse(CamelModel):
    """GET /jobs/{job_id} response."""

    job_id: str
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    result: JobResult | None = None
    error: JobError | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Journal entries
# ---------------------------------------------------------------------------


class EntryCreate(CamelModel):
    """POST /entries body: either a finished job or typed text, never both."""

    job_id: str | None = None
    mood_override: str | None = None

    content: str | None = None
    mood: str | None = None
    title: str | None = Field(default=None, max_length=200)
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_source(self) -> "EntryCreate":
        if self.job_id and self.content is not None:
            raise ValueError("Provide either jobId or content, not both")
        if not self.job_id and (self.content is None or not self.content.strip()):
            raise ValueError("Either jobId or non-empty content is required")
        return self


class EntryResponse(CamelModel):
    """Standard journal entry representation returned by the API."""

    id: int
    user_id: int
    job_id: str | None = None
    title: str | None = None
    content: str
    mood: str
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    color_hex: str | None = None
    audio_url: str | None = None
    audio_duration: float | None = None
    sentiment_score: int | None = None
    dominant_emotions: list[str] = Field(default_factory=list)
    created_at: datetime


# ---------------------------------------------------------------------------
# Error
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error envelope returned by the API."""

    detail: str
    code: str
    timestamp: str
