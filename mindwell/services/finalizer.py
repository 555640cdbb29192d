"""
Turns completed processing jobs (and typed text) into journal entries.

An entry is written only once its job has reached ``complete``; the unique
``job_id`` column guarantees a job becomes at most one entry, so repeating
``finalize`` returns the entry created the first time.
"""

import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mindwell.core.config import get_settings
from mindwell.core.exceptions import JobNotCompleteError, JobNotFoundError, PersistenceError
from mindwell.core.models import EntryResponse, JobResult, JobStatus
from mindwell.core.utils import mood_color
from mindwell.services.storage.database import get_session
from mindwell.services.storage.models_db import JournalEntry
from mindwell.services.storage.repository import JournalRepository

logger = logging.getLogger(__name__)

DEFAULT_MOOD = "neutral"
ENTRY_AUDIO_URL = "/api/v1/entries/{entry_id}/audio"


def to_entry_response(entry: JournalEntry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        job_id=entry.job_id,
        title=entry.title,
        content=entry.content,
        mood=entry.mood,
        category=entry.category,
        tags=entry.tags or [],
        color_hex=entry.color_hex,
        audio_url=ENTRY_AUDIO_URL.format(entry_id=entry.id) if entry.audio_path else None,
        audio_duration=entry.audio_duration,
        sentiment_score=entry.sentiment_score,
        dominant_emotions=entry.dominant_emotions or [],
        created_at=entry.created_at,
    )


class EntryFinalizer:
    """Persists journal entries from pipeline results or typed text.

    Args:
        retention_seconds: How long finished jobs may still be finalized;
            defaults to ``JOB_RETENTION_SECONDS``.
    """

    def __init__(self, retention_seconds: float | None = None) -> None:
        if retention_seconds is None:
            retention_seconds = get_settings().job_retention_seconds
        self._retention = timedelta(seconds=retention_seconds)

    async def finalize(
        self, user_id: int, job_id: str, mood_override: str | None = None
    ) -> tuple[EntryResponse, bool]:
        """Create the journal entry for a completed job.

        Args:
            user_id: Owner of the job.
            job_id: The completed processing job.
            mood_override: Mood chosen explicitly by the user; replaces the
                pipeline's mood when given.

        Returns:
            ``(entry, created)``; *created* is False when the job had already
            been finalized and the existing entry is returned.

        Raises:
            JobNotFoundError: Unknown or foreign job, or one past its retention
                window that never became an entry.
            JobNotCompleteError: The job has not reached ``complete``.
            PersistenceError: The entry could not be written; the job result
                is untouched so the call can be retried.
        """
        try:
            async with get_session() as session:
                repo = JournalRepository(session)
                existing = await repo.get_entry_by_job(job_id)
                if existing is not None:
                    if existing.user_id != user_id:
                        raise JobNotFoundError(job_id)
                    logger.info("Job %s already finalized as entry %s", job_id, existing.id)
                    return to_entry_response(existing), False

                job = await repo.get_live_job(job_id, user_id, self._retention)
                if job.status != JobStatus.complete.value or not job.result:
                    raise JobNotCompleteError(job_id, job.status)

                result = JobResult.model_validate(job.result)
                mood = (mood_override or "").strip().lower() or result.mood
                entry = await repo.create_entry(
                    user_id=user_id,
                    job_id=job_id,
                    content=result.transcript,
                    title=result.title,
                    mood=mood,
                    category=result.category,
                    tags=result.tags,
                    color_hex=mood_color(mood, result.dominant_emotions),
                    audio_path=job.audio_path,
                    audio_duration=job.duration_seconds,
                    sentiment_score=result.sentiment_score,
                    dominant_emotions=result.dominant_emotions,
                )
                response = to_entry_response(entry)
        except IntegrityError:
            # A concurrent finalize for the same job committed first
            async with get_session() as session:
                existing = await JournalRepository(session).get_entry_by_job(job_id)
                if existing is None or existing.user_id != user_id:
                    raise
                return to_entry_response(existing), False
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist entry for job %s", job_id)
            raise PersistenceError() from exc

        logger.info("Job %s finalized as entry %s", job_id, response.id)
        return response, True

    async def create_text_entry(
        self,
        user_id: int,
        content: str,
        mood: str | None = None,
        title: str | None = None,
        tags: list[str] | None = None,
    ) -> EntryResponse:
        """Persist a typed entry verbatim, bypassing the pipeline."""
        mood = (mood or "").strip().lower() or DEFAULT_MOOD
        try:
            async with get_session() as session:
                entry = await JournalRepository(session).create_entry(
                    user_id=user_id,
                    content=content,
                    mood=mood,
                    title=title.strip() if title and title.strip() else None,
                    tags=[t.strip().lower() for t in tags or [] if t.strip()],
                    color_hex=mood_color(mood),
                )
                response = to_entry_response(entry)
        except SQLAlchemyError as exc:
            logger.exception("Failed to persist text entry for user %s", user_id)
            raise PersistenceError() from exc

        logger.info("Text entry %s created for user %s", response.id, user_id)
        return response
