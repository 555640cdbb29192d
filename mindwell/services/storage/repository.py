"""
Data-access layer for processing jobs and journal entries.

``JournalRepository`` receives an ``AsyncSession`` and calls ``flush()``
rather than ``commit()`` so that transaction boundaries are controlled by the
caller (typically :func:`get_session`).
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mindwell.core.exceptions import EntryNotFoundError, InvalidJobTransitionError, JobNotFoundError
from mindwell.core.models import JOB_STATUS_ORDER, STAGE_PROGRESS, ErrorKind, JobStatus
from mindwell.services.storage.models_db import JournalEntry, ProcessingJob

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_expired(job: ProcessingJob, retention: timedelta, now: datetime | None = None) -> bool:
    """True once a finished job has outlived its retention window."""
    finished = as_utc(job.finished_at)
    return finished is not None and finished + retention < (now or datetime.now(UTC))


class JournalRepository:
    """Data-access layer for the MindWell schema.

    Job status changes go through :meth:`advance_job`, :meth:`complete_job`
    and :meth:`fail_job`, which enforce the forward-only lifecycle:
    statuses follow ``JOB_STATUS_ORDER`` one step at a time, ``error`` is
    reachable from any non-terminal status, and terminal statuses never
    change again.

    Args:
        session: An active SQLAlchemy ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self,
        user_id: int,
        audio_path: str,
        container: str,
        duration_seconds: float,
        mood_hint: str | None = None,
        correlation_token: str | None = None,
        job_id: str | None = None,
    ) -> ProcessingJob:
        """Create and return a new job in ``queued``."""
        job = ProcessingJob(
            id=job_id or uuid.uuid4().hex,
            user_id=user_id,
            status=JobStatus.queued.value,
            progress=STAGE_PROGRESS[JobStatus.queued],
            audio_path=audio_path,
            container=container,
            duration_seconds=duration_seconds,
            mood_hint=mood_hint,
            correlation_token=correlation_token,
            partial_result={},
        )
        self._session.add(job)
        await self._session.flush()
        return job

    async def get_job(self, job_id: str, user_id: int | None = None) -> ProcessingJob:
        """Return a job by ID or raise :class:`JobNotFoundError`.

        When *user_id* is given, jobs belonging to other users are reported
        as not found.
        """
        job = await self._session.get(ProcessingJob, job_id)
        if job is None or (user_id is not None and job.user_id != user_id):
            raise JobNotFoundError(job_id)
        return job

    async def get_live_job(self, job_id: str, user_id: int, retention: timedelta) -> ProcessingJob:
        """Like :meth:`get_job`, but jobs past *retention* are reported as not found.

        Expired rows linger until the next retention sweep.
        """
        job = await self.get_job(job_id, user_id)
        if is_expired(job, retention):
            raise JobNotFoundError(job_id)
        return job

    async def find_job_by_token(self, user_id: int, correlation_token: str) -> ProcessingJob | None:
        stmt = select(ProcessingJob).where(
            ProcessingJob.user_id == user_id,
            ProcessingJob.correlation_token == correlation_token,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_token(self, user_id: int, correlation_token: str, retention: timedelta) -> ProcessingJob | None:
        """Return the live job holding *correlation_token*, if any.

        A token held by an expired job is released so a new job can take it.
        """
        job = await self.find_job_by_token(user_id, correlation_token)
        if job is not None and is_expired(job, retention):
            logger.debug("Releasing token %s from expired job %s", correlation_token, job.id)
            job.correlation_token = None
            await self._session.flush()
            return None
        return job

    async def advance_job(self, job_id: str, status: JobStatus, partial: dict | None = None) -> ProcessingJob:
        """Move a job to the next stage, merging *partial* into its draft result.

        Raises:
            InvalidJobTransitionError: If *status* is not the immediate
                successor of the current status.
        """
        job = await self.get_job(job_id)
        current = JobStatus(job.status)
        if current.is_terminal or status in (JobStatus.error, JobStatus.complete):
            raise InvalidJobTransitionError(job_id, current, status)
        if JOB_STATUS_ORDER.index(status) != JOB_STATUS_ORDER.index(current) + 1:
            raise InvalidJobTransitionError(job_id, current, status)

        job.status = status.value
        job.progress = max(job.progress, STAGE_PROGRESS[status])
        if partial:
            # Reassign so the JSON column is flagged dirty
            job.partial_result = {**(job.partial_result or {}), **partial}
        job.updated_at = datetime.now(UTC)
        await self._session.flush()
        return job

    async def complete_job(self, job_id: str, result: dict) -> ProcessingJob:
        """Mark a job ``complete`` with its final result.

        Only allowed from the last stage (``generating_title``).
        """
        job = await self.get_job(job_id)
        current = JobStatus(job.status)
        if current is not JobStatus.generating_title:
            raise InvalidJobTransitionError(job_id, current, JobStatus.complete)

        now = datetime.now(UTC)
        job.status = JobStatus.complete.value
        job.progress = STAGE_PROGRESS[JobStatus.complete]
        job.result = result
        job.partial_result = {}
        job.updated_at = now
        job.finished_at = now
        await self._session.flush()
        return job

    async def fail_job(self, job_id: str, kind: ErrorKind, message: str) -> ProcessingJob:
        """Move a non-terminal job to ``error``, discarding partial results.

        Failing an already-terminal job is a no-op and returns it unchanged.
        """
        job = await self.get_job(job_id)
        if JobStatus(job.status).is_terminal:
            logger.debug("Job %s already %s; ignoring failure %s", job_id, job.status, kind)
            return job

        now = datetime.now(UTC)
        job.status = JobStatus.error.value
        job.error_kind = kind.value
        job.error_message = message
        job.partial_result = {}
        job.updated_at = now
        job.finished_at = now
        await self._session.flush()
        return job

    async def list_unfinished_jobs(self) -> list[ProcessingJob]:
        stmt = select(ProcessingJob).where(
            ProcessingJob.status.not_in([JobStatus.complete.value, JobStatus.error.value])
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_expired_jobs(self, cutoff: datetime) -> list[ProcessingJob]:
        """Return terminal jobs that finished before *cutoff*."""
        stmt = select(ProcessingJob).where(
            ProcessingJob.finished_at.is_not(None),
            ProcessingJob.finished_at < cutoff,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_jobs(self, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        result = await self._session.execute(delete(ProcessingJob).where(ProcessingJob.id.in_(job_ids)))
        await self._session.flush()
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Journal entries
    # ------------------------------------------------------------------

    async def create_entry(
        self,
        user_id: int,
        content: str,
        mood: str,
        title: str | None = None,
        tags: list[str] | None = None,
        color_hex: str | None = None,
        category: str | None = None,
        job_id: str | None = None,
        audio_path: str | None = None,
        audio_duration: float | None = None,
        sentiment_score: int | None = None,
        dominant_emotions: list[str] | None = None,
    ) -> JournalEntry:
        """Create and return a journal entry."""
        entry = JournalEntry(
            user_id=user_id,
            job_id=job_id,
            title=title,
            content=content,
            mood=mood,
            category=category,
            tags=tags or [],
            color_hex=color_hex,
            audio_path=audio_path,
            audio_duration=audio_duration,
            sentiment_score=sentiment_score,
            dominant_emotions=dominant_emotions or [],
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def get_entry(self, entry_id: int, user_id: int | None = None) -> JournalEntry:
        """Return an entry by ID or raise :class:`EntryNotFoundError`."""
        entry = await self._session.get(JournalEntry, entry_id)
        if entry is None or (user_id is not None and entry.user_id != user_id):
            raise EntryNotFoundError(entry_id)
        return entry

    async def get_entry_by_job(self, job_id: str) -> JournalEntry | None:
        stmt = select(JournalEntry).where(JournalEntry.job_id == job_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def entry_job_ids(self, job_ids: list[str]) -> set[str]:
        """Return the subset of *job_ids* that already became entries."""
        if not job_ids:
            return set()
        stmt = select(JournalEntry.job_id).where(JournalEntry.job_id.in_(job_ids))
        result = await self._session.execute(stmt)
        return {row for row in result.scalars().all() if row}

    async def list_entries(self, user_id: int, limit: int = 50, offset: int = 0) -> list[JournalEntry]:
        """Return a user's entries, newest first."""
        stmt = (
            select(JournalEntry)
            .where(JournalEntry.user_id == user_id)
            .order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
