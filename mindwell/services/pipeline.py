"""Server-side processing pipeline for recorded journal entries.

Each submitted recording becomes a ``ProcessingJob`` that runs as its own
``asyncio.Task``::

    queued -> transcribing -> analyzing -> categorizing -> generating_title -> complete

``error`` is reachable from any non-terminal stage and is absorbing. Every
stage's output is committed together with the status change that follows
it, so a poller never sees a stage begin before the previous one's output is
stored. Finished jobs stay queryable for ``retention_seconds`` and are then
swept away (lookups answer 404).

Usage::

    pipeline = create_pipeline()
    job, created = await pipeline.submit(user_id, audio, "entry.ogg", "audio/ogg", 5.0)
    status = await pipeline.get_status(job.id, user_id)
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlalchemy.exc import IntegrityError

from mindwell.core.config import Settings, get_settings
from mindwell.core.exceptions import (
    AnalysisFailedError,
    CategorizationFailedError,
    InvalidSubmissionError,
    PipelineStageError,
    TitleGenerationFailedError,
    TranscriptionFailedError,
)
from mindwell.core.models import (
    ErrorKind,
    JobError,
    JobResult,
    JobStatus,
    JobStatusResponse,
)
from mindwell.services.analysis import MoodAnalyzer, TitleGenerator, TopicCategorizer
from mindwell.services.audio.formats import extension_for, is_accepted, normalize_mime
from mindwell.services.llm import create_llm
from mindwell.services.storage.database import get_session
from mindwell.services.storage.models_db import ProcessingJob
from mindwell.services.storage.repository import JournalRepository
from mindwell.services.transcription import BaseSTT, create_stt

logger = logging.getLogger(__name__)

TransitionHook = Callable[[str, JobStatus, int], None]

_STAGE_ERRORS: dict[JobStatus, type[PipelineStageError]] = {
    JobStatus.queued: TranscriptionFailedError,
    JobStatus.transcribing: TranscriptionFailedError,
    JobStatus.analyzing: AnalysisFailedError,
    JobStatus.categorizing: CategorizationFailedError,
    JobStatus.generating_title: TitleGenerationFailedError,
}


def to_status_response(job: ProcessingJob) -> JobStatusResponse:
    """Convert an ORM job to the public status representation."""
    status = JobStatus(job.status)
    result = None
    error = None
    if status is JobStatus.complete and job.result:
        result = JobResult.model_validate(job.result)
    elif status is JobStatus.error:
        error = JobError(kind=ErrorKind(job.error_kind), message=job.error_message or "")
    return JobStatusResponse(
        job_id=job.id,
        status=status,
        progress=job.progress,
        result=result,
        error=error,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _remove_files(paths: list[str]) -> None:
    for path in paths:
        Path(path).unlink(missing_ok=True)


class ProcessingPipeline:
    """Runs recorded journal entries through transcription and analysis.

    Args:
        stt: Speech-to-text provider.
        mood_analyzer: Sentiment / emotion stage.
        categorizer: Topic categorization stage.
        title_generator: Title stage.
        recordings_dir: Where uploaded audio is stored.
        stage_timeout: Seconds any single stage may take before failing.
        max_concurrent: Jobs processed at once; others wait in ``queued``.
        retention_seconds: How long finished jobs stay queryable.
        sweep_interval: Seconds between retention sweeps.
        min_bytes / max_bytes / min_duration: Submission limits.
        on_transition: Optional hook called after every committed status change.
    """

    def __init__(
        self,
        stt: BaseSTT,
        mood_analyzer: MoodAnalyzer,
        categorizer: TopicCategorizer,
        title_generator: TitleGenerator,
        recordings_dir: str | Path = "data/recordings",
        stage_timeout: float = 120.0,
        max_concurrent: int = 4,
        retention_seconds: float = 3600,
        sweep_interval: float = 300.0,
        min_bytes: int = 1024,
        max_bytes: int = 25 * 1024 * 1024,
        min_duration: float = 1.0,
        on_transition: TransitionHook | None = None,
    ) -> None:
        self._stt = stt
        self._mood = mood_analyzer
        self._categorizer = categorizer
        self._titles = title_generator
        self._recordings_dir = Path(recordings_dir)
        self._stage_timeout = stage_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._retention = timedelta(seconds=retention_seconds)
        self._sweep_interval = sweep_interval
        self._min_bytes = min_bytes
        self._max_bytes = max_bytes
        self._min_duration = min_duration
        self._on_transition = on_transition

        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()
        self._sweeper: asyncio.Task | None = None
        self._shutting_down = False

    @property
    def active_jobs(self) -> list[str]:
        return list(self._tasks)

    @property
    def retention_seconds(self) -> float:
        return self._retention.total_seconds()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def check_size(self, size: int) -> None:
        """Reject a payload of *size* bytes if it exceeds the upload limit."""
        if size > self._max_bytes:
            raise InvalidSubmissionError(
                f"Audio exceeds {self._max_bytes // (1024 * 1024)}MB limit",
                code="PAYLOAD_TOO_LARGE",
                status_code=413,
            )

    def _validate(self, audio: bytes, mime: str, duration_seconds: float) -> None:
        if not audio:
            raise InvalidSubmissionError("Audio file is empty", code="EMPTY_AUDIO", status_code=400)
        if not is_accepted(mime):
            raise InvalidSubmissionError(
                f"Unsupported audio container: {mime or 'unknown'}",
                code="UNSUPPORTED_CONTAINER",
                status_code=415,
            )
        self.check_size(len(audio))
        if len(audio) < self._min_bytes or duration_seconds < self._min_duration:
            raise InvalidSubmissionError(
                f"Recording too short ({duration_seconds:.2f}s, {len(audio)} bytes)",
                code="AUDIO_TOO_SHORT",
                status_code=422,
            )

    async def submit(
        self,
        user_id: int,
        audio: bytes,
        filename: str | None,
        container: str | None,
        duration_seconds: float,
        mood_hint: str | None = None,
        correlation_token: str | None = None,
    ) -> tuple[ProcessingJob, bool]:
        """Accept a recording and start processing it.

        A repeated *correlation_token* from the same user returns the job
        created by the first submission instead of starting a new one, as
        long as that job is still within its retention window.

        Returns:
            ``(job, created)``; *created* is False for a deduplicated resubmission.

        Raises:
            InvalidSubmissionError: If the payload is empty, too short, too
                large, or in an unsupported container.
        """
        mime = normalize_mime(container, filename)
        self._validate(audio, mime, duration_seconds)

        if correlation_token:
            async with get_session() as session:
                existing = await JournalRepository(session).claim_token(user_id, correlation_token, self._retention)
            if existing is not None:
                logger.info("Duplicate submission for token %s -> job %s", correlation_token, existing.id)
                return existing, False

        job_id = uuid.uuid4().hex
        audio_path = self._recordings_dir / f"{job_id}{extension_for(mime)}"
        await asyncio.to_thread(_write_file, audio_path, audio)

        try:
            async with get_session() as session:
                job = await JournalRepository(session).create_job(
                    user_id=user_id,
                    audio_path=str(audio_path),
                    container=mime,
                    duration_seconds=duration_seconds,
                    mood_hint=(mood_hint or "").strip().lower() or None,
                    correlation_token=correlation_token,
                    job_id=job_id,
                )
        except IntegrityError:
            # Lost a race with a concurrent submission carrying the same token
            await asyncio.to_thread(_remove_files, [str(audio_path)])
            if not correlation_token:
                raise
            async with get_session() as session:
                existing = await JournalRepository(session).find_job_by_token(user_id, correlation_token)
            if existing is None:
                raise
            return existing, False

        logger.info("Job %s queued for user %s (%s, %.1fs)", job.id, user_id, mime, duration_seconds)
        self._notify(job.id, JobStatus.queued, job.progress)
        self._launch(job.id)
        return job, True

    def _launch(self, job_id: str) -> None:
        task = asyncio.create_task(self._run(job_id), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _notify(self, job_id: str, status: JobStatus, progress: int) -> None:
        if self._on_transition is not None:
            self._on_transition(job_id, status, progress)

    async def _advance(self, job_id: str, status: JobStatus, partial: dict | None = None) -> None:
        async with get_session() as session:
            job = await JournalRepository(session).advance_job(job_id, status, partial)
            progress = job.progress
        logger.debug("Job %s -> %s (%d%%)", job_id, status, progress)
        self._notify(job_id, status, progress)

    async def _run_stage(self, stage: JobStatus, operation: Awaitable):
        """Await one stage's external call under the stage timeout."""
        try:
            async with asyncio.timeout(self._stage_timeout):
                return await operation
        except TimeoutError as exc:
            raise _STAGE_ERRORS[stage](f"{stage} timed out after {self._stage_timeout:.0f}s") from exc

    async def _transcribe(self, audio_path: str) -> dict:
        output = await self._stt.transcribe(audio_path)
        text = (output.get("text") or "").strip()
        if not text:
            raise TranscriptionFailedError("No speech detected in the recording")
        return {"transcript": text, "language": output.get("language") or "unknown"}

    async def _run(self, job_id: str) -> None:
        stage = JobStatus.queued
        try:
            async with self._semaphore:
                async with get_session() as session:
                    job = await JournalRepository(session).get_job(job_id)
                    audio_path, mood_hint = job.audio_path, job.mood_hint

                stage = JobStatus.transcribing
                await self._advance(job_id, stage)
                draft = await self._run_stage(stage, self._transcribe(audio_path))

                stage = JobStatus.analyzing
                await self._advance(job_id, stage, draft)
                mood = await self._run_stage(stage, self._mood.analyze(draft["transcript"], mood_hint))
                draft.update(
                    mood=mood.mood,
                    sentiment_score=mood.sentiment_score,
                    dominant_emotions=mood.dominant_emotions,
                )

                stage = JobStatus.categorizing
                await self._advance(job_id, stage, draft)
                categories = await self._run_stage(stage, self._categorizer.categorize(draft["transcript"]))
                draft.update(category=categories.category, tags=categories.tags)

                stage = JobStatus.generating_title
                await self._advance(job_id, stage, draft)
                draft["title"] = await self._run_stage(
                    stage, self._titles.generate(draft["transcript"], mood.mood)
                )

                result = JobResult.model_validate(draft)
                async with get_session() as session:
                    await JournalRepository(session).complete_job(job_id, result.model_dump())
                logger.info("Job %s complete: %r", job_id, result.title)
                self._notify(job_id, JobStatus.complete, 100)

        except asyncio.CancelledError:
            if self._shutting_down:
                await self._fail(job_id, ErrorKind.interrupted, "Server shut down while the job was running")
            else:
                await self._fail(job_id, ErrorKind.cancelled, "Job was cancelled")
            raise
        except PipelineStageError as exc:
            logger.warning("Job %s failed at %s: %s", job_id, stage, exc.detail)
            await self._fail(job_id, exc.kind, exc.detail)
        except Exception as exc:
            logger.exception("Job %s crashed at %s", job_id, stage)
            await self._fail(job_id, _STAGE_ERRORS[stage].kind, f"{stage} failed: {exc}")

    async def _fail(self, job_id: str, kind: ErrorKind, message: str) -> None:
        try:
            async with get_session() as session:
                job = await JournalRepository(session).fail_job(job_id, kind, message)
                progress = job.progress
        except Exception:
            logger.exception("Could not record failure of job %s", job_id)
            return
        self._notify(job_id, JobStatus.error, progress)

    # ------------------------------------------------------------------
    # Queries and control
    # ------------------------------------------------------------------

    async def get_status(self, job_id: str, user_id: int) -> JobStatusResponse:
        """Return a job's status for its owner.

        Raises:
            JobNotFoundError: Unknown, foreign, or past its retention window.
        """
        async with get_session() as session:
            job = await JournalRepository(session).get_live_job(job_id, user_id, self._retention)
            return to_status_response(job)

    async def cancel(self, job_id: str, user_id: int) -> JobStatusResponse:
        """Cancel an in-flight job; terminal jobs are returned unchanged."""
        status = await self.get_status(job_id, user_id)
        if status.status.is_terminal:
            return status

        task = self._tasks.get(job_id)
        if task is not None:
            task.cancel()
            await asyncio.wait([task])
        status = await self.get_status(job_id, user_id)
        if not status.status.is_terminal:
            # Cancelled before its first step, or orphaned by a crash
            await self._fail(job_id, ErrorKind.cancelled, "Job was cancelled")
            status = await self.get_status(job_id, user_id)
        logger.info("Job %s cancelled by user %s", job_id, user_id)
        return status

    async def join(self, job_id: str) -> None:
        """Wait until a job launched by this pipeline has finished running."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait([task])

    async def recover_interrupted(self) -> int:
        """Fail jobs left non-terminal by a previous process."""
        async with get_session() as session:
            repo = JournalRepository(session)
            orphans = [job for job in await repo.list_unfinished_jobs() if job.id not in self._tasks]
            for job in orphans:
                await repo.fail_job(job.id, ErrorKind.interrupted, "Server restarted while the job was running")
        if orphans:
            logger.warning("Marked %d interrupted job(s) as failed", len(orphans))
        return len(orphans)

    async def purge_expired(self) -> int:
        """Delete jobs past retention, plus audio that never became an entry."""
        cutoff = datetime.now(UTC) - self._retention
        async with get_session() as session:
            repo = JournalRepository(session)
            expired = await repo.list_expired_jobs(cutoff)
            ids = [job.id for job in expired]
            kept = await repo.entry_job_ids(ids)
            orphaned_audio = [job.audio_path for job in expired if job.id not in kept]
            deleted = await repo.delete_jobs(ids)

        if orphaned_audio:
            await asyncio.to_thread(_remove_files, orphaned_audio)
        if deleted:
            logger.info("Purged %d expired job(s)", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Launch the background retention sweep."""
        if self._sweeper is None:
            self._stop_event.clear()
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="job-retention-sweeper")

    async def _sweep_loop(self) -> None:
        logger.info("Retention sweeper started (every %.0fs)", self._sweep_interval)
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._sweep_interval)
            except TimeoutError:
                pass  # Timer fired; sweep
            if self._stop_event.is_set():
                break
            try:
                await self.purge_expired()
            except Exception:
                logger.exception("Retention sweep failed")
        logger.info("Retention sweeper stopped")

    async def shutdown(self) -> None:
        """Stop the sweeper and interrupt running jobs."""
        self._shutting_down = True
        self._stop_event.set()
        if self._sweeper is not None:
            await self._sweeper
            self._sweeper = None

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Interrupted %d running job(s) on shutdown", len(tasks))


def create_pipeline(settings: Settings | None = None, **overrides) -> ProcessingPipeline:
    """Build a pipeline wired to the configured STT and LLM providers."""
    settings = settings or get_settings()
    llm = create_llm(provider=settings.llm_provider)
    options = dict(
        stt=create_stt(provider=settings.whisper_provider),
        mood_analyzer=MoodAnalyzer(llm),
        categorizer=TopicCategorizer(llm),
        title_generator=TitleGenerator(llm),
        recordings_dir=settings.recordings_dir,
        stage_timeout=settings.stage_timeout_seconds,
        max_concurrent=settings.max_concurrent_jobs,
        retention_seconds=settings.job_retention_seconds,
        sweep_interval=settings.retention_sweep_interval_seconds,
        min_bytes=settings.min_upload_bytes,
        max_bytes=settings.max_upload_bytes,
        min_duration=settings.min_duration_seconds,
    )
    options.update(overrides)
    return ProcessingPipeline(**options)
