"""
SQLAlchemy ORM models for the MindWell journal schema.

Tables: ``processing_jobs``, ``journal_entries``.
"""

from datetime import UTC, datetime

from sqlalchemy import Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from mindwell.services.storage.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProcessingJob(Base):
    """One audio -> structured entry transform, owned by the pipeline.

    ``partial_result`` accumulates stage outputs while the job runs and is
    cleared when the job fails; ``result`` is only written on completion.
    """

    __tablename__ = "processing_jobs"
    __table_args__ = (
        UniqueConstraint("user_id", "correlation_token", name="uq_jobs_user_token"),
        Index("ix_jobs_status_finished", "status", "finished_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[int] = mapped_column(index=True)
    status: Mapped[str] = mapped_column(String(20), default="queued")
    progress: Mapped[int] = mapped_column(default=0)
    correlation_token: Mapped[str | None] = mapped_column(String(128), nullable=True)

    audio_path: Mapped[str] = mapped_column(String(512))
    container: Mapped[str] = mapped_column(String(64))
    duration_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    mood_hint: Mapped[str | None] = mapped_column(String(32), nullable=True)

    partial_result: Mapped[dict] = mapped_column(JSON, default=dict)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(40), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessingJob id={self.id} status={self.status!r} progress={self.progress}>"


class JournalEntry(Base):
    """A durable journal entry, typed or produced from a completed job."""

    __tablename__ = "journal_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(index=True)
    # Unique so a job can only ever become one entry
    job_id: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text)
    mood: Mapped[str] = mapped_column(String(32), default="neutral")
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)

    # Server-side file; clients fetch it through the entry audio route
    audio_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    audio_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    sentiment_score: Mapped[int | None] = mapped_column(nullable=True)
    dominant_emotions: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, index=True)

    def __repr__(self) -> str:
        return f"<JournalEntry id={self.id} user={self.user_id} job={self.job_id!r}>"
