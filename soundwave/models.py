"""Soundwave - SQLAlchemy ORM models.

The job_records table is owned by the queue adapter (soundwave.queue).
The pipeline never writes it directly; it only observes a record through
the queue's lifecycle API.
"""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# Lifecycle states
STATE_QUEUED = "queued"
STATE_ACTIVE = "active"
STATE_COMPLETED = "completed"
STATE_FAILED = "failed"

JOB_STATES = (STATE_QUEUED, STATE_ACTIVE, STATE_COMPLETED, STATE_FAILED)


class JobRecord(Base):
    """A submitted job and its lifecycle bookkeeping."""

    __tablename__ = "job_records"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Unique job identifier (uuid4 hex)
    job_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    # Queue name the job was submitted to
    name: Mapped[str] = mapped_column(String(64), nullable=False)

    # Caller's opaque identifier, echoed in every status payload
    internal_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Validated JobRequest as JSON
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=STATE_QUEUED)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Retry bookkeeping
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    backoff_delay_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

    # Outcome
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cancellation flag; a removed record is never reported completed
    removed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_job_records_state", "state"),)
