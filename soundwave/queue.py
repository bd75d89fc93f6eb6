"""Soundwave - Job queue adapter.

Lifecycle API over the job_records table, with huey as the broker that
delivers job ids to consumer threads.

States: queued -> active -> completed | failed

Retry semantics:
- max_attempts total attempts (default 3)
- after finished attempt n fails and n < max_attempts, the job is re-queued
  and redelivered after backoff_delay * 2 ** (n - 1) seconds
- after the last attempt fails the job is failed with failure_reason set

Each call opens its own session, so one JobQueue can be shared by all
consumer threads.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from soundwave.config import QUEUE_NAME, Settings
from soundwave.errors import ErrorCode
from soundwave.models import (
    JOB_STATES,
    STATE_ACTIVE,
    STATE_COMPLETED,
    STATE_FAILED,
    STATE_QUEUED,
    JobRecord,
    utc_now,
)
from soundwave.schemas import JobRequest

logger = logging.getLogger(__name__)

# dispatch(job_id, delay_seconds)
Dispatcher = Callable[[str, float], None]


def retry_delay_seconds(backoff_delay: float, attempts_made: int) -> float:
    """Exponential backoff delay after `attempts_made` finished attempts."""
    return backoff_delay * 2 ** (attempts_made - 1)


def _huey_dispatch(job_id: str, delay_seconds: float) -> None:
    # Import here to avoid circular imports
    from soundwave.huey_app import enqueue_job

    enqueue_job(job_id, delay_seconds)


def _cancel_queued(record: JobRecord) -> None:
    """Fail a removed record that never started."""
    record.state = STATE_FAILED
    record.failure_reason = f"{ErrorCode.JOB_CANCELLED}: Job removed before it started"
    record.finished_at = utc_now()


class JobQueue:
    """Durable job queue backed by SQLAlchemy records and huey delivery."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings | None = None,
        dispatch: Dispatcher | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or Settings()
        self.dispatch = dispatch or _huey_dispatch

    def _get(self, session: Session, job_id: str) -> JobRecord | None:
        stmt = select(JobRecord).where(JobRecord.job_id == job_id)
        return session.execute(stmt).scalar_one_or_none()

    # --- Producer side ---

    def enqueue(
        self,
        name: str,
        payload: JobRequest,
        attempts: int | None = None,
        backoff_delay: float | None = None,
    ) -> JobRecord:
        """Persist a new queued record and hand it to the broker.

        Args:
            name: Queue name (QUEUE_NAME for audio jobs).
            payload: Validated job request.
            attempts: Total attempts allowed. Defaults to settings.
            backoff_delay: Base retry delay in seconds. Defaults to settings.

        Returns:
            The created JobRecord.
        """
        record = JobRecord(
            job_id=uuid.uuid4().hex,
            name=name or QUEUE_NAME,
            internal_id=payload.internal_id,
            payload_json=payload.model_dump_json(),
            state=STATE_QUEUED,
            progress=0,
            attempts_made=0,
            max_attempts=attempts if attempts is not None else self.settings.job_attempts,
            backoff_delay_seconds=(
                backoff_delay
                if backoff_delay is not None
                else self.settings.backoff_delay_seconds
            ),
            removed=False,
            created_at=utc_now(),
        )
        with self.session_factory() as session:
            session.add(record)
            session.commit()

        logger.info(
            "Enqueued job_id=%s, internal_id=%s, outputs=%d",
            record.job_id,
            record.internal_id,
            len(payload.outputs),
        )
        self.dispatch(record.job_id, 0)
        return record

    def get_record(self, job_id: str) -> JobRecord | None:
        with self.session_factory() as session:
            return self._get(session, job_id)

    def remove(self, job_id: str) -> bool:
        """Flag a record as removed.

        A queued record is failed immediately and never claimed; an active
        one is cancelled at the pipeline's next checkpoint.

        Returns:
            False if the record does not exist.
        """
        with self.session_factory() as session:
            record = self._get(session, job_id)
            if record is None:
                return False
            record.removed = True
            if record.state == STATE_QUEUED:
                _cancel_queued(record)
            session.commit()
        logger.info("Removed job_id=%s (state=%s)", job_id, record.state)
        return True

    def is_removed(self, job_id: str) -> bool:
        with self.session_factory() as session:
            record = self._get(session, job_id)
            return record is None or record.removed

    def counts(self) -> dict[str, int]:
        """Number of records in each lifecycle state."""
        stmt = select(JobRecord.state, func.count()).group_by(JobRecord.state)
        with self.session_factory() as session:
            rows = session.execute(stmt).all()
        counts = dict.fromkeys(JOB_STATES, 0)
        counts.update({state: count for state, count in rows})
        return counts

    # --- Consumer side ---

    def claim(self, job_id: str) -> JobRecord | None:
        """Transition a delivered job to active.

        Returns:
            The claimed record, or None if it is missing, removed or not
            queued (duplicate delivery).
        """
        with self.session_factory() as session:
            record = self._get(session, job_id)
            if record is None:
                logger.error("Job not found: job_id=%s", job_id)
                return None
            if record.removed:
                logger.info("Skipping removed job_id=%s", job_id)
                if record.state == STATE_QUEUED:
                    _cancel_queued(record)
                    session.commit()
                return None
            if record.state != STATE_QUEUED:
                logger.info("Skipping job_id=%s in state=%s", job_id, record.state)
                return None

            record.state = STATE_ACTIVE
            record.started_at = utc_now()
            session.commit()
            return record

    def recover_stalled(self, max_age_seconds: int | None = None) -> int:
        """Fail attempts left active by a crashed or killed worker.

        Each stalled record is reported as a failed attempt, so it is retried
        while attempts remain.

        Args:
            max_age_seconds: Active records started longer ago than this are
                stalled. Defaults to settings.stalled_job_seconds.

        Returns:
            Number of records recovered.
        """
        if max_age_seconds is None:
            max_age_seconds = self.settings.stalled_job_seconds
        cutoff = utc_now() - timedelta(seconds=max_age_seconds)

        stmt = select(JobRecord.job_id, JobRecord.started_at).where(
            JobRecord.state == STATE_ACTIVE
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).all()

        recovered = 0
        for job_id, started_at in rows:
            # SQLite may return naive datetimes
            if started_at is not None and started_at.tzinfo is None:
                started_at = started_at.replace(tzinfo=UTC)
            if started_at is not None and started_at > cutoff:
                continue
            logger.warning("Recovering stalled job_id=%s (started_at=%s)", job_id, started_at)
            self.report_failed(
                job_id, f"{ErrorCode.WORKER_ERROR}: Attempt stalled, worker did not report back"
            )
            recovered += 1
        return recovered

    def report_progress(self, job_id: str, percent: int) -> None:
        """Record progress. Stored progress never decreases."""
        percent = max(0, min(100, int(percent)))
        with self.session_factory() as session:
            record = self._get(session, job_id)
            if record is None:
                return
            if percent > record.progress:
                record.progress = percent
                session.commit()

    def report_completed(self, job_id: str, result: dict[str, Any]) -> bool:
        """Mark a job completed with its result.

        Returns:
            False if the record is missing or was removed while running.
        """
        with self.session_factory() as session:
            record = self._get(session, job_id)
            if record is None:
                logger.error("Cannot complete - job not found: job_id=%s", job_id)
                return False
            if record.removed:
                logger.warning("Not completing removed job_id=%s", job_id)
                return False

            record.state = STATE_COMPLETED
            record.progress = 100
            record.attempts_made += 1
            record.result_json = json.dumps(result)
            record.failure_reason = None
            record.finished_at = utc_now()
            session.commit()

        logger.info("Job completed: job_id=%s", job_id)
        return True

    def report_failed(self, job_id: str, reason: str, retry: bool = True) -> str | None:
        """Record a failed attempt and either schedule a retry or fail the job.

        Args:
            job_id: Job identifier.
            reason: Failure message for this attempt.
            retry: False fails the job regardless of remaining attempts.

        Returns:
            The resulting state (queued on retry, failed when exhausted), or
            None if the record does not exist. A record that is already
            terminal is left unchanged and its state returned.
        """
        with self.session_factory() as session:
            record = self._get(session, job_id)
            if record is None:
                logger.error("Cannot handle failure - job not found: job_id=%s", job_id)
                return None
            if record.state in (STATE_COMPLETED, STATE_FAILED):
                logger.info("Ignoring failure for job_id=%s in state=%s", job_id, record.state)
                return record.state

            record.attempts_made += 1
            record.last_error = reason
            attempts_made = record.attempts_made

            if retry and attempts_made < record.max_attempts and not record.removed:
                delay = retry_delay_seconds(record.backoff_delay_seconds, attempts_made)
                record.state = STATE_QUEUED
                session.commit()
                logger.info(
                    "Scheduling retry: job_id=%s, attempt=%d/%d, delay=%.1fs",
                    job_id,
                    attempts_made,
                    record.max_attempts,
                    delay,
                )
                self.dispatch(job_id, delay)
                return STATE_QUEUED

            record.state = STATE_FAILED
            record.failure_reason = reason
            record.finished_at = utc_now()
            session.commit()

        logger.warning(
            "Job failed: job_id=%s, attempts=%d, reason=%s", job_id, attempts_made, reason
        )
        return STATE_FAILED


__all__ = ["JobQueue", "retry_delay_seconds"]
