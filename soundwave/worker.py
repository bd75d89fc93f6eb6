"""Soundwave - Worker pool.

JobWorker runs one delivered job attempt: claim the record, re-validate the
payload, run the pipeline, report the outcome back to the queue.

WorkerPool starts the huey consumer with N worker threads, so up to N
pipeline runs execute concurrently and a stalled job only occupies its own
thread. The consumer's scheduler delivers delayed retries when they are due.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from huey import Huey
from huey.constants import WORKER_THREAD
from pydantic import ValidationError as PydanticValidationError

from soundwave.config import Settings
from soundwave.db import init_db
from soundwave.errors import ErrorCode, Stage
from soundwave.notifications import NotificationDispatcher
from soundwave.pipeline import JobPipeline
from soundwave.queue import JobQueue
from soundwave.schemas import JobRequest
from soundwave.utils.workspace import cleanup_stale_workspaces

logger = logging.getLogger(__name__)


class JobWorker:
    """Executes delivered jobs against a queue and a pipeline."""

    def __init__(self, queue: JobQueue, pipeline: JobPipeline):
        self.queue = queue
        self.pipeline = pipeline

    def execute(self, job_id: str) -> dict:
        """Run one attempt of a job.

        An exception escaping the attempt is reported as a failed attempt,
        so the record never stays active.

        Args:
            job_id: The delivered job id.

        Returns:
            Dict describing what happened (for logging/debugging).
        """
        try:
            return self._execute_impl(job_id)
        except Exception as e:
            logger.exception("Job execution failed: job_id=%s", job_id)
            try:
                self.queue.report_failed(job_id, f"{ErrorCode.WORKER_ERROR}: {e}")
            except Exception:
                logger.exception("Could not record failure for job_id=%s", job_id)
            return {
                "status": "error",
                "job_id": job_id,
                "error_code": ErrorCode.WORKER_ERROR,
                "error": str(e),
            }

    def _execute_impl(self, job_id: str) -> dict:
        record = self.queue.claim(job_id)
        if record is None:
            return {"status": "skipped", "job_id": job_id}

        try:
            request = JobRequest.model_validate_json(record.payload_json)
        except PydanticValidationError as e:
            # Retrying cannot fix a payload that no longer validates
            logger.error("Invalid payload for job_id=%s: %s", job_id, e)
            self.queue.report_failed(job_id, f"{ErrorCode.VALIDATION_FAILED}: {e}", retry=False)
            return {
                "status": "failed",
                "job_id": job_id,
                "error_code": ErrorCode.VALIDATION_FAILED,
            }

        outcome = self.pipeline.run(
            job_id,
            request,
            progress=lambda percent: self.queue.report_progress(job_id, percent),
            is_cancelled=lambda: self.queue.is_removed(job_id),
        )

        if outcome.ok:
            if self.queue.report_completed(job_id, outcome.to_dict()):
                return {
                    "status": "completed",
                    "job_id": job_id,
                    "outputs": len(outcome.outputs),
                }
            # Removed after the pipeline's last checkpoint
            self.queue.report_failed(
                job_id, f"{ErrorCode.JOB_CANCELLED}: Job removed before completion", retry=False
            )
            return {"status": "cancelled", "job_id": job_id, "stage": Stage.NOTIFY}

        if outcome.cancelled:
            self.queue.report_failed(
                job_id, f"{outcome.error_code}: {outcome.message}", retry=False
            )
            return {"status": "cancelled", "job_id": job_id, "stage": outcome.stage}

        state = self.queue.report_failed(job_id, outcome.message)
        return {
            "status": state or "failed",
            "job_id": job_id,
            "stage": outcome.stage,
            "error_code": outcome.error_code,
            "error": outcome.message,
        }


def build_worker(settings: Settings | None = None) -> JobWorker:
    """Wire a JobWorker from settings: database, adapters and pipeline."""
    # Import here to avoid circular imports
    from services.storage import build_storage
    from services.transcoder import FfmpegTranscoder

    settings = settings or Settings.from_env()
    _, SessionFactory = init_db(settings.db_path)

    pipeline = JobPipeline(
        settings,
        transcoder=FfmpegTranscoder(settings),
        storage=build_storage(settings),
        dispatcher=NotificationDispatcher(timeout_seconds=settings.webhook_timeout_seconds),
    )
    return JobWorker(JobQueue(SessionFactory, settings), pipeline)


@lru_cache(maxsize=1)
def get_worker() -> JobWorker:
    """Process-wide worker used by the huey task."""
    return build_worker()


class WorkerPool:
    """Bounded-concurrency consumer of the job queue."""

    def __init__(self, huey: Huey, settings: Settings, queue: JobQueue | None = None):
        self.huey = huey
        self.settings = settings
        self._queue = queue

    @property
    def queue(self) -> JobQueue:
        if self._queue is None:
            _, SessionFactory = init_db(self.settings.db_path)
            self._queue = JobQueue(SessionFactory, self.settings)
        return self._queue

    def create_consumer(self, concurrency: int | None = None):
        workers = self.settings.concurrent_jobs if concurrency is None else concurrency
        if workers < 1:
            raise ValueError(f"concurrency must be >= 1, got {workers}")
        return self.huey.create_consumer(
            workers=workers,
            worker_type=WORKER_THREAD,
            periodic=False,
        )

    def start(self, concurrency: int | None = None) -> None:
        """Run the consumer until it receives a stop signal. Blocking.

        Before consuming, removes stale workspaces and re-queues attempts
        left active by a worker that died mid-run.
        """
        removed = cleanup_stale_workspaces(self.settings.temp_dir)
        if removed:
            logger.info("Removed %d stale workspaces", removed)

        recovered = self.queue.recover_stalled()
        if recovered:
            logger.warning("Recovered %d stalled jobs", recovered)

        consumer = self.create_consumer(concurrency)
        logger.info("Starting worker pool: concurrency=%d", consumer.workers)
        consumer.run()


__all__ = ["JobWorker", "WorkerPool", "build_worker", "get_worker"]
