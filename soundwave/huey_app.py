"""Soundwave - Huey task queue configuration.

Huey with a SQLite backend delivers job ids to consumer threads; job state
lives in the job_records table (soundwave.queue).

How to run:
1. Start the API:
   uvicorn services.api.main:app --reload

2. Start the worker pool (huey consumer with N worker threads):
   python -m services.worker.run
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from huey import SqliteHuey

from soundwave.config import HUEY_DB_PATH, QUEUE_DIR

logger = logging.getLogger(__name__)


def _ensure_queue_dir() -> None:
    """Ensure the queue directory exists."""
    Path(QUEUE_DIR).mkdir(parents=True, exist_ok=True)


# Ensure queue directory exists before creating Huey instance
_ensure_queue_dir()

# SOUNDWAVE_HUEY_IMMEDIATE=1 runs tasks inline (local development)
huey = SqliteHuey(
    name="soundwave",
    filename=str(HUEY_DB_PATH),
    immediate=os.environ.get("SOUNDWAVE_HUEY_IMMEDIATE") == "1",
)


@huey.task()
def process_job_task(job_id: str) -> dict:
    """Huey task that runs one attempt of a job.

    Args:
        job_id: The job record to process.

    Returns:
        Dict with the attempt summary (for logging/debugging).
    """
    # Import here to avoid circular imports
    from soundwave.worker import get_worker

    logger.info("Process job task started for job_id=%s", job_id)
    result = get_worker().execute(job_id)
    logger.info("Process job task finished for job_id=%s: %s", job_id, result)
    return result


def enqueue_job(job_id: str, delay_seconds: float = 0) -> None:
    """Hand a job id to the consumer.

    Non-blocking: the task is persisted in SQLite and processed when a
    consumer is running.

    Args:
        job_id: The job record id.
        delay_seconds: Optional delay before delivery (for retries).
    """
    logger.info("Enqueueing job_id=%s, delay=%.1fs", job_id, delay_seconds)
    if delay_seconds > 0:
        process_job_task.schedule((job_id,), delay=delay_seconds)
    else:
        process_job_task(job_id)


__all__ = ["huey", "process_job_task", "enqueue_job"]
