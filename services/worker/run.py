"""Soundwave - Worker entry point.

Starts the worker pool: a huey consumer with SOUNDWAVE_CONCURRENT_JOBS
worker threads, each running one pipeline at a time.

Usage:
    python -m services.worker.run              # run the pool
    python -m services.worker.run <job_id>     # run one queued job inline
"""

from __future__ import annotations

import logging

from soundwave.config import Settings
from soundwave.huey_app import huey
from soundwave.worker import WorkerPool, get_worker

logger = logging.getLogger(__name__)


def run_worker_pool(settings: Settings | None = None) -> None:
    """Start the pool and block until it is stopped."""
    settings = settings or Settings.from_env()
    WorkerPool(huey, settings).start()


def run_single_job(job_id: str) -> dict:
    """Execute one queued job in the current process (debugging)."""
    return get_worker().execute(job_id)


if __name__ == "__main__":
    import sys

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if len(sys.argv) > 2:
        print(f"Usage: {sys.argv[0]} [job_id]")
        sys.exit(1)

    if len(sys.argv) == 2:
        result = run_single_job(sys.argv[1])
        print(f"Result: {result}")
        sys.exit(0 if result.get("status") == "completed" else 1)

    run_worker_pool(settings)
