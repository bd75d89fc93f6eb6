"""Soundwave - HTTP API FastAPI application.

Validates job requests and hands them to the queue. No audio processing
happens here; the worker pool picks jobs up from the queue.

Run with:
    uvicorn services.api.main:app --reload  # dev server only
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from soundwave.config import QUEUE_NAME, Settings
from soundwave.db import init_db
from soundwave.errors import ErrorCode
from soundwave.models import (
    STATE_ACTIVE,
    STATE_COMPLETED,
    STATE_FAILED,
    STATE_QUEUED,
    JobRecord,
)
from soundwave.queue import JobQueue
from soundwave.schemas import (
    ErrorResponse,
    JobAcceptedResponse,
    JobRequest,
    JobStatusResponse,
    QueueCountsResponse,
)

logger = logging.getLogger(__name__)

# --- Queue Setup ---

# Module-level queue (initialized on startup)
_job_queue: JobQueue | None = None


def get_job_queue() -> JobQueue:
    """Dependency that provides the job queue.

    Raises:
        RuntimeError: If the queue is not initialized (app lifespan not invoked).
    """
    if _job_queue is None:
        raise RuntimeError("Job queue not initialized. App lifespan not invoked?")
    return _job_queue


# --- Lifespan ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Initializes the database and queue on startup unless a queue was
    already installed (tests).
    """
    global _job_queue
    if _job_queue is None:
        settings = Settings.from_env()
        _, SessionFactory = init_db(settings.db_path)
        _job_queue = JobQueue(SessionFactory, settings)
    yield
    # Shutdown: nothing special needed


# --- FastAPI App ---


app = FastAPI(
    title="Soundwave - Audio Processing API",
    description="Queue audio transcoding jobs and poll their status.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error Handling ---


def _format_validation_errors(errors: list[dict[str, Any]]) -> str:
    parts = []
    for error in errors:
        loc = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts)


def make_error_response(status_code: int, error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return make_error_response(
        400, ErrorCode.VALIDATION_FAILED, _format_validation_errors(exc.errors())
    )


def _status_response(record: JobRecord) -> dict[str, Any]:
    result = None
    if record.state == STATE_COMPLETED and record.result_json:
        result = json.loads(record.result_json)

    body = JobStatusResponse(
        id=record.job_id,
        internal_id=record.internal_id,
        status=record.state,
        progress=record.progress,
        attempts_made=record.attempts_made,
        created_at=record.created_at,
        result=result,
        error=record.failure_reason if record.state == STATE_FAILED else None,
        last_error=record.last_error if record.state in (STATE_QUEUED, STATE_ACTIVE) else None,
    ).model_dump(mode="json")

    # result/error are only present once the job is terminal, last_error only
    # while it is still pending
    for key in ("result", "error", "last_error"):
        if body[key] is None:
            del body[key]
    return body


# --- Endpoints ---


@app.post(
    "/process",
    status_code=202,
    response_model=JobAcceptedResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid job request"},
        500: {"model": ErrorResponse, "description": "Job could not be queued"},
    },
    summary="Queue an audio processing job",
)
def process(
    payload: Annotated[dict[str, Any], Body(description="JobRequest document")],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
):
    """Validate a job request and enqueue it.

    Responds 202 as soon as the job is durably queued; processing happens
    asynchronously in the worker pool.
    """
    try:
        job_request = JobRequest.model_validate(payload)
    except PydanticValidationError as e:
        return make_error_response(
            400, ErrorCode.VALIDATION_FAILED, _format_validation_errors(e.errors())
        )

    try:
        record = queue.enqueue(QUEUE_NAME, job_request)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error while queueing job")
        return make_error_response(500, ErrorCode.WORKER_ERROR, "Job could not be queued")

    return JobAcceptedResponse(job_id=record.job_id)


@app.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown job"}},
    summary="Get job status",
)
def get_job(job_id: str, queue: Annotated[JobQueue, Depends(get_job_queue)]):
    record = queue.get_record(job_id)
    if record is None:
        return make_error_response(404, ErrorCode.JOB_NOT_FOUND, f"Job not found: {job_id}")
    return JSONResponse(content=_status_response(record))


@app.delete(
    "/jobs/{job_id}",
    responses={404: {"model": ErrorResponse, "description": "Unknown job"}},
    summary="Cancel a job",
)
def delete_job(job_id: str, queue: Annotated[JobQueue, Depends(get_job_queue)]):
    """Flag a job as removed.

    A queued job is failed immediately and never started; a running job
    stops at its next checkpoint and is never reported completed.
    """
    if not queue.remove(job_id):
        return make_error_response(404, ErrorCode.JOB_NOT_FOUND, f"Job not found: {job_id}")
    return {"job_id": job_id, "status": "removed"}


@app.get("/debug/queues", response_model=QueueCountsResponse, summary="Queue statistics")
def queue_counts(queue: Annotated[JobQueue, Depends(get_job_queue)]):
    """Number of jobs in each lifecycle state."""
    counts = queue.counts()
    return QueueCountsResponse(
        waiting=counts[STATE_QUEUED],
        active=counts[STATE_ACTIVE],
        completed=counts[STATE_COMPLETED],
        failed=counts[STATE_FAILED],
    )


@app.get("/health", summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


# --- For testing: allow overriding the queue ---


def override_job_queue(queue: JobQueue | None) -> None:
    """Override the job queue for testing."""
    global _job_queue
    _job_queue = queue
