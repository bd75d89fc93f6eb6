"""Soundwave - Job processing pipeline.

Turns one validated JobRequest into transcoded, stored outputs plus an
optional waveform.

Stages (strictly sequential, one private workspace per run):
1. download             progress 10, "download_complete" notification
2. transcode + upload   progress 20..80, split evenly across outputs,
                        one notification per completed output
3. waveform             progress 90 (only when requested)
4. assemble + notify    progress 100, completed notification

Any stage failure aborts the run: the failed notification is sent, the
workspace is released and a JobFailure is returned. No partial retries;
retrying is the queue's job.

Cancellation is cooperative: is_cancelled() is polled before each stage,
before each output and before the completed notification. A cancelled run
sends neither a completed nor a failure notification.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import requests

from soundwave.config import Settings
from soundwave.download import download_file
from soundwave.errors import (
    ErrorCode,
    ExtractError,
    JobCancelled,
    SoundwaveError,
    Stage,
    StorageError,
    UploadError,
)
from soundwave.notifications import (
    NotificationDispatcher,
    completed_payload,
    failed_payload,
    processing_payload,
)
from soundwave.ports import StoragePort, TranscodeRequest, TranscodingPort, content_type_for
from soundwave.schemas import JobRequest, OutputSpec
from soundwave.utils.paths import generated_filename, object_key, output_path, source_path
from soundwave.utils.waveform import reduce_waveform
from soundwave.utils.workspace import job_workspace

logger = logging.getLogger(__name__)

# Progress checkpoints
PROGRESS_DOWNLOADED = 10
PROGRESS_OUTPUTS_START = 20
PROGRESS_OUTPUTS_END = 80
PROGRESS_WAVEFORM = 90
PROGRESS_DONE = 100

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], bool]


# --- Results ---


@dataclass(frozen=True)
class OutputResult:
    """One uploaded output."""

    url: str
    key: str
    filename: str
    format: str
    quality: str
    duration_seconds: float | None
    type: str
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class JobSuccess:
    outputs: list[OutputResult]
    waveform: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    internal_id: str | None = None

    ok = True

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "internal_id": self.internal_id,
            "outputs": [o.to_dict() for o in self.outputs],
            "metadata": self.metadata,
        }
        if self.waveform is not None:
            result["waveform"] = self.waveform
        return result


@dataclass
class JobFailure:
    stage: str
    error_code: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    ok = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "error_code": self.error_code,
            "message": self.message,
            "metadata": self.metadata,
            "cancelled": self.cancelled,
        }


# --- Helpers ---


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes log lines with the job and caller identifiers."""

    def process(self, msg, kwargs):
        return (
            f"[job_id={self.extra['job_id']} internal_id={self.extra['internal_id']}] {msg}",
            kwargs,
        )


class ProgressTracker:
    """Forwards progress checkpoints, dropping any that would go backwards."""

    def __init__(self, callback: ProgressCallback | None, log: logging.LoggerAdapter):
        self._callback = callback
        self._log = log
        self.current = 0

    def report(self, percent: int) -> None:
        if percent <= self.current:
            return
        self.current = percent
        if self._callback is None:
            return
        try:
            self._callback(percent)
        except Exception:
            # Progress is advisory
            self._log.exception("Progress report failed at %d%%", percent)


def output_progress(index: int, total: int) -> int:
    """Progress after output `index` (0-based) of `total` is uploaded."""
    span = PROGRESS_OUTPUTS_END - PROGRESS_OUTPUTS_START
    return PROGRESS_OUTPUTS_START + round((index + 1) * span / total)


class _JobRun:
    """Mutable state of a single pipeline run. Owned by one thread."""

    def __init__(
        self,
        job_id: str,
        request: JobRequest,
        tracker: ProgressTracker,
        is_cancelled: CancelCheck,
        log: logging.LoggerAdapter,
    ):
        self.job_id = job_id
        self.request = request
        self.tracker = tracker
        self.is_cancelled = is_cancelled
        self.log = log
        self.stage: str = Stage.DOWNLOAD
        self.outputs: list[OutputResult] = []

    def enter(self, stage: str) -> None:
        """Move to a stage unless the job was cancelled."""
        self.stage = stage
        self.check_cancelled(f"before {stage}")

    def check_cancelled(self, where: str) -> None:
        if self.is_cancelled():
            raise JobCancelled(f"Job cancelled {where}")


# --- Pipeline ---


class JobPipeline:
    """Runs jobs against injected ports.

    Holds no per-job state; one instance is shared by all consumer threads.
    """

    def __init__(
        self,
        settings: Settings,
        transcoder: TranscodingPort,
        storage: StoragePort,
        dispatcher: NotificationDispatcher,
        http_session: requests.Session | None = None,
    ):
        self.settings = settings
        self.transcoder = transcoder
        self.storage = storage
        self.dispatcher = dispatcher
        self.http_session = http_session

    def run(
        self,
        job_id: str,
        request: JobRequest,
        progress: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> JobSuccess | JobFailure:
        """Run one attempt of a job.

        Args:
            job_id: Queue job identifier.
            request: Validated job request.
            progress: Called with each new (strictly higher) progress value.
            is_cancelled: Polled at checkpoints; True stops the run.

        Returns:
            JobSuccess, or JobFailure describing the failed stage. Never
            raises for stage failures.
        """
        log = JobLogAdapter(logger, {"job_id": job_id, "internal_id": request.internal_id})
        run = _JobRun(
            job_id,
            request,
            ProgressTracker(progress, log),
            is_cancelled or (lambda: False),
            log,
        )

        log.info("Starting pipeline: outputs=%d", len(request.outputs))
        try:
            with job_workspace(self.settings.temp_dir, job_id) as workspace:
                return self._run_stages(run, workspace)
        except JobCancelled as e:
            log.info("Pipeline cancelled at stage=%s", run.stage)
            return JobFailure(
                stage=run.stage,
                error_code=e.error_code,
                message=e.message,
                metadata=request.metadata,
                cancelled=True,
            )
        except SoundwaveError as e:
            stage = e.stage or run.stage
            log.warning("Pipeline failed at stage=%s: %s", stage, e)
            return self._fail(run, stage, e.error_code, e.message)
        except Exception as e:
            log.exception("Unexpected error at stage=%s", run.stage)
            return self._fail(run, run.stage, ErrorCode.WORKER_ERROR, str(e) or type(e).__name__)

    # --- Stages ---

    def _run_stages(self, run: _JobRun, workspace: Path) -> JobSuccess:
        request = run.request

        run.enter(Stage.DOWNLOAD)
        source = source_path(workspace)
        download_file(
            request.source_url,
            source,
            max_bytes=self.settings.max_file_size,
            timeout_seconds=self.settings.download_timeout_seconds,
            session=self.http_session,
        )
        run.tracker.report(PROGRESS_DOWNLOADED)
        self._notify(
            run,
            processing_payload(
                run.job_id, request, PROGRESS_DOWNLOADED, stage="download_complete"
            ),
        )

        run.tracker.report(PROGRESS_OUTPUTS_START)
        total = len(request.outputs)
        for index, spec in enumerate(request.outputs):
            output = self._process_output(run, workspace, source, index, spec)
            run.outputs.append(output)

            percent = output_progress(index, total)
            run.tracker.report(percent)
            self._notify(
                run,
                processing_payload(
                    run.job_id,
                    request,
                    percent,
                    message=f"Processed output {index + 1} of {total}",
                    current_output=index + 1,
                ),
            )

        waveform = None
        if request.waveform is not None:
            run.enter(Stage.WAVEFORM)
            waveform = self._build_waveform(source, request.waveform.points)
            run.tracker.report(PROGRESS_WAVEFORM)

        run.enter(Stage.NOTIFY)
        success = JobSuccess(
            outputs=list(run.outputs),
            waveform=waveform,
            metadata=request.metadata,
            internal_id=request.internal_id,
        )
        run.tracker.report(PROGRESS_DONE)
        # A job removed at this point must not announce completion
        run.check_cancelled("before completion")
        self._notify(
            run,
            completed_payload(
                run.job_id,
                request,
                [o.to_dict() for o in success.outputs],
                waveform,
            ),
        )
        run.log.info("Pipeline completed: outputs=%d", len(success.outputs))
        return success

    def _process_output(
        self,
        run: _JobRun,
        workspace: Path,
        source: Path,
        index: int,
        spec: OutputSpec,
    ) -> OutputResult:
        request = run.request

        run.enter(Stage.TRANSCODE)
        transcode_request = TranscodeRequest.from_output_spec(spec)
        run.log.info(
            "Transcoding output %d/%d: format=%s, quality=%s, type=%s",
            index + 1,
            len(request.outputs),
            spec.format,
            spec.quality,
            spec.output_type,
        )
        produced = self.transcoder.transcode(
            source,
            transcode_request,
            output_path(workspace, index, spec.format),
            timeout_seconds=self.settings.transcode_timeout_seconds,
        )

        run.stage = Stage.UPLOAD
        filename = spec.filename or generated_filename(spec.format)
        prefix = spec.path if spec.path is not None else request.storage.path
        key = object_key(prefix, filename)
        try:
            url = self.storage.put(
                produced, request.storage.bucket, key, content_type_for(spec.format)
            )
        except StorageError as e:
            raise UploadError(f"Failed to upload {key}: {e.message}") from e

        duration = self.transcoder.probe_duration(produced)
        if duration is None:
            duration = spec.duration_seconds

        run.log.info("Uploaded output %d to %s", index + 1, url)
        return OutputResult(
            url=url,
            key=key,
            filename=filename,
            format=spec.format,
            quality=spec.quality,
            duration_seconds=duration,
            type=spec.output_type,
            size_bytes=produced.stat().st_size,
        )

    def _build_waveform(self, source: Path, points: int) -> dict[str, Any]:
        samples = self.transcoder.extract_samples(source, points)
        data = reduce_waveform(samples, points)
        if not data:
            raise ExtractError("No audio samples extracted for waveform")
        return {"points": len(data), "data": data}

    # --- Notifications ---

    def _notify(self, run: _JobRun, payload: dict[str, Any]) -> None:
        try:
            self.dispatcher.publish(run.request, payload)
        except Exception:
            run.log.exception("Notification dispatch failed for status=%s", payload.get("status"))

    def _fail(self, run: _JobRun, stage: str, error_code: str, message: str) -> JobFailure:
        self._notify(run, failed_payload(run.job_id, run.request, message))
        return JobFailure(
            stage=stage,
            error_code=error_code,
            message=message,
            metadata=run.request.metadata,
        )


__all__ = [
    "JobPipeline",
    "JobSuccess",
    "JobFailure",
    "OutputResult",
    "ProgressTracker",
    "output_progress",
]
