"""Tests for soundwave.worker (JobWorker and WorkerPool)."""

import json
import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from soundwave.models import (
    STATE_ACTIVE,
    STATE_COMPLETED,
    STATE_FAILED,
    STATE_QUEUED,
    JobRecord,
    utc_now,
)
from soundwave.pipeline import JobPipeline, JobSuccess
from soundwave.worker import JobWorker, WorkerPool
from tests.fakes import FakeStorage, FakeTranscoder, RecordingDispatcher


def fake_download(url, dest_path, max_bytes, timeout_seconds, session=None):
    Path(dest_path).write_bytes(b"source")
    return 6


@pytest.fixture(autouse=True)
def download():
    with patch("soundwave.pipeline.download_file", side_effect=fake_download) as mock:
        yield mock


def make_worker(job_queue, settings, transcoder=None, dispatcher=None):
    pipeline = JobPipeline(
        settings,
        transcoder=transcoder or FakeTranscoder(),
        storage=FakeStorage(),
        dispatcher=dispatcher or RecordingDispatcher(),
    )
    return JobWorker(job_queue, pipeline)


class TestJobWorker:
    """Tests for JobWorker.execute."""

    def test_success_reports_completed(self, job_queue, tmp_settings, job_request):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        worker = make_worker(job_queue, tmp_settings)

        summary = worker.execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary == {"status": "completed", "job_id": job_id, "outputs": 3}
        assert record.state == STATE_COMPLETED
        assert record.progress == 100
        result = json.loads(record.result_json)
        assert len(result["outputs"]) == 3
        assert result["internal_id"] == "track-42"
        assert result["metadata"] == {"album": "Blue", "track": 7}
        assert len(result["waveform"]["data"]) == 100

    def test_failure_schedules_retry(self, job_queue, tmp_settings, job_request, dispatched):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        worker = make_worker(job_queue, tmp_settings, transcoder=FakeTranscoder(fail_on_call=1))

        summary = worker.execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == STATE_QUEUED
        assert summary["error_code"] == "TRANSCODE_FAILED"
        assert record.state == STATE_QUEUED
        assert record.attempts_made == 1
        assert "ffmpeg exited" in record.last_error
        assert dispatched[-1] == (job_id, 1.0)

    def test_retries_exhausted(self, job_queue, tmp_settings, job_request):
        job_id = job_queue.enqueue("process-audio", job_request, attempts=1).job_id
        worker = make_worker(job_queue, tmp_settings, transcoder=FakeTranscoder(fail_on_call=1))

        summary = worker.execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == STATE_FAILED
        assert record.state == STATE_FAILED
        assert record.failure_reason == "ffmpeg exited with code 1: boom"

    def test_progress_recorded_during_run(self, job_queue, tmp_settings, job_request):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        seen = []

        class ObservingTranscoder(FakeTranscoder):
            def transcode(self, source_path, request, output_path, timeout_seconds=None):
                seen.append(job_queue.get_record(job_id).progress)
                return super().transcode(source_path, request, output_path, timeout_seconds)

        make_worker(job_queue, tmp_settings, transcoder=ObservingTranscoder()).execute(job_id)

        assert seen == [20, 40, 60]

    def test_invalid_payload_fails_terminally(
        self, job_queue, temp_db, tmp_settings, job_request, dispatched
    ):
        _, _, SessionFactory = temp_db
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        with SessionFactory() as session:
            record = session.execute(
                select(JobRecord).where(JobRecord.job_id == job_id)
            ).scalar_one()
            record.payload_json = json.dumps({"source_url": "ftp://nope"})
            session.commit()

        summary = make_worker(job_queue, tmp_settings).execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["error_code"] == "VALIDATION_FAILED"
        assert record.state == STATE_FAILED
        assert record.failure_reason.startswith("VALIDATION_FAILED")
        assert len(dispatched) == 1

    def test_removed_during_run_never_completed(self, job_queue, tmp_settings, job_request):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        dispatcher = RecordingDispatcher()

        class RemovingTranscoder(FakeTranscoder):
            def transcode(self, source_path, request, output_path, timeout_seconds=None):
                job_queue.remove(job_id)
                return super().transcode(source_path, request, output_path, timeout_seconds)

        summary = make_worker(
            job_queue, tmp_settings, transcoder=RemovingTranscoder(), dispatcher=dispatcher
        ).execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == "cancelled"
        assert record.state == STATE_FAILED
        assert record.failure_reason == "JOB_CANCELLED: Job cancelled before transcode"
        assert record.result_json is None
        assert "completed" not in dispatcher.statuses()
        assert "failed" not in dispatcher.statuses()

    def test_removed_at_full_progress_never_completed(
        self, job_queue, tmp_settings, job_request, monkeypatch
    ):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        dispatcher = RecordingDispatcher()
        report_progress = job_queue.report_progress

        def remove_at_done(reported_id, percent):
            report_progress(reported_id, percent)
            if percent == 100:
                job_queue.remove(reported_id)

        monkeypatch.setattr(job_queue, "report_progress", remove_at_done)

        summary = make_worker(job_queue, tmp_settings, dispatcher=dispatcher).execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == "cancelled"
        assert record.state == STATE_FAILED
        assert record.failure_reason.startswith("JOB_CANCELLED: ")
        assert record.finished_at is not None
        assert "completed" not in dispatcher.statuses()

    def test_removed_after_pipeline_success_fails_record(
        self, job_queue, tmp_settings, job_request, dispatched
    ):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        pipeline = MagicMock()

        def run(run_job_id, request, progress=None, is_cancelled=None):
            job_queue.remove(run_job_id)
            return JobSuccess(outputs=[], metadata=request.metadata)

        pipeline.run.side_effect = run

        summary = JobWorker(job_queue, pipeline).execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == "cancelled"
        assert record.state == STATE_FAILED
        assert record.failure_reason == "JOB_CANCELLED: Job removed before completion"
        assert record.result_json is None
        assert len(dispatched) == 1

    def test_unexpected_exception_fails_attempt(
        self, job_queue, tmp_settings, job_request, dispatched
    ):
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        pipeline = MagicMock()
        pipeline.run.side_effect = RuntimeError("database is locked")

        summary = JobWorker(job_queue, pipeline).execute(job_id)

        record = job_queue.get_record(job_id)
        assert summary["status"] == "error"
        assert summary["error_code"] == "WORKER_ERROR"
        assert record.state == STATE_QUEUED
        assert record.attempts_made == 1
        assert record.last_error == "WORKER_ERROR: database is locked"
        assert dispatched[-1] == (job_id, 1.0)

    def test_skips_unclaimable_job(self, job_queue, tmp_settings, download):
        summary = make_worker(job_queue, tmp_settings).execute("missing")

        assert summary == {"status": "skipped", "job_id": "missing"}
        assert download.call_count == 0


class TestConcurrentExecution:
    """Jobs on separate consumer threads do not wait for each other."""

    def test_stalled_job_does_not_block_another(self, job_queue, tmp_settings, job_request):
        first = job_queue.enqueue("process-audio", job_request).job_id
        second = job_queue.enqueue("process-audio", job_request).job_id
        blocked = threading.Event()
        release = threading.Event()
        lock = threading.Lock()
        state = {"calls": 0}

        class BlockingTranscoder(FakeTranscoder):
            def transcode(self, source_path, request, output_path, timeout_seconds=None):
                with lock:
                    state["calls"] += 1
                    stall = state["calls"] == 1
                if stall:
                    blocked.set()
                    release.wait(10)
                return super().transcode(source_path, request, output_path, timeout_seconds)

        worker = make_worker(job_queue, tmp_settings, transcoder=BlockingTranscoder())
        results = {}

        def run(job_id):
            results[job_id] = worker.execute(job_id)

        stalled = threading.Thread(target=run, args=(first,))
        stalled.start()
        try:
            assert blocked.wait(10)

            other = threading.Thread(target=run, args=(second,))
            other.start()
            other.join(10)

            assert not other.is_alive()
            assert stalled.is_alive()
            assert results[second]["status"] == "completed"
            assert job_queue.get_record(first).state == STATE_ACTIVE
        finally:
            release.set()
            stalled.join(10)

        assert results[first]["status"] == "completed"
        assert job_queue.get_record(first).state == STATE_COMPLETED


class TestWorkerPool:
    """Tests for WorkerPool consumer wiring."""

    def test_consumer_uses_thread_workers(self, tmp_settings):
        huey = MagicMock()

        WorkerPool(huey, tmp_settings).create_consumer(4)

        huey.create_consumer.assert_called_once_with(
            workers=4, worker_type="thread", periodic=False
        )

    def test_default_concurrency_from_settings(self, tmp_settings):
        huey = MagicMock()

        WorkerPool(huey, tmp_settings).create_consumer()

        assert huey.create_consumer.call_args.kwargs["workers"] == tmp_settings.concurrent_jobs

    def test_rejects_zero_concurrency(self, tmp_settings):
        with pytest.raises(ValueError):
            WorkerPool(MagicMock(), tmp_settings).create_consumer(0)

    def test_start_cleans_workspaces_and_runs(self, tmp_settings):
        huey = MagicMock()
        queue = MagicMock()
        queue.recover_stalled.return_value = 0

        with patch("soundwave.worker.cleanup_stale_workspaces", return_value=0) as cleanup:
            WorkerPool(huey, tmp_settings, queue=queue).start(2)

        cleanup.assert_called_once_with(tmp_settings.temp_dir)
        queue.recover_stalled.assert_called_once_with()
        huey.create_consumer.return_value.run.assert_called_once_with()

    def test_start_requeues_orphaned_active_job(
        self, temp_db, job_queue, tmp_settings, job_request, dispatched
    ):
        _, _, SessionFactory = temp_db
        job_id = job_queue.enqueue("process-audio", job_request).job_id
        job_queue.claim(job_id)
        with SessionFactory() as session:
            record = session.execute(
                select(JobRecord).where(JobRecord.job_id == job_id)
            ).scalar_one()
            record.started_at = utc_now() - timedelta(seconds=tmp_settings.stalled_job_seconds + 1)
            session.commit()

        WorkerPool(MagicMock(), tmp_settings, queue=job_queue).start(1)

        record = job_queue.get_record(job_id)
        assert record.state == STATE_QUEUED
        assert record.last_error.startswith("WORKER_ERROR: ")
        assert dispatched[-1] == (job_id, 1.0)

    def test_default_queue_built_from_settings(self, tmp_settings):
        pool = WorkerPool(MagicMock(), tmp_settings)

        assert pool.queue.settings is tmp_settings
        assert pool.queue is pool.queue


class TestWorkerEntryPoint:
    """Tests for services.worker.run."""

    def test_run_worker_pool_starts_pool(self, tmp_settings):
        from services.worker import run

        with patch.object(run, "WorkerPool") as mock_pool:
            run.run_worker_pool(tmp_settings)

        mock_pool.assert_called_once_with(run.huey, tmp_settings)
        mock_pool.return_value.start.assert_called_once_with()

    def test_run_single_job_uses_shared_worker(self):
        from services.worker import run

        worker = MagicMock()
        worker.execute.return_value = {"status": "completed", "job_id": "abc"}

        with patch.object(run, "get_worker", return_value=worker):
            result = run.run_single_job("abc")

        worker.execute.assert_called_once_with("abc")
        assert result["status"] == "completed"
