"""Shared pytest fixtures for Soundwave tests.

Ports are faked so the suite needs neither network access nor ffmpeg.
"""

import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from services.api.main import app, override_job_queue
from soundwave.config import Settings
from soundwave.db import init_db
from soundwave.queue import JobQueue
from soundwave.schemas import JobRequest


@pytest.fixture
def tmp_settings():
    """Settings rooted in a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        yield Settings(
            data_dir=root,
            db_path=root / "test.db",
            temp_dir=root / "work",
            storage_root=root / "storage",
            max_file_size=1_000_000,
        )


@pytest.fixture
def temp_db(tmp_settings):
    """Create a temporary database for testing.

    Yields:
        tuple: (db_path, engine, SessionFactory)
    """
    engine, SessionFactory = init_db(tmp_settings.db_path)
    yield tmp_settings.db_path, engine, SessionFactory
    engine.dispose()


@pytest.fixture
def dispatched():
    """Calls made to the queue's broker hook, as (job_id, delay) tuples."""
    return []


@pytest.fixture
def job_queue(temp_db, tmp_settings, dispatched):
    """JobQueue over the temp database with a recording broker hook."""
    _, _, SessionFactory = temp_db
    return JobQueue(
        SessionFactory,
        tmp_settings,
        dispatch=lambda job_id, delay: dispatched.append((job_id, delay)),
    )


@pytest.fixture
def client(job_queue):
    """Create a FastAPI test client backed by the temp queue.

    Yields:
        tuple: (test_client, job_queue)
    """
    override_job_queue(job_queue)
    with TestClient(app) as test_client:
        yield test_client, job_queue
    override_job_queue(None)


@pytest.fixture
def job_payload():
    """A valid submission body with three outputs and a waveform."""
    return {
        "source_url": "https://media.example.com/tracks/song.wav",
        "internal_id": "track-42",
        "outputs": [
            {"format": "mp3", "quality": "high"},
            {"format": "ogg", "quality": "low"},
            {"format": "mp3", "quality": "low", "duration_seconds": 30, "fade": True},
        ],
        "storage": {"bucket": "media", "path": "tracks/42"},
        "waveform": {"points": 100},
        "webhook_url": "https://hooks.example.com/done",
        "progress_webhook_url": "https://hooks.example.com/progress",
        "error_webhook_url": "https://hooks.example.com/error",
        "metadata": {"album": "Blue", "track": 7},
    }


@pytest.fixture
def job_request(job_payload):
    return JobRequest.model_validate(job_payload)
