"""Tests for soundwave.config."""

import os
from pathlib import Path

import pytest

from soundwave.config import (
    DEFAULT_BACKOFF_DELAY_SECONDS,
    DEFAULT_JOB_ATTEMPTS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_STALLED_JOB_SECONDS,
    Settings,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SOUNDWAVE_"):
            monkeypatch.delenv(name)
    return monkeypatch


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self, clean_env):
        settings = Settings.from_env()

        assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE == 300_000_000
        assert settings.job_attempts == DEFAULT_JOB_ATTEMPTS == 3
        assert settings.backoff_delay_seconds == DEFAULT_BACKOFF_DELAY_SECONDS == 1.0
        assert settings.concurrent_jobs == 2
        assert settings.waveform_sample_rate == 8000
        assert settings.storage_backend == "local"
        assert settings.log_level == "INFO"
        assert settings.stalled_job_seconds == DEFAULT_STALLED_JOB_SECONDS == 7200

    def test_env_overrides(self, clean_env, tmp_path):
        clean_env.setenv("SOUNDWAVE_DATA_DIR", str(tmp_path))
        clean_env.setenv("SOUNDWAVE_CONCURRENT_JOBS", "8")
        clean_env.setenv("SOUNDWAVE_BACKOFF_DELAY_SEC", "0.25")
        clean_env.setenv("SOUNDWAVE_STORAGE_BACKEND", "S3")
        clean_env.setenv("SOUNDWAVE_S3_ACL", "public-read")
        clean_env.setenv("SOUNDWAVE_LOG_LEVEL", "debug")
        clean_env.setenv("SOUNDWAVE_STALLED_JOB_SEC", "900")

        settings = Settings.from_env()

        assert settings.data_dir == tmp_path
        assert settings.db_path == tmp_path / "soundwave.db"
        assert settings.storage_root == tmp_path / "storage"
        assert settings.concurrent_jobs == 8
        assert settings.backoff_delay_seconds == 0.25
        assert settings.storage_backend == "s3"
        assert settings.s3_acl == "public-read"
        assert settings.log_level == "DEBUG"
        assert settings.stalled_job_seconds == 900

    @pytest.mark.parametrize("value", ["zero", "0", "-3", ""])
    def test_invalid_int_falls_back(self, clean_env, value):
        clean_env.setenv("SOUNDWAVE_CONCURRENT_JOBS", value)

        assert Settings.from_env().concurrent_jobs == 2

    def test_invalid_float_falls_back(self, clean_env):
        clean_env.setenv("SOUNDWAVE_BACKOFF_DELAY_SEC", "soon")

        assert Settings.from_env().backoff_delay_seconds == 1.0

    def test_settings_are_immutable(self):
        settings = Settings()

        with pytest.raises(AttributeError):
            settings.max_file_size = 1

    def test_temp_dir_is_path(self, clean_env):
        assert isinstance(Settings.from_env().temp_dir, Path)
