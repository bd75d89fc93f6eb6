"""Soundwave - Configuration.

No external config libraries. Paths are module constants; runtime limits live
in an immutable Settings value built once from the environment and passed
explicitly to the queue, pipeline and adapters.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Repository root (parent of soundwave/)
REPO_ROOT = Path(__file__).parent.parent.resolve()

# Data directory; override with SOUNDWAVE_DATA_DIR
DATA_DIR = Path(os.environ.get("SOUNDWAVE_DATA_DIR", REPO_ROOT / "data"))

# Database path
DB_PATH = DATA_DIR / "soundwave.db"

# Queue directory and Huey database path
QUEUE_DIR = DATA_DIR / "queue"
HUEY_DB_PATH = QUEUE_DIR / "huey.db"

# Queue name used for submitted jobs
QUEUE_NAME = "process-audio"

# Retry policy defaults (whole-job retries, exponential backoff)
DEFAULT_JOB_ATTEMPTS = 3
DEFAULT_BACKOFF_DELAY_SECONDS = 1.0

# Active attempts older than this are treated as crashed; longer than one
# download plus ten transcodes at the default deadlines
DEFAULT_STALLED_JOB_SECONDS = 7200

# 300MB
DEFAULT_MAX_FILE_SIZE = 300_000_000


def _get_int_env(name: str, default: int, minimum: int = 1) -> int:
    """Read a positive integer from the environment.

    Invalid or out-of-range values fall back to the default.

    Args:
        name: Environment variable name.
        default: Value used when unset or invalid.
        minimum: Smallest accepted value.

    Returns:
        Parsed integer or the default.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = int(env_val)
            if value >= minimum:
                return value
        except ValueError:
            pass
        logger.warning("Invalid %s=%r, using default %d", name, env_val, default)
    return default


def _get_float_env(name: str, default: float) -> float:
    """Read a positive float from the environment, or return the default."""
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = float(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
        logger.warning("Invalid %s=%r, using default %s", name, env_val, default)
    return default


def _get_str_env(name: str, default: str | None = None) -> str | None:
    env_val = os.environ.get(name)
    if env_val is None or not env_val.strip():
        return default
    return env_val.strip()


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration.

    Built once by the entry points (API, worker) and injected into the
    components that need it. Stage logic never reads os.environ.
    """

    data_dir: Path = DATA_DIR
    db_path: Path = DB_PATH
    temp_dir: Path = Path(tempfile.gettempdir())

    # Limits
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    download_timeout_seconds: int = 300
    transcode_timeout_seconds: int = 600
    webhook_timeout_seconds: int = 30

    # Worker pool and retry policy
    concurrent_jobs: int = 2
    job_attempts: int = DEFAULT_JOB_ATTEMPTS
    backoff_delay_seconds: float = DEFAULT_BACKOFF_DELAY_SECONDS
    stalled_job_seconds: int = DEFAULT_STALLED_JOB_SECONDS

    # Audio engine
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    waveform_sample_rate: int = 8000

    # Object storage
    storage_backend: str = "local"
    storage_root: Path = DATA_DIR / "storage"
    storage_base_url: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_url_template: str = "https://{bucket}.s3.amazonaws.com/{key}"
    s3_acl: str | None = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from SOUNDWAVE_* environment variables."""
        data_dir = Path(_get_str_env("SOUNDWAVE_DATA_DIR", str(DATA_DIR)))
        return cls(
            data_dir=data_dir,
            db_path=data_dir / DB_PATH.name,
            temp_dir=Path(_get_str_env("SOUNDWAVE_TEMP_DIR", tempfile.gettempdir())),
            max_file_size=_get_int_env("SOUNDWAVE_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
            download_timeout_seconds=_get_int_env("SOUNDWAVE_DOWNLOAD_TIMEOUT_SEC", 300),
            transcode_timeout_seconds=_get_int_env("SOUNDWAVE_TRANSCODE_TIMEOUT_SEC", 600),
            webhook_timeout_seconds=_get_int_env("SOUNDWAVE_WEBHOOK_TIMEOUT_SEC", 30),
            concurrent_jobs=_get_int_env("SOUNDWAVE_CONCURRENT_JOBS", 2),
            job_attempts=_get_int_env("SOUNDWAVE_JOB_ATTEMPTS", DEFAULT_JOB_ATTEMPTS),
            backoff_delay_seconds=_get_float_env(
                "SOUNDWAVE_BACKOFF_DELAY_SEC", DEFAULT_BACKOFF_DELAY_SECONDS
            ),
            stalled_job_seconds=_get_int_env(
                "SOUNDWAVE_STALLED_JOB_SEC", DEFAULT_STALLED_JOB_SECONDS
            ),
            ffmpeg_path=_get_str_env("SOUNDWAVE_FFMPEG_PATH", "ffmpeg"),
            ffprobe_path=_get_str_env("SOUNDWAVE_FFPROBE_PATH", "ffprobe"),
            waveform_sample_rate=_get_int_env("SOUNDWAVE_WAVEFORM_SAMPLE_RATE", 8000),
            storage_backend=(_get_str_env("SOUNDWAVE_STORAGE_BACKEND", "local")).lower(),
            storage_root=Path(
                _get_str_env("SOUNDWAVE_STORAGE_ROOT", str(data_dir / "storage"))
            ),
            storage_base_url=_get_str_env("SOUNDWAVE_STORAGE_BASE_URL"),
            s3_endpoint_url=_get_str_env("SOUNDWAVE_S3_ENDPOINT_URL"),
            s3_region=_get_str_env("SOUNDWAVE_S3_REGION"),
            s3_url_template=_get_str_env(
                "SOUNDWAVE_S3_URL_TEMPLATE", "https://{bucket}.s3.amazonaws.com/{key}"
            ),
            s3_acl=_get_str_env("SOUNDWAVE_S3_ACL"),
            log_level=(_get_str_env("SOUNDWAVE_LOG_LEVEL", "INFO")).upper(),
        )
