"""Soundwave - Error taxonomy.

Every error carries a stable error code and a human-readable message.
Download, transcode, upload and extract errors are fatal to a job attempt;
notification errors are logged and swallowed by the dispatcher.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error codes surfaced in logs, failure payloads and the API."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    TRANSCODE_FAILED = "TRANSCODE_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    STORAGE_FAILED = "STORAGE_FAILED"
    EXTRACT_FAILED = "EXTRACT_FAILED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    JOB_CANCELLED = "JOB_CANCELLED"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    WORKER_ERROR = "WORKER_ERROR"


class Stage(StrEnum):
    """Pipeline stages, in execution order."""

    DOWNLOAD = "download"
    TRANSCODE = "transcode"
    UPLOAD = "upload"
    WAVEFORM = "waveform"
    NOTIFY = "notify"


class SoundwaveError(Exception):
    """Base exception for all Soundwave errors."""

    error_code: str = ErrorCode.WORKER_ERROR
    stage: str | None = None

    def __init__(self, message: str, error_code: str | None = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        super().__init__(f"{self.error_code}: {message}")


class ValidationError(SoundwaveError):
    """Malformed job request. Rejected before enqueue."""

    error_code = ErrorCode.VALIDATION_FAILED


class DownloadError(SoundwaveError):
    """Source unreachable, rejected by the server, too large or too slow."""

    error_code = ErrorCode.DOWNLOAD_FAILED
    stage = Stage.DOWNLOAD


class TranscodeError(SoundwaveError):
    """Audio engine rejected the parameters, crashed or timed out."""

    error_code = ErrorCode.TRANSCODE_FAILED
    stage = Stage.TRANSCODE


class StorageError(SoundwaveError):
    """Raised by storage adapters when a put fails."""

    error_code = ErrorCode.STORAGE_FAILED
    stage = Stage.UPLOAD


class UploadError(SoundwaveError):
    """A transcoded output could not be persisted."""

    error_code = ErrorCode.UPLOAD_FAILED
    stage = Stage.UPLOAD


class ExtractError(SoundwaveError):
    """Waveform sample extraction failed."""

    error_code = ErrorCode.EXTRACT_FAILED
    stage = Stage.WAVEFORM


class NotificationError(SoundwaveError):
    """Webhook delivery failed. Never escalated."""

    error_code = ErrorCode.NOTIFICATION_FAILED
    stage = Stage.NOTIFY


class JobCancelled(SoundwaveError):
    """The job record was removed while the pipeline was running."""

    error_code = ErrorCode.JOB_CANCELLED


__all__ = [
    "ErrorCode",
    "Stage",
    "SoundwaveError",
    "ValidationError",
    "DownloadError",
    "TranscodeError",
    "StorageError",
    "UploadError",
    "ExtractError",
    "NotificationError",
    "JobCancelled",
]
