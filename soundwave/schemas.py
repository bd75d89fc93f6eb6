"""Soundwave - Pydantic models for job validation.

A JobRequest is validated once at the queue boundary and again when a worker
loads it back from its job record. Anything non-conforming is rejected
before it reaches the pipeline.
"""

from datetime import datetime  # noqa: I001
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)

SUPPORTED_FORMATS = ("mp3", "ogg", "wav", "m4a")
SUPPORTED_QUALITIES = ("low", "medium", "high")

OUTPUT_TYPE_FULL = "full"
OUTPUT_TYPE_PREVIEW = "preview"

AudioFormat = Literal["mp3", "ogg", "wav", "m4a"]
AudioQuality = Literal["low", "medium", "high"]


def _check_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"must be an http(s) URL, got {value!r}")
    return value


# --- Request Models ---


class OutputSpec(BaseModel):
    """One requested rendition of the source audio."""

    model_config = ConfigDict(extra="forbid")

    format: AudioFormat = Field(..., description="Target container/codec")
    quality: AudioQuality = Field(..., description="Bitrate ladder rung")
    sample_rate: int = Field(
        default=44100,
        ge=8000,
        le=48000,
        validation_alias=AliasChoices("sample_rate", "sampleRate"),
        description="Output sample rate in Hz",
    )
    channels: int = Field(default=2, ge=1, le=2, description="Output channel count")
    duration_seconds: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("duration_seconds", "durationSeconds", "duration"),
        description="Clip length; presence makes this output a preview",
    )
    fade: bool = Field(default=False, description="Fade in/out (previews only)")
    normalize: bool = Field(default=False, description="Loudness-normalize to -16 LUFS")
    filename: str | None = Field(
        default=None, min_length=1, description="Object filename override"
    )
    path: str | None = Field(default=None, description="Object key prefix override")

    _output_type: str = PrivateAttr(default=OUTPUT_TYPE_FULL)

    @field_validator("filename")
    @classmethod
    def _filename_is_plain(cls, value: str | None) -> str | None:
        if value is not None and ("/" in value or "\\" in value or value in (".", "..")):
            raise ValueError("filename must not contain path separators")
        return value

    @model_validator(mode="after")
    def _derive_output_type(self) -> "OutputSpec":
        self._output_type = (
            OUTPUT_TYPE_PREVIEW if self.duration_seconds is not None else OUTPUT_TYPE_FULL
        )
        return self

    @property
    def output_type(self) -> str:
        """Output kind ("full" or "preview"), derived once from duration presence."""
        return self._output_type

    @property
    def is_preview(self) -> bool:
        return self._output_type == OUTPUT_TYPE_PREVIEW


class StorageTarget(BaseModel):
    """Default bucket and key prefix for a job's outputs."""

    model_config = ConfigDict(extra="forbid")

    bucket: str = Field(..., min_length=1, description="Destination bucket")
    path: str = Field(..., description="Default key prefix")


class WaveformRequest(BaseModel):
    """Requested waveform resolution."""

    model_config = ConfigDict(extra="forbid")

    points: int = Field(..., ge=100, le=10000, description="Number of samples")


class JobRequest(BaseModel):
    """A submitted unit of work.

    Wire names are snake_case; camelCase names are accepted on input.
    """

    model_config = ConfigDict(extra="forbid")

    source_url: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("source_url", "sourceURL", "file_url"),
        description="Fetchable audio resource",
    )
    internal_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("internal_id", "internalID"),
        description="Opaque caller identifier, echoed back unchanged",
    )
    outputs: list[OutputSpec] = Field(
        ..., min_length=1, max_length=10, description="Renditions, in processing order"
    )
    storage: StorageTarget = Field(..., description="Default destination")
    waveform: WaveformRequest | None = Field(default=None, description="Optional waveform")
    webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("webhook_url", "webhookURL"),
        description="Completion (and fallback failure) endpoint",
    )
    progress_webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("progress_webhook_url", "progressWebhookURL"),
        description="Progress endpoint",
    )
    error_webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("error_webhook_url", "errorWebhookURL"),
        description="Failure endpoint",
    )
    slack_webhook_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("slack_webhook_url", "slackWebhookURL"),
        description="Slack incoming webhook for completion/failure messages",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Opaque mapping, round-tripped verbatim"
    )

    @field_validator("source_url")
    @classmethod
    def _source_is_http(cls, value: str) -> str:
        return _check_http_url(value)

    @field_validator(
        "webhook_url", "progress_webhook_url", "error_webhook_url", "slack_webhook_url"
    )
    @classmethod
    def _webhook_is_http(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _check_http_url(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value: Any) -> Any:
        return {} if value is None else value


# --- Response Models ---


class JobAcceptedResponse(BaseModel):
    """Response for an accepted submission."""

    model_config = ConfigDict(extra="forbid")

    job_id: str = Field(..., description="Unique identifier for the queued job")
    status: str = Field(default="queued", description="Initial lifecycle state")
    message: str = Field(default="Processing started", description="Human-readable note")


class JobStatusResponse(BaseModel):
    """Job status as seen by pollers."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Job identifier")
    internal_id: str | None = Field(default=None, description="Caller identifier")
    status: str = Field(..., description="queued, active, completed or failed")
    progress: int = Field(default=0, ge=0, le=100, description="Last reported progress")
    attempts_made: int = Field(default=0, ge=0, description="Finished attempts")
    created_at: datetime | None = Field(default=None, description="Submission time")
    result: dict[str, Any] | None = Field(default=None, description="Result once completed")
    error: str | None = Field(default=None, description="Failure reason once failed")
    last_error: str | None = Field(
        default=None, description="Most recent failed attempt while the job is still pending"
    )


class QueueCountsResponse(BaseModel):
    """Number of jobs in each lifecycle state."""

    model_config = ConfigDict(extra="forbid")

    waiting: int = Field(..., ge=0, description="Queued, including scheduled retries")
    active: int = Field(..., ge=0, description="Claimed by a worker")
    completed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)


class ErrorResponse(BaseModel):
    """Response for rejected requests."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error taxonomy code")
    error_message: str = Field(..., description="Human-readable error description")


__all__ = [
    "SUPPORTED_FORMATS",
    "SUPPORTED_QUALITIES",
    "OUTPUT_TYPE_FULL",
    "OUTPUT_TYPE_PREVIEW",
    "OutputSpec",
    "StorageTarget",
    "WaveformRequest",
    "JobRequest",
    "JobAcceptedResponse",
    "JobStatusResponse",
    "QueueCountsResponse",
    "ErrorResponse",
]
