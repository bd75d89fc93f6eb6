"""Soundwave - Port contracts for external collaborators.

The pipeline depends only on these abstract capabilities:
- TranscodingPort: audio engine (ffmpeg adapter in services/transcoder)
- StoragePort: object store (S3 and local adapters in services/storage)

Both are treated as slow, fallible and non-idempotent. Retries are whole-job
retries driven by the queue, never partial retries inside the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from soundwave.schemas import OutputSpec

# Bitrate ladder per format (kbps). WAV is PCM and takes no bitrate.
BITRATE_LADDER: dict[str, dict[str, str | None]] = {
    "mp3": {"low": "128k", "medium": "192k", "high": "320k"},
    "ogg": {"low": "128k", "medium": "192k", "high": "320k"},
    "m4a": {"low": "128k", "medium": "192k", "high": "256k"},
    "wav": {"low": None, "medium": None, "high": None},
}

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
}

# Loudness normalization target
LOUDNESS_TARGET_LUFS = -16

# Fade length cap and fraction of clip duration
MAX_FADE_SECONDS = 3.0
FADE_FRACTION = 0.1


def content_type_for(fmt: str) -> str:
    """MIME type for an output format."""
    return CONTENT_TYPES.get(fmt.lower().lstrip("."), "application/octet-stream")


def fade_seconds(duration_seconds: float) -> float:
    """Fade-in/out length for a clip: min(3s, 10% of duration)."""
    return min(MAX_FADE_SECONDS, duration_seconds * FADE_FRACTION)


@dataclass(frozen=True)
class TranscodeRequest:
    """Fully resolved transcode parameters for one output."""

    format: str
    bitrate: str | None
    sample_rate: int
    channels: int
    duration_seconds: float | None = None
    fade_seconds: float | None = None
    normalize: bool = False

    @classmethod
    def from_output_spec(cls, spec: OutputSpec) -> TranscodeRequest:
        """Resolve quality to a bitrate and fade flag to a fade length."""
        fade = None
        if spec.fade and spec.is_preview:
            fade = fade_seconds(spec.duration_seconds)
        return cls(
            format=spec.format,
            bitrate=BITRATE_LADDER[spec.format][spec.quality],
            sample_rate=spec.sample_rate,
            channels=spec.channels,
            duration_seconds=spec.duration_seconds,
            fade_seconds=fade,
            normalize=spec.normalize,
        )


class TranscodingPort(ABC):
    """Audio engine capability."""

    @abstractmethod
    def transcode(
        self,
        source_path: Path,
        request: TranscodeRequest,
        output_path: Path,
        timeout_seconds: float | None = None,
    ) -> Path:
        """Render source_path to output_path.

        Returns:
            Path of the produced file.

        Raises:
            TranscodeError: On rejection, crash or timeout.
        """

    @abstractmethod
    def extract_samples(self, source_path: Path, target_point_count: int) -> Sequence[float]:
        """Extract non-negative amplitude samples from source_path.

        Implementations may pre-decimate, but must return at least
        target_point_count samples whenever the source has that many.

        Raises:
            ExtractError: On failure.
        """

    def probe_duration(self, path: Path) -> float | None:
        """Best-effort duration of a produced file. Never raises."""
        return None


class StoragePort(ABC):
    """Object store capability."""

    @abstractmethod
    def put(self, local_path: Path, bucket: str, key: str, content_type: str) -> str:
        """Persist local_path under bucket/key.

        Returns:
            Durable URL of the stored object.

        Raises:
            StorageError: On rejection or connection failure.
        """


__all__ = [
    "BITRATE_LADDER",
    "CONTENT_TYPES",
    "LOUDNESS_TARGET_LUFS",
    "content_type_for",
    "fade_seconds",
    "TranscodeRequest",
    "TranscodingPort",
    "StoragePort",
]
