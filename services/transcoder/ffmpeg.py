"""Soundwave - ffmpeg transcoder.

TranscodingPort implementation driving the ffmpeg/ffprobe CLIs.

Filter order for one output: loudnorm (if normalize) -> afade in -> afade out.
Previews are cut with -t before encoding.

Error codes:
- TRANSCODE_FAILED: non-zero exit, timeout, ffmpeg missing, empty output
- EXTRACT_FAILED: waveform decode failed or produced no samples

Requires ffmpeg installed and in PATH (or SOUNDWAVE_FFMPEG_PATH).
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

import numpy as np

from soundwave.config import Settings
from soundwave.errors import ExtractError, TranscodeError
from soundwave.ports import LOUDNESS_TARGET_LUFS, TranscodeRequest, TranscodingPort

logger = logging.getLogger(__name__)

# Encoder and muxer per output format
CODECS = {
    "mp3": ("libmp3lame", "mp3"),
    "ogg": ("libvorbis", "ogg"),
    "wav": ("pcm_s16le", "wav"),
    "m4a": ("aac", "ipod"),
}

LOUDNORM_FILTER = f"loudnorm=I={LOUDNESS_TARGET_LUFS}:LRA=11:TP=-1.5"

# Blocks kept per waveform point after block-mean decimation
DECIMATION_FACTOR = 16

# int16 full scale
PCM_SCALE = 32768.0

# Characters of stderr kept in error messages
STDERR_TAIL = 500

PROBE_TIMEOUT_SECONDS = 30


def _format_seconds(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def build_filters(request: TranscodeRequest) -> list[str]:
    """Audio filter chain for a transcode request."""
    filters = []
    if request.normalize:
        filters.append(LOUDNORM_FILTER)
    if request.fade_seconds and request.duration_seconds:
        fade = _format_seconds(request.fade_seconds)
        fade_out_start = _format_seconds(request.duration_seconds - request.fade_seconds)
        filters.append(f"afade=t=in:st=0:d={fade}")
        filters.append(f"afade=t=out:st={fade_out_start}:d={fade}")
    return filters


def build_transcode_command(
    ffmpeg_path: str, source_path: Path, request: TranscodeRequest, output_path: Path
) -> list[str]:
    """Full ffmpeg argv for one output."""
    codec, muxer = CODECS[request.format]
    cmd = [ffmpeg_path, "-v", "error", "-y", "-i", str(source_path)]
    if request.duration_seconds is not None:
        cmd += ["-t", _format_seconds(request.duration_seconds)]
    cmd += [
        "-vn",
        "-ac",
        str(request.channels),
        "-ar",
        str(request.sample_rate),
    ]
    filters = build_filters(request)
    if filters:
        cmd += ["-af", ",".join(filters)]
    cmd += ["-c:a", codec]
    if request.bitrate:
        cmd += ["-b:a", request.bitrate]
    cmd += ["-f", muxer, str(output_path)]
    return cmd


def _stderr_tail(stderr: bytes) -> str:
    text = stderr.decode("utf-8", errors="replace").strip()
    return text[-STDERR_TAIL:]


class FfmpegTranscoder(TranscodingPort):
    """Transcoder backed by ffmpeg subprocesses."""

    def __init__(self, settings: Settings):
        self.ffmpeg_path = settings.ffmpeg_path
        self.ffprobe_path = settings.ffprobe_path
        self.sample_rate = settings.waveform_sample_rate
        self.default_timeout = settings.transcode_timeout_seconds

    def _run(self, cmd: list[str], timeout: float, error_cls: type) -> bytes:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("ffmpeg timed out after %s seconds", timeout)
            raise error_cls(f"ffmpeg timed out after {timeout} seconds") from e
        except FileNotFoundError as e:
            logger.error("ffmpeg not found: %s", cmd[0])
            raise error_cls(f"ffmpeg not found: {cmd[0]}") from e
        except OSError as e:
            logger.error("ffmpeg execution failed: %s", e)
            raise error_cls(f"ffmpeg execution failed: {e}") from e

        if result.returncode != 0:
            raise error_cls(
                f"ffmpeg exited with code {result.returncode}: {_stderr_tail(result.stderr)}"
            )
        return result.stdout

    def transcode(
        self,
        source_path: Path,
        request: TranscodeRequest,
        output_path: Path,
        timeout_seconds: float | None = None,
    ) -> Path:
        output_path = Path(output_path)
        cmd = build_transcode_command(self.ffmpeg_path, Path(source_path), request, output_path)
        logger.debug("Running %s", " ".join(cmd))

        self._run(cmd, timeout_seconds or self.default_timeout, TranscodeError)

        if not output_path.is_file() or output_path.stat().st_size == 0:
            raise TranscodeError(f"ffmpeg produced no output for format={request.format}")
        return output_path

    def extract_samples(self, source_path: Path, target_point_count: int) -> np.ndarray:
        """Decode to mono s16le and return absolute amplitudes in [0, 1].

        Long sources are decimated to block means, keeping
        DECIMATION_FACTOR blocks per requested point.
        """
        cmd = [
            self.ffmpeg_path,
            "-v",
            "error",
            "-i",
            str(source_path),
            "-vn",
            "-ac",
            "1",
            "-ar",
            str(self.sample_rate),
            "-f",
            "s16le",
            "-",
        ]
        pcm = self._run(cmd, self.default_timeout, ExtractError)

        # Drop a trailing odd byte, if any
        samples = np.frombuffer(pcm[: len(pcm) - len(pcm) % 2], dtype="<i2")
        if samples.size == 0:
            raise ExtractError("ffmpeg decoded no audio samples")

        amplitudes = np.abs(samples.astype(np.float64)) / PCM_SCALE

        block_count = target_point_count * DECIMATION_FACTOR
        if amplitudes.size > block_count:
            edges = (np.arange(block_count, dtype=np.int64) * amplitudes.size) // block_count
            counts = np.diff(np.append(edges, amplitudes.size))
            amplitudes = np.add.reduceat(amplitudes, edges) / counts
        return amplitudes

    def probe_duration(self, path: Path) -> float | None:
        cmd = [
            self.ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "json",
            str(path),
        ]
        try:
            result = subprocess.run(
                cmd, capture_output=True, check=False, timeout=PROBE_TIMEOUT_SECONDS
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.warning("ffprobe failed for %s: %s", path, e)
            return None
        if result.returncode != 0:
            logger.warning("ffprobe exited with code %d for %s", result.returncode, path)
            return None

        try:
            duration = float(json.loads(result.stdout)["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            return None
        return round(duration, 3)


__all__ = ["FfmpegTranscoder", "build_transcode_command", "build_filters", "CODECS"]
