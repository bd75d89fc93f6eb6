"""Soundwave - Audio engine adapters."""

from services.transcoder.ffmpeg import FfmpegTranscoder

__all__ = ["FfmpegTranscoder"]
