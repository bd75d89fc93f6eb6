"""Soundwave - Audio type detection utilities.

Best-effort checks on a source before it is handed to the audio engine.
No audio dependencies; decisions come from the response content type and
the URL extension only.
"""

from pathlib import PurePosixPath
from urllib.parse import urlparse

# Extensions accepted when a server does not declare an audio content type
SOURCE_EXTENSIONS = frozenset(
    {"mp3", "ogg", "wav", "m4a", "aac", "flac", "opus", "aif", "aiff", "wma", "webm"}
)


def guess_format_from_extension(filename: str) -> str | None:
    """Guess audio format from filename extension.

    Args:
        filename: Filename or path string.

    Returns:
        Lowercase extension without dot, or None if no extension.
    """
    ext = PurePosixPath(filename).suffix.lower().lstrip(".")
    return ext if ext else None


def guess_format_from_url(url: str) -> str | None:
    """Guess audio format from the path component of a URL (query ignored)."""
    return guess_format_from_extension(urlparse(url).path)


def is_audio_source(content_type: str | None, url: str) -> bool:
    """Decide whether a downloaded resource looks like audio.

    Accepted when the server declares audio/*; otherwise the URL must carry
    a known audio extension.

    Args:
        content_type: Response Content-Type header, if any.
        url: Source URL.

    Returns:
        True if the source should be handed to the audio engine.
    """
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime.startswith("audio/"):
        return True
    return guess_format_from_url(url) in SOURCE_EXTENSIONS


__all__ = [
    "SOURCE_EXTENSIONS",
    "guess_format_from_extension",
    "guess_format_from_url",
    "is_audio_source",
]
