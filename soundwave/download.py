"""Soundwave - Source download.

Streams a remote audio file into a job workspace.

Failure modes (all raised as DownloadError):
- transport error (DNS, connection refused, TLS, read timeout)
- non-2xx response status
- declared Content-Length above the size limit
- observed bytes above the size limit
- overall download deadline exceeded
- response that is neither audio/* nor an audio file extension
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from pathlib import Path

import requests

from soundwave.errors import DownloadError
from soundwave.utils.atomic_io import SizeLimitExceeded, atomic_write_chunks
from soundwave.utils.audio_meta import is_audio_source

logger = logging.getLogger(__name__)

# Streaming chunk size (1MB)
CHUNK_SIZE = 1_048_576

# Connect timeout; the read timeout is the overall deadline
CONNECT_TIMEOUT_SECONDS = 10


def _format_mb(num_bytes: int) -> str:
    return f"{num_bytes / 1024 / 1024:.0f}MB"


def _declared_length(response: requests.Response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _chunks_with_deadline(
    response: requests.Response, deadline: float, timeout_seconds: float
) -> Iterator[bytes]:
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if time.monotonic() > deadline:
            raise DownloadError(f"Download exceeded deadline of {timeout_seconds}s")
        yield chunk


def download_file(
    url: str,
    dest_path: Path,
    max_bytes: int,
    timeout_seconds: float,
    session: requests.Session | None = None,
) -> int:
    """Download url to dest_path.

    Args:
        url: Source URL.
        dest_path: Target file. Only published once complete.
        max_bytes: Maximum accepted size.
        timeout_seconds: Overall deadline for the download.
        session: Optional requests session (connection reuse, testing).

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: On any failure listed in the module docstring.
    """
    http = session or requests
    deadline = time.monotonic() + timeout_seconds

    logger.info("Downloading file from %s", url)
    try:
        with http.get(
            url,
            stream=True,
            timeout=(CONNECT_TIMEOUT_SECONDS, timeout_seconds),
        ) as response:
            if not response.ok:
                raise DownloadError(
                    f"Failed to download file: {response.status_code} {response.reason}"
                )

            declared = _declared_length(response)
            if declared is not None and declared > max_bytes:
                raise DownloadError(
                    f"File size exceeds maximum allowed size of {_format_mb(max_bytes)}"
                )

            content_type = response.headers.get("Content-Type")
            if not is_audio_source(content_type, url):
                raise DownloadError(
                    f"Unsupported file type ({content_type or 'no content type'}). "
                    "Must be an audio file."
                )

            written = atomic_write_chunks(
                _chunks_with_deadline(response, deadline, timeout_seconds),
                dest_path,
                max_bytes=max_bytes,
            )
    except SizeLimitExceeded as e:
        raise DownloadError(
            f"File size exceeds maximum allowed size of {_format_mb(e.limit)}"
        ) from e
    except requests.Timeout as e:
        raise DownloadError(f"Download timed out: {e}") from e
    except requests.RequestException as e:
        raise DownloadError(f"Failed to download file: {e}") from e
    except OSError as e:
        raise DownloadError(f"Failed to write downloaded file: {e}") from e

    if written == 0:
        raise DownloadError("Downloaded file is empty")

    logger.info("Downloaded %d bytes from %s", written, url)
    return written


__all__ = ["download_file", "CHUNK_SIZE"]
