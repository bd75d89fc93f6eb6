"""Soundwave - Atomic I/O utilities.

Atomic publish rule for every file the service writes:
1. Write to a temp path in the same directory
2. Flush + best-effort fsync
3. Rename temp -> final (the publish boundary)

The final path either holds complete data or does not exist. Partial
writes (an aborted download, a failed copy) only ever touch the temp file,
which is removed on failure.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path


class SizeLimitExceeded(OSError):
    """Raised when a streamed write grows past its byte limit."""

    def __init__(self, limit: int, written: int):
        self.limit = limit
        self.written = written
        super().__init__(f"Wrote {written} bytes, limit is {limit}")


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling short writes and EINTR.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except InterruptedError:
            continue
        if written == 0:
            raise OSError("os.write() returned 0 bytes unexpectedly")
        view = view[written:]


def _fsync_directory(dir_path: Path) -> None:
    """Best-effort fsync on a directory so the rename survives a crash."""
    try:
        fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
    except (OSError, AttributeError):
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _discard(temp_path: Path) -> None:
    try:
        os.remove(temp_path)
    except OSError:
        pass


def atomic_write_chunks(
    chunks: Iterable[bytes],
    final_path: str | Path,
    max_bytes: int | None = None,
    temp_suffix: str = ".part",
) -> int:
    """Atomically write an iterable of byte chunks to a file.

    Used for HTTP downloads, where chunks come from a streamed response.

    Args:
        chunks: Byte chunks, written in order. Empty chunks are skipped.
        final_path: Target path for the output file.
        max_bytes: Optional hard cap on the total size.
        temp_suffix: Suffix for the temporary file.

    Returns:
        Total bytes written.

    Raises:
        SizeLimitExceeded: If more than max_bytes arrive. Nothing is published.
        OSError: If write or rename fails.
    """
    final_path = Path(final_path)
    temp_path = final_path.with_name(final_path.name + temp_suffix)
    final_path.parent.mkdir(parents=True, exist_ok=True)

    total_bytes = 0
    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        for chunk in chunks:
            if not chunk:
                continue
            total_bytes += len(chunk)
            if max_bytes is not None and total_bytes > max_bytes:
                raise SizeLimitExceeded(max_bytes, total_bytes)
            _write_all(fd, chunk)
        os.fsync(fd)
    except BaseException:
        os.close(fd)
        _discard(temp_path)
        raise
    os.close(fd)

    os.replace(temp_path, final_path)
    _fsync_directory(final_path.parent)
    return total_bytes


def atomic_copy_file(
    source_path: str | Path,
    final_path: str | Path,
    temp_suffix: str = ".tmp",
    chunk_size: int = 65536,
) -> int:
    """Atomically copy a file from source to destination.

    Args:
        source_path: Path to the source file.
        final_path: Target path for the copied file.
        temp_suffix: Suffix for the temporary file.
        chunk_size: Buffer size for copying (default: 64KB).

    Returns:
        Bytes copied.

    Raises:
        FileNotFoundError: If source file does not exist.
        OSError: If copy or rename fails.
    """
    source_path = Path(source_path)
    if not source_path.is_file():
        raise FileNotFoundError(f"Source file not found: {source_path}")

    def _read_chunks():
        with open(source_path, "rb") as src:
            while chunk := src.read(chunk_size):
                yield chunk

    return atomic_write_chunks(_read_chunks(), final_path, temp_suffix=temp_suffix)


__all__ = [
    "SizeLimitExceeded",
    "atomic_write_chunks",
    "atomic_copy_file",
]
