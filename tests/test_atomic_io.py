"""Tests for soundwave.utils.atomic_io module."""

import tempfile
from pathlib import Path

import pytest

from soundwave.utils.atomic_io import SizeLimitExceeded, atomic_copy_file, atomic_write_chunks


class TestAtomicWriteChunks:
    """Tests for atomic_write_chunks function."""

    def test_creates_file(self):
        """Should write all chunks in order."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source"

            written = atomic_write_chunks([b"ab", b"", b"cd"], path)

            assert written == 4
            assert path.read_bytes() == b"abcd"

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "deep" / "file.bin"

            atomic_write_chunks([b"nested data"], path)

            assert path.read_bytes() == b"nested data"

    def test_temp_file_cleaned_up_on_success(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source"

            atomic_write_chunks([b"data"], path)

            assert not Path(str(path) + ".part").exists()

    def test_size_limit(self):
        """Exceeding the limit publishes nothing."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source"

            with pytest.raises(SizeLimitExceeded) as exc_info:
                atomic_write_chunks([b"x" * 6, b"x" * 6], path, max_bytes=10)

            assert exc_info.value.limit == 10
            assert not path.exists()
            assert list(Path(tmpdir).iterdir()) == []

    def test_error_from_iterator_discards_temp(self):
        def chunks():
            yield b"partial"
            raise RuntimeError("connection reset")

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source"

            with pytest.raises(RuntimeError):
                atomic_write_chunks(chunks(), path)

            assert list(Path(tmpdir).iterdir()) == []

    def test_overwrites_existing_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "source"
            path.write_bytes(b"old content")

            atomic_write_chunks([b"new content"], path)

            assert path.read_bytes() == b"new content"


class TestAtomicCopyFile:
    """Tests for atomic_copy_file function."""

    def test_copies_content(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            src = Path(tmpdir) / "src.mp3"
            src.write_bytes(b"y" * 200_000)
            dst = Path(tmpdir) / "out" / "dst.mp3"

            copied = atomic_copy_file(src, dst, chunk_size=4096)

            assert copied == 200_000
            assert dst.read_bytes() == src.read_bytes()
            assert not Path(str(dst) + ".tmp").exists()

    def test_missing_source(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                atomic_copy_file(Path(tmpdir) / "missing", Path(tmpdir) / "dst")
