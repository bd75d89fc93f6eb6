"""Tests for services.storage adapters."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from services.storage import LocalStorage, S3Storage, build_storage
from soundwave.config import Settings
from soundwave.errors import StorageError
from soundwave.ports import content_type_for


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def output_file(workdir):
    path = workdir / "output-0.mp3"
    path.write_bytes(b"encoded audio")
    return path


class TestS3Storage:
    """Tests for S3Storage with a mocked boto3 client."""

    def test_put_uploads_with_content_type(self, output_file):
        client = MagicMock()
        storage = S3Storage(client=client)

        url = storage.put(output_file, "media", "tracks/42/a.mp3", "audio/mpeg")

        client.upload_file.assert_called_once_with(
            str(output_file),
            "media",
            "tracks/42/a.mp3",
            ExtraArgs={"ContentType": "audio/mpeg"},
        )
        assert url == "https://media.s3.amazonaws.com/tracks/42/a.mp3"

    def test_acl_and_custom_url_template(self, output_file):
        client = MagicMock()
        storage = S3Storage(
            url_template="https://{bucket}.nyc3.digitaloceanspaces.com/{key}",
            acl="public-read",
            client=client,
        )

        url = storage.put(output_file, "media", "a.mp3", "audio/mpeg")

        extra_args = client.upload_file.call_args.kwargs["ExtraArgs"]
        assert extra_args == {"ContentType": "audio/mpeg", "ACL": "public-read"}
        assert url == "https://media.nyc3.digitaloceanspaces.com/a.mp3"

    def test_client_error_becomes_storage_error(self, output_file):
        client = MagicMock()
        client.upload_file.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        with pytest.raises(StorageError, match="AccessDenied"):
            S3Storage(client=client).put(output_file, "media", "a.mp3", "audio/mpeg")


class TestLocalStorage:
    """Tests for LocalStorage."""

    def test_put_copies_file(self, workdir, output_file):
        storage = LocalStorage(workdir / "store", base_url="http://cdn.local/")

        url = storage.put(output_file, "media", "tracks/42/a.mp3", "audio/mpeg")

        stored = workdir / "store" / "media" / "tracks" / "42" / "a.mp3"
        assert stored.read_bytes() == b"encoded audio"
        assert url == "http://cdn.local/media/tracks/42/a.mp3"
        assert output_file.exists()

    def test_default_base_url_is_file_uri(self, workdir, output_file):
        storage = LocalStorage(workdir / "store")

        url = storage.put(output_file, "media", "a.mp3", "audio/mpeg")

        assert url.startswith("file://")
        assert url.endswith("/store/media/a.mp3")

    def test_rejects_escaping_keys(self, workdir, output_file):
        storage = LocalStorage(workdir / "store")

        with pytest.raises(StorageError):
            storage.put(output_file, "media", "../../etc/passwd", "audio/mpeg")

    def test_missing_source(self, workdir):
        storage = LocalStorage(workdir / "store")

        with pytest.raises(StorageError):
            storage.put(workdir / "missing.mp3", "media", "a.mp3", "audio/mpeg")


class TestBuildStorage:
    """Tests for backend selection."""

    def test_local_backend(self, workdir):
        storage = build_storage(Settings(storage_backend="local", storage_root=workdir))

        assert isinstance(storage, LocalStorage)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_storage(Settings(storage_backend="ftp"))


class TestContentTypes:
    """Tests for the Content-Type sent with each upload."""

    @pytest.mark.parametrize(
        "fmt,expected",
        [("mp3", "audio/mpeg"), ("wav", "audio/wav"), ("m4a", "audio/mp4"), ("OGG", "audio/ogg")],
    )
    def test_output_formats(self, fmt, expected):
        assert content_type_for(fmt) == expected

    def test_non_audio_format_is_octet_stream(self):
        assert content_type_for("json") == "application/octet-stream"
