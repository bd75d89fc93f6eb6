"""Soundwave - Local filesystem storage adapter.

Stores objects under {root}/{bucket}/{key} using atomic copies. Used for
development and tests; URLs are {base_url}/{bucket}/{key}.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from soundwave.config import Settings
from soundwave.errors import StorageError
from soundwave.ports import StoragePort
from soundwave.utils.atomic_io import atomic_copy_file

logger = logging.getLogger(__name__)


class LocalStorage(StoragePort):
    """StoragePort backed by a directory tree."""

    def __init__(self, root: str | Path, base_url: str | None = None):
        self.root = Path(root).resolve()
        self.base_url = (base_url or self.root.as_uri()).rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> LocalStorage:
        return cls(settings.storage_root, settings.storage_base_url)

    def object_path(self, bucket: str, key: str) -> Path:
        """Filesystem path for bucket/key. Rejects keys escaping the root."""
        parts = PurePosixPath(bucket, key).parts
        if ".." in parts or PurePosixPath(key).is_absolute():
            raise StorageError(f"Invalid object key: {bucket}/{key}")
        return self.root.joinpath(*parts)

    def put(self, local_path: Path, bucket: str, key: str, content_type: str) -> str:
        target = self.object_path(bucket, key)
        try:
            size = atomic_copy_file(local_path, target)
        except OSError as e:
            raise StorageError(f"Failed to store {bucket}/{key}: {e}") from e

        logger.info("Stored %d bytes at %s (%s)", size, target, content_type)
        return f"{self.base_url}/{bucket}/{key}"
