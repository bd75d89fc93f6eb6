"""Soundwave - Object storage adapters."""

from soundwave.config import Settings
from soundwave.ports import StoragePort

from services.storage.local import LocalStorage
from services.storage.s3 import S3Storage

STORAGE_BACKENDS = {
    "local": LocalStorage,
    "s3": S3Storage,
}


def build_storage(settings: Settings) -> StoragePort:
    """Create the storage adapter selected by settings.storage_backend."""
    try:
        backend = STORAGE_BACKENDS[settings.storage_backend]
    except KeyError:
        raise ValueError(
            f"Unknown storage backend {settings.storage_backend!r}; "
            f"expected one of {sorted(STORAGE_BACKENDS)}"
        ) from None
    return backend.from_settings(settings)


__all__ = ["LocalStorage", "S3Storage", "build_storage", "STORAGE_BACKENDS"]
