"""Snapshot storage: backend capability and the facade the engine talks to."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from storyshot.errors import StorageError
from storyshot.models.config import StorageConfig

from .keys import derive_key

logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"


class ObjectStoreBackend(Protocol):
    """Capability set a concrete object store must provide.

    ``head_object`` and ``get_object`` return ``False`` when the object is
    absent. Every other failure is raised as ``StorageError``.
    """

    bucket: str

    def ensure_bucket(self) -> None: ...

    def head_object(self, key: str) -> bool: ...

    def put_object(self, key: str, local_path: Path) -> None: ...

    def get_object(self, key: str, local_path: Path) -> bool: ...


class SnapshotStorage:
    """Baseline snapshot store backed by MinIO or S3."""

    def __init__(self, backend: ObjectStoreBackend):
        self.backend = backend

    @property
    def bucket(self) -> str:
        return self.backend.bucket

    def ensure_bucket_exists(self) -> None:
        """Create the bucket if absent. Safe to call repeatedly and concurrently."""
        try:
            self.backend.ensure_bucket()
        except StorageError as e:
            logger.error("Failed to ensure bucket '%s' exists: %s", self.bucket, e)
            raise

    def exists(self, key: str) -> bool:
        found = self.backend.head_object(key)
        logger.debug("Snapshot %s %s", key, "exists" if found else "not found")
        return found

    def upload(self, local_path: str | Path, key: str) -> None:
        """Write ``local_path`` to ``key``, overwriting any existing object."""
        local_path = Path(local_path)
        if not local_path.is_file():
            raise StorageError("Local snapshot file not found", key=key, path=str(local_path))
        self.ensure_bucket_exists()
        try:
            self.backend.put_object(key, local_path)
        except StorageError as e:
            logger.error("Failed to upload snapshot %s: %s", key, e)
            raise
        logger.info("Snapshot uploaded: %s", key)

    def download(self, key: str, local_path: str | Path) -> bool:
        """Fetch ``key`` into ``local_path``. Returns False if the object is absent."""
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            found = self.backend.get_object(key, local_path)
        except StorageError as e:
            logger.error("Failed to download snapshot %s: %s", key, e)
            raise
        if not found:
            logger.info("Baseline snapshot not found: %s", key)
            return False
        logger.info("Snapshot downloaded: %s", key)
        return True

    def generate_key(self, test_name: str, browser: str, platform: str) -> str:
        return derive_key(test_name, browser, platform)


def create_storage(config: StorageConfig) -> SnapshotStorage:
    """Build a ``SnapshotStorage`` with the backend selected by ``config.provider``."""
    if config.provider == "minio":
        from .minio_backend import MinioBackend

        backend: ObjectStoreBackend = MinioBackend(config)
    else:
        from .s3_backend import S3Backend

        backend = S3Backend(config)
    return SnapshotStorage(backend)
