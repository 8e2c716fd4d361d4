"""MinIO (local object store) backend."""

from __future__ import annotations

import logging
from pathlib import Path

import urllib3
from minio import Minio
from minio.error import MinioException, S3Error

from storyshot.errors import StorageError
from storyshot.models.config import StorageConfig

from .base import PNG_CONTENT_TYPE

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchObject", "NoSuchBucket", "ResourceNotFound", "NotFound"}
BUCKET_OWNED_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


class MinioBackend:
    """Object store capability on top of the ``minio`` SDK."""

    def __init__(self, config: StorageConfig, client: Minio | None = None):
        self.bucket = config.bucket
        self.region = config.region
        self.client = client or Minio(
            f"{config.endpoint}:{config.port}",
            access_key=config.access_key,
            secret_key=config.secret_key,
            secure=config.use_ssl,
            region=config.region,
            http_client=urllib3.PoolManager(
                timeout=urllib3.Timeout(connect=config.timeout_seconds, read=config.timeout_seconds),
                retries=urllib3.Retry(total=2, backoff_factor=0.2, status_forcelist=[500, 502, 503, 504]),
            ),
        )
        logger.info("MinIO client initialized (%s:%s, bucket=%s)", config.endpoint, config.port, self.bucket)

    def ensure_bucket(self) -> None:
        try:
            if self.client.bucket_exists(bucket_name=self.bucket):
                return
            self.client.make_bucket(bucket_name=self.bucket, location=self.region)
            logger.info("MinIO bucket '%s' created", self.bucket)
        except S3Error as e:
            if e.code in BUCKET_OWNED_CODES:
                logger.debug("Bucket '%s' created concurrently (%s)", self.bucket, e.code)
                return
            raise self._wrap("ensure bucket", e) from e
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise self._wrap("ensure bucket", e) from e

    def head_object(self, key: str) -> bool:
        try:
            self.client.stat_object(bucket_name=self.bucket, object_name=key)
            return True
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                return False
            raise self._wrap("stat object", e, key) from e
        except (MinioException, urllib3.exceptions.HTTPError) as e:
            raise self._wrap("stat object", e, key) from e

    def put_object(self, key: str, local_path: Path) -> None:
        try:
            self.client.fput_object(
                bucket_name=self.bucket,
                object_name=key,
                file_path=str(local_path),
                content_type=PNG_CONTENT_TYPE,
            )
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise self._wrap("put object", e, key) from e

    def get_object(self, key: str, local_path: Path) -> bool:
        try:
            self.client.fget_object(bucket_name=self.bucket, object_name=key, file_path=str(local_path))
            return True
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                return False
            raise self._wrap("get object", e, key) from e
        except (MinioException, urllib3.exceptions.HTTPError, OSError) as e:
            raise self._wrap("get object", e, key) from e

    def _wrap(self, operation: str, error: Exception, key: str | None = None) -> StorageError:
        return StorageError(
            f"MinIO {operation} failed: {error}",
            provider="minio",
            bucket=self.bucket,
            key=key,
            code=getattr(error, "code", None),
        )
