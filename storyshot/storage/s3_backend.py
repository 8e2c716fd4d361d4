"""Amazon S3 (cloud object store) backend."""

from __future__ import annotations

import logging
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storyshot.errors import StorageError
from storyshot.models.config import StorageConfig

from .base import PNG_CONTENT_TYPE

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
BUCKET_OWNED_CODES = {"BucketAlreadyOwnedByYou"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3Backend:
    """Object store capability on top of ``boto3``."""

    def __init__(self, config: StorageConfig, client=None):
        self.bucket = config.bucket
        self.region = config.region
        self.client = client or boto3.client(
            "s3",
            region_name=config.region,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            config=Config(
                connect_timeout=config.timeout_seconds,
                read_timeout=config.timeout_seconds,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )
        logger.info("S3 client initialized (region=%s, bucket=%s)", self.region, self.bucket)

    def ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in NOT_FOUND_CODES:
                raise self._wrap("head bucket", e) from e
        except BotoCoreError as e:
            raise self._wrap("head bucket", e) from e

        kwargs: dict = {"Bucket": self.bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
            logger.info("S3 bucket '%s' created", self.bucket)
        except ClientError as e:
            if _error_code(e) in BUCKET_OWNED_CODES:
                logger.debug("Bucket '%s' created concurrently", self.bucket)
                return
            raise self._wrap("create bucket", e) from e
        except BotoCoreError as e:
            raise self._wrap("create bucket", e) from e

    def head_object(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._wrap("head object", e, key) from e
        except BotoCoreError as e:
            raise self._wrap("head object", e, key) from e

    def put_object(self, key: str, local_path: Path) -> None:
        try:
            self.client.upload_file(
                str(local_path), self.bucket, key,
                ExtraArgs={"ContentType": PNG_CONTENT_TYPE},
            )
        except (S3UploadFailedError, ClientError, BotoCoreError, OSError) as e:
            raise self._wrap("upload", e, key) from e

    def get_object(self, key: str, local_path: Path) -> bool:
        try:
            self.client.download_file(self.bucket, key, str(local_path))
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._wrap("download", e, key) from e
        except (BotoCoreError, OSError) as e:
            raise self._wrap("download", e, key) from e

    def _wrap(self, operation: str, error: Exception, key: str | None = None) -> StorageError:
        code = _error_code(error) if isinstance(error, ClientError) else None
        return StorageError(
            f"S3 {operation} failed: {error}",
            provider="s3",
            bucket=self.bucket,
            key=key,
            code=code,
        )
