"""S3-compatible storage provider (AWS, MinIO, Wasabi, R2, ...)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from backend.services.backup.errors import StoreUnavailable, UploadFailed
from backend.services.backup.retention import BackupObject
from backend.services.storage.base import StorageProvider

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPE = "application/gzip"


@dataclass(frozen=True)
class S3Config:
    """Configuration for an S3 destination.

    Attributes:
        bucket: Bucket name.
        region: Region name.
        endpoint_url: Optional custom endpoint for non-AWS providers.
        force_path_style: Use path-style addressing instead of virtual hosts.
        access_key_id: Optional access key; boto3's default chain is used when empty.
        secret_access_key: Optional secret key.
    """

    bucket: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    force_path_style: bool = False
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


class S3Storage(StorageProvider):
    """Store backups in an S3-compatible bucket."""

    def __init__(self, config: S3Config, client: Any = None):
        """Initialize the provider.

        Args:
            config: S3 configuration.
            client: Optional pre-built boto3 S3 client.
        """

        self.bucket = config.bucket
        self.client = client or self._build_client(config)

    @staticmethod
    def _build_client(config: S3Config):
        client_config = None
        if config.force_path_style:
            client_config = Config(s3={"addressing_style": "path"})

        if config.endpoint_url:
            logger.info("Using custom S3 endpoint: %s", config.endpoint_url)

        return boto3.client(
            "s3",
            endpoint_url=config.endpoint_url or None,
            region_name=config.region or None,
            aws_access_key_id=config.access_key_id or None,
            aws_secret_access_key=config.secret_access_key or None,
            config=client_config,
        )

    def verify(self) -> None:
        """Verify credentials and bucket access with HeadBucket.

        Raises:
            StoreUnavailable: When the bucket is unreachable.
        """

        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Cannot access bucket {self.bucket}: {exc}") from exc

    def list_objects(self, *, prefix: str) -> List[BackupObject]:
        """List all objects under a prefix, following pagination.

        Args:
            prefix: Key prefix.

        Returns:
            List[BackupObject]: Objects in listing order.

        Raises:
            StoreUnavailable: When listing fails.
        """

        objects: List[BackupObject] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    objects.append(
                        BackupObject(
                            key=obj["Key"],
                            last_modified=_to_utc(obj["LastModified"]),
                            size=obj.get("Size"),
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Failed to list s3://{self.bucket}/{prefix}: {exc}") from exc
        return objects

    def put_object(self, *, key: str, local_path: Path, content_md5: Optional[str] = None) -> BackupObject:
        """Stream a local archive to the bucket.

        With a digest the file goes up as one PutObject carrying Content-MD5,
        which object-lock buckets require; otherwise boto3's managed transfer
        is used and may split the upload into parts.

        Args:
            key: Destination key.
            local_path: Local archive.
            content_md5: Optional base64 MD5 digest.

        Returns:
            BackupObject: Uploaded object metadata.

        Raises:
            UploadFailed: When the upload fails.
        """

        local_path = Path(local_path)
        try:
            size = local_path.stat().st_size
            with open(local_path, "rb") as body:
                if content_md5:
                    self.client.put_object(
                        Bucket=self.bucket,
                        Key=key,
                        Body=body,
                        ContentMD5=content_md5,
                        ContentType=ARCHIVE_CONTENT_TYPE,
                    )
                else:
                    self.client.upload_fileobj(
                        body,
                        self.bucket,
                        key,
                        ExtraArgs={"ContentType": ARCHIVE_CONTENT_TYPE},
                    )
        except (ClientError, BotoCoreError, OSError) as exc:
            raise UploadFailed(f"Failed to upload {local_path} to s3://{self.bucket}/{key}: {exc}") from exc

        logger.info("Uploaded to s3://%s/%s", self.bucket, key)
        return BackupObject(key=key, last_modified=datetime.now(timezone.utc), size=size)

    def delete_object(self, *, key: str) -> None:
        """Delete one object.

        Raises:
            StoreUnavailable: When the delete call fails.
        """

        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Failed to delete s3://{self.bucket}/{key}: {exc}") from exc

    def download_object(self, *, key: str, dest_path: Path) -> Path:
        """Download an object to `dest_path`.

        Raises:
            StoreUnavailable: When the download fails.
        """

        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(self.bucket, key, str(dest_path))
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Failed to download s3://{self.bucket}/{key}: {exc}") from exc
        return dest_path


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
