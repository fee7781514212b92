"""Storage provider factory.

Converts settings into the concrete storage provider used by the scheduler and
the recovery CLI, so both talk to the bucket the same way.
"""

from __future__ import annotations

from config.settings import Settings
from backend.services.storage.base import StorageProvider
from backend.services.storage.s3 import S3Config, S3Storage


def build_s3_config(settings: Settings) -> S3Config:
    """Build the S3 configuration from settings.

    Args:
        settings: Loaded settings.

    Returns:
        S3Config: Provider configuration.
    """

    return S3Config(
        bucket=settings.AWS_S3_BUCKET,
        region=settings.AWS_S3_REGION,
        endpoint_url=settings.AWS_S3_ENDPOINT or None,
        force_path_style=settings.AWS_S3_FORCE_PATH_STYLE,
        access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        secret_access_key=settings.get_secret_access_key() or None,
    )


def build_storage_provider(settings: Settings) -> StorageProvider:
    """Instantiate the storage provider described by settings."""

    return S3Storage(build_s3_config(settings))
