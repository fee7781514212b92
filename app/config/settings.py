"""Runtime settings for the backup scheduler.

Values are read from environment variables (and an optional `.env` file).
Secrets may alternatively be provided through a `*_FILE` variable pointing at a
mounted secret file, which is the usual pattern for Docker/Swarm secrets.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def read_secret_file(file_path: str) -> str:
    """Read a secret value from a file.

    Args:
        file_path: Path to the secret file.

    Returns:
        str: File content without surrounding whitespace, or an empty string
        when the path is empty or does not exist.
    """

    if file_path and os.path.exists(file_path):
        with open(file_path, "r") as f:
            return f.read().strip()
    return ""


class Settings(BaseSettings):
    """Backup scheduler configuration loaded from environment."""

    # Object store
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_SECRET_ACCESS_KEY_FILE: str = ""
    AWS_S3_BUCKET: str = ""
    AWS_S3_REGION: str = "us-east-1"
    AWS_S3_ENDPOINT: str = ""
    AWS_S3_FORCE_PATH_STYLE: bool = False
    BUCKET_SUBFOLDER: str = ""
    SUPPORT_OBJECT_LOCK: bool = False

    # Database
    BACKUP_DATABASE_URL: str = ""
    BACKUP_DATABASE_URL_FILE: str = ""
    RESTORE_DATABASE_URL: str = ""
    BACKUP_OPTIONS: str = ""
    PARALLEL_JOBS: int = Field(default=1, ge=1)

    # Behavior
    RUN_ON_STARTUP: bool = False
    SINGLE_SHOT_MODE: bool = False
    BACKUP_FILE_PREFIX: str = "backup"
    BACKUP_RETENTION_COUNT: int = Field(default=5, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    LOG_DIR: str = ""
    LOG_FILENAME: str = "pg-s3-backup.log"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def get_secret_access_key(self) -> str:
        """Return the S3 secret key from the variable or its secret file."""

        return self.AWS_SECRET_ACCESS_KEY or read_secret_file(self.AWS_SECRET_ACCESS_KEY_FILE)

    def get_database_url(self) -> str:
        """Return the connection string of the database being backed up."""

        return self.BACKUP_DATABASE_URL or read_secret_file(self.BACKUP_DATABASE_URL_FILE)

    def get_restore_database_url(self) -> str:
        """Return the default restore target, falling back to the backup source."""

        return self.RESTORE_DATABASE_URL or self.get_database_url()

    @property
    def bucket_subfolder(self) -> str:
        """Subfolder with surrounding slashes removed."""

        return self.BUCKET_SUBFOLDER.strip().strip("/")

    def missing_required(self) -> List[str]:
        """List required settings that are not configured.

        Returns:
            List[str]: Names of missing settings (empty when complete).
        """

        missing = []
        if not self.AWS_S3_BUCKET:
            missing.append("AWS_S3_BUCKET")
        if not self.get_database_url():
            missing.append("BACKUP_DATABASE_URL")
        return missing


@lru_cache()
def get_settings(env_file: Optional[str] = None) -> Settings:
    """Return the cached settings instance.

    Args:
        env_file: Optional override for the `.env` file location.

    Returns:
        Settings: Loaded settings.
    """

    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
