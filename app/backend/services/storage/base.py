"""Base storage provider interface for backup destinations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from backend.services.backup.retention import BackupObject


class StorageProvider(ABC):
    """Abstract base class for object-store backed backup destinations.

    Implementations raise `StoreUnavailable` for failed list/delete/download
    calls and `UploadFailed` for failed uploads.
    """

    @abstractmethod
    def verify(self) -> None:
        """Check that the destination is reachable with the configured credentials."""

    @abstractmethod
    def list_objects(self, *, prefix: str) -> List[BackupObject]:
        """List every object under a key prefix.

        Args:
            prefix: Key prefix.

        Returns:
            List[BackupObject]: Objects in listing order.
        """

    @abstractmethod
    def put_object(self, *, key: str, local_path: Path, content_md5: Optional[str] = None) -> BackupObject:
        """Upload a local file.

        Args:
            key: Destination key.
            local_path: Path to the local file.
            content_md5: Optional base64 MD5 digest for integrity checking.

        Returns:
            BackupObject: Metadata about the uploaded object.
        """

    @abstractmethod
    def delete_object(self, *, key: str) -> None:
        """Delete a single object.

        Args:
            key: Key to delete.
        """

    @abstractmethod
    def download_object(self, *, key: str, dest_path: Path) -> Path:
        """Download an object to a local path.

        Args:
            key: Key to download.
            dest_path: Where to store the file.

        Returns:
            Path: The downloaded file.
        """
