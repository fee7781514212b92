"""Error taxonomy for backup cycles.

Every error carries the `stage` it was raised in so the scheduler can log
failures with enough context to tell a dump problem from a store outage.
"""

from __future__ import annotations

from typing import Optional


class BackupError(RuntimeError):
    """Base class for backup cycle failures."""

    stage = "backup"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        if stage:
            self.stage = stage


class DumpFailed(BackupError):
    """Raised when the dump tool exits with an error or cannot be started."""

    stage = "dump"


class DumpInvalid(BackupError):
    """Raised when the produced archive is empty or not gzip-decodable."""

    stage = "dump"


class StoreUnavailable(BackupError):
    """Raised when a list, delete or download call against the store fails."""

    stage = "store"


class UploadFailed(BackupError):
    """Raised when the archive could not be written to the store."""

    stage = "upload"


class LocalIOFailed(BackupError):
    """Raised when a local temporary file cannot be created or removed."""

    stage = "local-io"


class RestoreFailed(BackupError):
    """Raised when restoring an archive into a database fails."""

    stage = "restore"
