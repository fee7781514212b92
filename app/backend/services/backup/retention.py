"""Count-based retention for stored backups.

Each cadence keeps at most `keep_last` archives under its key prefix. After a
successful upload the prefix is listed, ordered newest first, and everything
beyond the first `keep_last` objects is deleted one at a time.

Deletion is best-effort and convergent: an object that fails to delete is
logged and left for the next cycle's cleanup to retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from backend.services.backup.errors import StoreUnavailable

if TYPE_CHECKING:
    from backend.services.storage.base import StorageProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupObject:
    """Metadata about a stored backup object."""

    key: str
    last_modified: datetime
    size: Optional[int] = None


@dataclass
class RetentionResult:
    """Outcome of one cleanup pass.

    Attributes:
        existing: Number of objects found under the prefix.
        kept: Keys that were retained.
        deleted: Keys that were deleted.
        failed: Keys whose deletion failed.
    """

    existing: int = 0
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "existing": self.existing,
            "keep": len(self.kept),
            "deleted": list(self.deleted),
            "failed": list(self.failed),
        }


def newest_first(objects: Sequence[BackupObject]) -> List[BackupObject]:
    """Sort objects by last-modified descending.

    Objects sharing a timestamp are ordered by key so the result does not
    depend on listing order.

    Args:
        objects: Objects to sort.

    Returns:
        List[BackupObject]: Sorted copy.
    """

    by_key = sorted(objects, key=lambda o: o.key)
    return sorted(by_key, key=lambda o: o.last_modified, reverse=True)


def plan_retention(
    objects: Sequence[BackupObject],
    keep_last: int,
) -> Tuple[List[BackupObject], List[BackupObject]]:
    """Return (keep, delete) lists for a single cadence prefix.

    Args:
        objects: Objects currently stored under the prefix.
        keep_last: Maximum number of objects to retain.

    Returns:
        Tuple[List[BackupObject], List[BackupObject]]: Objects to keep (newest
        first) and objects to delete (newest first).
    """

    ordered = newest_first(objects)
    keep_last = max(int(keep_last), 0)
    return ordered[:keep_last], ordered[keep_last:]


def apply_retention(storage: "StorageProvider", prefix: str, keep_last: int) -> RetentionResult:
    """List a prefix and delete every object beyond the newest `keep_last`.

    Args:
        storage: Store to prune.
        prefix: Key prefix of one cadence.
        keep_last: Maximum number of objects to retain.

    Returns:
        RetentionResult: Summary of the pass.

    Raises:
        StoreUnavailable: When the prefix cannot be listed.
    """

    existing = storage.list_objects(prefix=prefix)
    keep, delete = plan_retention(existing, keep_last)

    result = RetentionResult(existing=len(existing), kept=[o.key for o in keep])
    if not delete:
        logger.debug("Retention for %s: %s object(s), nothing to prune", prefix, len(existing))
        return result

    logger.info("Retention for %s: keeping %s of %s object(s)", prefix, len(keep), len(existing))
    for obj in delete:
        try:
            storage.delete_object(key=obj.key)
        except StoreUnavailable as exc:
            logger.error("Failed to delete old backup %s: %s", obj.key, exc)
            result.failed.append(obj.key)
            continue
        logger.info("Deleted old backup: %s", obj.key)
        result.deleted.append(obj.key)

    return result
