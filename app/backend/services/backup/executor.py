"""Execution of a single backup cycle.

A cycle for one cadence:
- Dump the database into a local gzip archive
- Optionally hash the archive (object-lock buckets require Content-MD5)
- Upload it under the cadence prefix
- Remove the local archive (always, best-effort)
- Prune the cadence prefix down to the retention count

Failures while dumping or uploading propagate to the caller. A failure while
listing for cleanup only aborts the cleanup, since the backup itself landed.
"""

from __future__ import annotations

import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool

from backend.services.backup.cadence import Cadence, build_backup_filename, build_destination_key, cadence_prefix
from backend.services.backup.checksum import compute_content_md5
from backend.services.backup.errors import LocalIOFailed, StoreUnavailable
from backend.services.backup.retention import apply_retention
from backend.services.postgres.dump_service import PgDumpService
from backend.services.storage.base import StorageProvider

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackupExecutor:
    """Run dump, upload and retention for one cadence at a time."""

    def __init__(
        self,
        *,
        storage: StorageProvider,
        dump_service: PgDumpService,
        file_prefix: str = "backup",
        subfolder: str = "",
        retention_count: int = 5,
        support_object_lock: bool = False,
        work_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the executor.

        Args:
            storage: Destination store.
            dump_service: Dump producer.
            file_prefix: Archive file name prefix.
            subfolder: Optional bucket subfolder.
            retention_count: Objects kept per cadence.
            support_object_lock: Send a Content-MD5 digest with each upload.
            work_dir: Directory for local archives; defaults to the temp dir.
            clock: Returns the current UTC time.
        """

        self.storage = storage
        self.dump_service = dump_service
        self.file_prefix = file_prefix
        self.subfolder = subfolder
        self.retention_count = retention_count
        self.support_object_lock = support_object_lock
        self.work_dir = Path(work_dir or tempfile.gettempdir())
        self.clock = clock

    async def run_cycle(self, cadence: Cadence, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Execute one backup cycle.

        Args:
            cadence: Cadence the backup is filed under.
            now: Timestamp used for the archive name; defaults to the clock.

        Returns:
            Dict[str, Any]: Summary with key, size and retention outcome.

        Raises:
            DumpFailed: When pg_dump fails.
            DumpInvalid: When the archive fails validation.
            UploadFailed: When the upload fails.
            LocalIOFailed: When the archive cannot be written or hashed.
        """

        logger.info("Initiating %s backup...", cadence.name)
        now = now or self.clock()
        filename = build_backup_filename(self.file_prefix, now)
        key = build_destination_key(self.subfolder, cadence, filename)
        local_path = self.work_dir / filename

        try:
            await run_in_threadpool(self.dump_service.create_backup, local_path)

            content_md5 = None
            if self.support_object_lock:
                logger.info("MD5 hashing file...")
                content_md5 = await run_in_threadpool(self._hash, local_path)
                logger.info("Done hashing file")

            logger.info("Uploading backup to %s...", key)
            uploaded = await run_in_threadpool(
                self.storage.put_object,
                key=key,
                local_path=local_path,
                content_md5=content_md5,
            )
        finally:
            self._remove_local(local_path)

        retention = await self._cleanup(cadence)

        logger.info("DB backup complete (%s backup)", cadence.name)
        return {
            "cadence": cadence.name,
            "key": uploaded.key,
            "size": uploaded.size,
            "retention": retention,
        }

    @staticmethod
    def _hash(path: Path) -> str:
        try:
            return compute_content_md5(path)
        except OSError as exc:
            raise LocalIOFailed(f"Failed to hash {path}: {exc}") from exc

    def _remove_local(self, path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
                logger.debug("Deleted local archive %s", path)
        except OSError as exc:
            err = LocalIOFailed(f"Failed to delete local archive {path}: {exc}")
            logger.warning("[%s] %s", err.stage, err)

    async def _cleanup(self, cadence: Cadence) -> Optional[Dict[str, Any]]:
        prefix = cadence_prefix(self.subfolder, cadence)
        logger.info("Cleaning up old %s backups...", cadence.name)
        try:
            result = await run_in_threadpool(apply_retention, self.storage, prefix, self.retention_count)
        except StoreUnavailable as exc:
            logger.error("[%s] Retention cleanup for %s aborted: %s", exc.stage, cadence.name, exc)
            return None
        return result.as_dict()
