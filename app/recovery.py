#!/usr/bin/env python3
"""Recovery CLI for backups stored in the bucket.

Usage:
    python recovery.py list [--cadence hourly] [--limit 10]
    python recovery.py restore <key> [--database-url URL]
"""

import argparse
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError

from config.logging_config import configure_logging_or_default, get_logger
from config.settings import Settings, get_settings
from backend.services.backup.cadence import CADENCES, cadence_prefix, get_cadence
from backend.services.backup.errors import BackupError
from backend.services.backup.retention import newest_first
from backend.services.postgres.dump_service import PgDumpService, format_size
from backend.services.storage.base import StorageProvider
from backend.services.storage.factory import build_storage_provider

logger = get_logger(__name__)


def list_backups(
    storage: StorageProvider,
    *,
    subfolder: str = "",
    cadence_name: Optional[str] = None,
    limit: int = 10,
) -> List[str]:
    """Render the stored backups, newest first, grouped by cadence.

    Args:
        storage: Store to list.
        subfolder: Optional bucket subfolder.
        cadence_name: Only list this cadence.
        limit: Maximum entries shown per cadence (0 = all).

    Returns:
        List[str]: Output lines.

    Raises:
        StoreUnavailable: When a listing fails.
        ValueError: When the cadence name is unknown.
    """

    cadences = [get_cadence(cadence_name)] if cadence_name else list(CADENCES)
    lines: List[str] = []

    for cadence in cadences:
        prefix = cadence_prefix(subfolder, cadence)
        objects = newest_first(storage.list_objects(prefix=prefix))
        lines.append(f"{cadence.name} backups ({prefix}):")

        if not objects:
            lines.append("  (none)")
            continue

        shown = objects[:limit] if limit > 0 else objects
        for obj in shown:
            stamp = obj.last_modified.strftime("%Y-%m-%d %H:%M:%S UTC")
            lines.append(f"  - {obj.key} ({format_size(obj.size or 0)}, {stamp})")
        if len(objects) > len(shown):
            lines.append(f"  ... and {len(objects) - len(shown)} more")

    return lines


def restore_backup(
    storage: StorageProvider,
    dump_service: PgDumpService,
    *,
    key: str,
    database_url: str,
) -> None:
    """Download a backup and restore it into `database_url`.

    Args:
        storage: Store holding the backup.
        dump_service: Service running pg_restore.
        key: Object key of the backup.
        database_url: Target connection string.

    Raises:
        StoreUnavailable: When the download fails.
        RestoreFailed: When the restore fails.
    """

    with tempfile.TemporaryDirectory(prefix="pg-s3-restore-") as tmp:
        local_path = Path(tmp) / key.rsplit("/", 1)[-1]
        logger.info("Downloading %s...", key)
        storage.download_object(key=key, dest_path=local_path)
        dump_service.restore_backup(local_path, database_url)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="List and restore PostgreSQL backups stored in S3")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List stored backups")
    list_cmd.add_argument("--cadence", choices=[c.name for c in CADENCES], help="Only list one cadence")
    list_cmd.add_argument("--limit", type=int, default=10, help="Entries per cadence, 0 for all (default: 10)")

    restore_cmd = sub.add_parser("restore", help="Restore a backup into a database")
    restore_cmd.add_argument("key", help="Object key of the backup to restore")
    restore_cmd.add_argument(
        "--database-url",
        default="",
        help="Target database (default: RESTORE_DATABASE_URL, then BACKUP_DATABASE_URL)",
    )
    return parser


def run_command(args: argparse.Namespace, settings: Settings, storage: StorageProvider) -> int:
    """Execute a parsed command.

    Returns:
        int: Exit code.
    """

    try:
        storage.verify()
        if args.command == "list":
            for line in list_backups(
                storage,
                subfolder=settings.bucket_subfolder,
                cadence_name=args.cadence,
                limit=args.limit,
            ):
                print(line)
            return 0

        database_url = args.database_url or settings.get_restore_database_url()
        if not database_url:
            logger.error("No target database configured (RESTORE_DATABASE_URL or --database-url)")
            return 1

        dump_service = PgDumpService(database_url, parallel_jobs=settings.PARALLEL_JOBS)
        restore_backup(storage, dump_service, key=args.key, database_url=database_url)
        return 0
    except BackupError as exc:
        logger.error("%s failed (stage=%s): %s", args.command, exc.stage, exc)
        return 1


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point."""

    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging_or_default()
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging_or_default(
        log_dir=settings.LOG_DIR,
        log_level=settings.LOG_LEVEL,
        debug=settings.DEBUG,
        log_filename=settings.LOG_FILENAME,
    )

    if not settings.AWS_S3_BUCKET:
        logger.error("AWS_S3_BUCKET is not configured")
        sys.exit(1)

    sys.exit(run_command(args, settings, build_storage_provider(settings)))


if __name__ == "__main__":
    main()
