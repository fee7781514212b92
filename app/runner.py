#!/usr/bin/env python3
"""Backup runner service.

Runs scheduled PostgreSQL backups to an S3-compatible bucket. Three modes:
1. Scheduler (default): seed due-times from the bucket, then tick every minute
2. Run on startup: take one backup immediately, then start the scheduler
3. Single shot: take one backup and exit (0 on success, 1 on failure)

Usage:
    python runner.py [--once] [--run-on-startup]
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from config.logging_config import configure_logging_or_default, get_logger
from config.settings import Settings, get_settings
from backend.services.backup.cadence import MANUAL_CADENCE
from backend.services.backup.due_tracker import DueTimeTracker
from backend.services.backup.errors import BackupError
from backend.services.backup.executor import BackupExecutor
from backend.services.backup.scheduler import BackupScheduler
from backend.services.postgres.dump_service import PgDumpService
from backend.services.storage.base import StorageProvider
from backend.services.storage.factory import build_storage_provider

logger = get_logger(__name__)


def build_executor(settings: Settings, storage: StorageProvider) -> BackupExecutor:
    """Wire the dump service and storage into an executor.

    Args:
        settings: Loaded settings.
        storage: Destination store.

    Returns:
        BackupExecutor: Ready-to-use executor.
    """

    dump_service = PgDumpService(
        settings.get_database_url(),
        parallel_jobs=settings.PARALLEL_JOBS,
        extra_options=settings.BACKUP_OPTIONS,
    )
    return BackupExecutor(
        storage=storage,
        dump_service=dump_service,
        file_prefix=settings.BACKUP_FILE_PREFIX,
        subfolder=settings.bucket_subfolder,
        retention_count=settings.BACKUP_RETENTION_COUNT,
        support_object_lock=settings.SUPPORT_OBJECT_LOCK,
    )


async def run_single_cycle(executor: BackupExecutor) -> bool:
    """Run one immediate backup filed under the finest cadence.

    Args:
        executor: Backup executor.

    Returns:
        bool: True when the backup succeeded.
    """

    try:
        await executor.run_cycle(MANUAL_CADENCE)
    except BackupError as exc:
        logger.error("Error while running backup (stage=%s): %s", exc.stage, exc)
        return False
    return True


async def run(
    settings: Settings,
    *,
    storage: Optional[StorageProvider] = None,
    once: bool = False,
    run_on_startup: bool = False,
) -> int:
    """Run the service until it exits.

    Args:
        settings: Loaded settings.
        storage: Optional pre-built store (defaults to the configured bucket).
        once: Single-shot mode: one backup, then exit.
        run_on_startup: Take one backup before entering the scheduler.

    Returns:
        int: Process exit code.
    """

    try:
        storage = storage or build_storage_provider(settings)
        executor = build_executor(settings, storage)

        if run_on_startup or once:
            logger.info("Running on start backup...")
            if not await run_single_cycle(executor):
                return 1
            if once:
                logger.info("Database backup complete, exiting...")
                return 0

        scheduler = BackupScheduler(
            tracker=DueTimeTracker(),
            executor=executor,
            storage=storage,
            subfolder=settings.bucket_subfolder,
        )
        await scheduler.seed()
        await scheduler.run_forever()
    except Exception:
        logger.exception("Application failed")
        return 1

    return 0


def _handle_termination(signum, frame) -> None:
    """Exit immediately with code 0; in-flight work is not drained."""

    logger.info("Received %s signal. Shutting down gracefully...", signal.Signals(signum).name)
    logging.shutdown()
    os._exit(0)


def install_signal_handlers() -> None:
    """Install SIGTERM/SIGINT handlers."""

    signal.signal(signal.SIGTERM, _handle_termination)
    signal.signal(signal.SIGINT, _handle_termination)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point."""

    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging_or_default()
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    parser = argparse.ArgumentParser(description="Scheduled PostgreSQL backups to S3")
    parser.add_argument(
        "--once",
        action="store_true",
        default=settings.SINGLE_SHOT_MODE,
        help="Run a single backup and exit (SINGLE_SHOT_MODE)",
    )
    parser.add_argument(
        "--run-on-startup",
        action="store_true",
        default=settings.RUN_ON_STARTUP,
        help="Run a backup immediately before starting the scheduler (RUN_ON_STARTUP)",
    )
    args = parser.parse_args(argv)

    configure_logging_or_default(
        log_dir=settings.LOG_DIR,
        log_level=settings.LOG_LEVEL,
        debug=settings.DEBUG,
        log_filename=settings.LOG_FILENAME,
    )

    missing = settings.missing_required()
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))
        sys.exit(1)

    install_signal_handlers()
    logger.info(
        "Backup runner started (bucket=%s, subfolder=%s, retention=%s, parallel_jobs=%s)",
        settings.AWS_S3_BUCKET,
        settings.bucket_subfolder or "-",
        settings.BACKUP_RETENTION_COUNT,
        settings.PARALLEL_JOBS,
    )

    sys.exit(asyncio.run(run(settings, once=args.once, run_on_startup=args.run_on_startup)))


if __name__ == "__main__":
    main()
