"""PostgreSQL dump and restore using the client tools.

Backups are taken with `pg_dump --format=directory` (which allows parallel
dump workers), then packed into a single gzip tarball for upload. Restores
unpack that tarball and feed the directory to `pg_restore`.
"""

from __future__ import annotations

import gzip
import logging
import shlex
import shutil
import subprocess
import tarfile
import tempfile
from pathlib import Path
from typing import List, Optional

from backend.services.backup.errors import DumpFailed, DumpInvalid, LocalIOFailed, RestoreFailed

logger = logging.getLogger(__name__)


def format_size(num_bytes: int) -> str:
    """Return a human-readable size such as `12.3 MB`."""

    size = float(num_bytes)
    for unit in ("B", "kB", "MB", "GB", "TB"):
        if size < 1000 or unit == "TB":
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1000
    return f"{num_bytes} B"


class PgDumpService:
    """Create and restore directory-format PostgreSQL dumps."""

    def __init__(self, database_url: str, *, parallel_jobs: int = 1, extra_options: str = ""):
        """Initialize the service.

        Args:
            database_url: Connection string of the database to dump.
            parallel_jobs: Number of parallel pg_dump/pg_restore workers.
            extra_options: Additional pg_dump options, shell-quoted.
        """

        self.database_url = database_url
        self.parallel_jobs = max(int(parallel_jobs or 1), 1)
        self.extra_options = extra_options or ""

    def _jobs_args(self) -> List[str]:
        if self.parallel_jobs > 1:
            return [f"--jobs={self.parallel_jobs}"]
        return []

    def build_dump_command(self, output_dir: Path) -> List[str]:
        """Return the pg_dump argument list writing into `output_dir`."""

        return [
            "pg_dump",
            f"--dbname={self.database_url}",
            *self._jobs_args(),
            "--format=directory",
            *shlex.split(self.extra_options),
            "-f",
            str(output_dir),
        ]

    def create_backup(self, archive_path: Path) -> Path:
        """Dump the database and pack it into a gzip tarball.

        Args:
            archive_path: Where the `.tar.gz` archive is written.

        Returns:
            Path: The validated archive.

        Raises:
            DumpFailed: When pg_dump fails or cannot be started.
            DumpInvalid: When the archive is empty or not gzip-decodable.
            LocalIOFailed: When the archive cannot be written.
        """

        archive_path = Path(archive_path)
        dump_dir = archive_path.with_name(archive_path.name + ".tmp")

        logger.info("Dumping DB to file...")
        try:
            result = self._run(self.build_dump_command(dump_dir), failure=DumpFailed, action="pg_dump")
            self._archive_directory(dump_dir, archive_path)
        finally:
            shutil.rmtree(dump_dir, ignore_errors=True)

        self.validate_archive(archive_path)

        stderr = (result.stderr or "").rstrip()
        if stderr:
            logger.warning("pg_dump reported: %s", stderr)
            logger.warning(
                "Potential warnings detected; please ensure the backup file %s contains all needed data",
                archive_path.name,
            )

        logger.info("Backup archive file is valid")
        logger.info("Backup filesize: %s", format_size(archive_path.stat().st_size))
        return archive_path

    @staticmethod
    def _archive_directory(source_dir: Path, archive_path: Path) -> None:
        try:
            with tarfile.open(archive_path, "w:gz") as tar:
                tar.add(str(source_dir), arcname=".")
        except OSError as exc:
            raise LocalIOFailed(f"Failed to write archive {archive_path}: {exc}") from exc

    @staticmethod
    def validate_archive(archive_path: Path) -> None:
        """Check that an archive decompresses to at least one byte.

        Raises:
            DumpInvalid: When the archive is missing, empty or corrupt.
        """

        try:
            with gzip.open(archive_path, "rb") as f:
                first = f.read(1)
        except (OSError, EOFError) as exc:
            raise DumpInvalid(f"Backup archive file is invalid: {exc}") from exc

        if len(first) != 1:
            raise DumpInvalid("Backup archive file is invalid or empty; check for errors above")

    def restore_backup(self, archive_path: Path, database_url: Optional[str] = None) -> None:
        """Restore an archive produced by `create_backup`.

        Existing objects in the target database are dropped before they are
        recreated (`--clean --if-exists`).

        Args:
            archive_path: Local `.tar.gz` archive.
            database_url: Target connection string; defaults to the source database.

        Raises:
            RestoreFailed: When extraction or pg_restore fails.
        """

        archive_path = Path(archive_path)
        if not archive_path.exists():
            raise RestoreFailed(f"Backup file not found: {archive_path}")

        target = database_url or self.database_url
        restore_dir = Path(tempfile.mkdtemp(prefix="pg-restore-"))
        try:
            try:
                with tarfile.open(archive_path, "r:gz") as tar:
                    tar.extractall(restore_dir, filter="data")
            except (tarfile.TarError, OSError) as exc:
                raise RestoreFailed(f"Failed to extract {archive_path.name}: {exc}") from exc

            cmd = [
                "pg_restore",
                f"--dbname={target}",
                *self._jobs_args(),
                "--clean",
                "--if-exists",
                "--no-owner",
                str(restore_dir),
            ]
            logger.info("Restoring %s...", archive_path.name)
            result = self._run(cmd, failure=RestoreFailed, action="pg_restore")
            stderr = (result.stderr or "").rstrip()
            if stderr:
                logger.warning("pg_restore reported: %s", stderr)
            logger.info("Restore of %s complete", archive_path.name)
        finally:
            shutil.rmtree(restore_dir, ignore_errors=True)

    @staticmethod
    def _run(cmd: List[str], *, failure: type, action: str) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise failure(f"{action} not found - install postgresql-client") from exc

        if result.returncode != 0:
            raise failure(f"{action} failed: {(result.stderr or '').strip()}")
        return result
