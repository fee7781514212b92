"""Pytest configuration and fixtures."""

from __future__ import annotations

import gzip
import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from backend.services.backup.errors import StoreUnavailable, UploadFailed
from backend.services.backup.retention import BackupObject
from backend.services.storage.base import StorageProvider

T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeStorage(StorageProvider):
    """In-memory object store with injectable failures."""

    def __init__(self, clock=None):
        self.objects: Dict[str, BackupObject] = {}
        self.bodies: Dict[str, bytes] = {}
        self.uploads: List[dict] = []
        self.deleted: List[str] = []
        self.list_calls: List[str] = []
        self.fail_list_prefixes: Set[str] = set()
        self.fail_delete_keys: Set[str] = set()
        self.fail_upload = False
        self.clock = clock or (lambda: T0)

    def add(self, key: str, last_modified: datetime, size: int = 10) -> BackupObject:
        obj = BackupObject(key=key, last_modified=last_modified, size=size)
        self.objects[key] = obj
        return obj

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))

    def verify(self) -> None:
        return None

    def list_objects(self, *, prefix: str) -> List[BackupObject]:
        self.list_calls.append(prefix)
        if prefix in self.fail_list_prefixes:
            raise StoreUnavailable(f"listing {prefix} failed")
        return [o for k, o in self.objects.items() if k.startswith(prefix)]

    def put_object(self, *, key: str, local_path: Path, content_md5: Optional[str] = None) -> BackupObject:
        if self.fail_upload:
            raise UploadFailed(f"upload of {key} failed")
        body = Path(local_path).read_bytes()
        self.uploads.append({"key": key, "content_md5": content_md5, "size": len(body)})
        self.bodies[key] = body
        return self.add(key, self.clock(), size=len(body))

    def delete_object(self, *, key: str) -> None:
        if key in self.fail_delete_keys:
            raise StoreUnavailable(f"delete of {key} failed")
        self.objects.pop(key, None)
        self.deleted.append(key)

    def download_object(self, *, key: str, dest_path: Path) -> Path:
        if key not in self.bodies:
            raise StoreUnavailable(f"no such key: {key}")
        Path(dest_path).write_bytes(self.bodies[key])
        return Path(dest_path)


class FakeDumpService:
    """Dump producer writing a small gzip archive, or failing on demand."""

    def __init__(self):
        self.calls: List[Path] = []
        self.error: Optional[Exception] = None
        self.restores: List[tuple] = []

    def create_backup(self, archive_path: Path) -> Path:
        self.calls.append(Path(archive_path))
        if self.error is not None:
            # Leave a partial file behind to check local cleanup.
            Path(archive_path).write_bytes(b"partial")
            raise self.error
        with gzip.open(archive_path, "wb") as f:
            f.write(b"dump-data")
        return Path(archive_path)

    def restore_backup(self, archive_path: Path, database_url: Optional[str] = None) -> None:
        self.restores.append((Path(archive_path).read_bytes(), database_url))


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(clock) -> FakeStorage:
    return FakeStorage(clock=clock)


@pytest.fixture
def dump_service() -> FakeDumpService:
    return FakeDumpService()


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def settings_env(monkeypatch, tmp_path):
    """Point settings at a clean environment and reset the settings cache."""

    from config.settings import get_settings

    monkeypatch.chdir(tmp_path)
    for name in (
        "AWS_S3_BUCKET",
        "BACKUP_DATABASE_URL",
        "BACKUP_DATABASE_URL_FILE",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SECRET_ACCESS_KEY_FILE",
        "BUCKET_SUBFOLDER",
        "SINGLE_SHOT_MODE",
        "RUN_ON_STARTUP",
        "BACKUP_RETENTION_COUNT",
        "PARALLEL_JOBS",
        "RESTORE_DATABASE_URL",
        "SUPPORT_OBJECT_LOCK",
        "AWS_S3_REGION",
        "BACKUP_FILE_PREFIX",
        "LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def fresh_root():
    """Let `configure_logging` run again and restore the root logger afterwards."""

    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    if hasattr(root, "_pg_s3_backup_logging_configured"):
        del root._pg_s3_backup_logging_configured
    yield root
    for handler in list(root.handlers):
        if handler not in saved_handlers and not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)
    if hasattr(root, "_pg_s3_backup_logging_configured"):
        del root._pg_s3_backup_logging_configured
    logging.captureWarnings(False)
