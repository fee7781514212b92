"""Tests for backend/services/backup/executor.py: a single backup cycle."""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import T0

from backend.services.backup.cadence import get_cadence
from backend.services.backup.errors import DumpFailed, DumpInvalid, UploadFailed
from backend.services.backup.executor import BackupExecutor

HOURLY = get_cadence("hourly")


def _executor(storage, dump_service, work_dir, **kwargs) -> BackupExecutor:
    options = {"file_prefix": "backup", "subfolder": "prod", "retention_count": 2}
    options.update(kwargs)
    return BackupExecutor(storage=storage, dump_service=dump_service, work_dir=work_dir, **options)


@pytest.mark.asyncio
async def test_cycle_uploads_under_cadence_prefix(storage, dump_service, work_dir):
    executor = _executor(storage, dump_service, work_dir)

    summary = await executor.run_cycle(HOURLY, T0)

    expected_key = "prod/hourly/backup-2026-10-19T12-00-00-000Z.tar.gz"
    assert summary["cadence"] == "hourly"
    assert summary["key"] == expected_key
    assert storage.uploads[0]["key"] == expected_key
    assert storage.uploads[0]["content_md5"] is None
    assert dump_service.calls == [work_dir / "backup-2026-10-19T12-00-00-000Z.tar.gz"]


@pytest.mark.asyncio
async def test_local_archive_removed_after_success(storage, dump_service, work_dir):
    executor = _executor(storage, dump_service, work_dir)
    await executor.run_cycle(HOURLY, T0)
    assert list(work_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_object_lock_sends_base64_md5(storage, dump_service, work_dir):
    executor = _executor(storage, dump_service, work_dir, support_object_lock=True)

    summary = await executor.run_cycle(HOURLY, T0)

    body = storage.bodies[summary["key"]]
    expected = base64.b64encode(hashlib.md5(body).digest()).decode("ascii")
    assert storage.uploads[0]["content_md5"] == expected


@pytest.mark.asyncio
async def test_cycle_prunes_cadence_prefix(storage, dump_service, work_dir):
    for i in range(1, 4):
        storage.add(f"prod/hourly/old-{i}.tar.gz", T0 - timedelta(hours=i))
    storage.add("prod/daily/keep.tar.gz", T0 - timedelta(days=9))
    executor = _executor(storage, dump_service, work_dir)

    summary = await executor.run_cycle(HOURLY, T0)

    assert summary["retention"]["existing"] == 4
    assert sorted(summary["retention"]["deleted"]) == ["prod/hourly/old-2.tar.gz", "prod/hourly/old-3.tar.gz"]
    assert storage.keys("prod/hourly/") == sorted([summary["key"], "prod/hourly/old-1.tar.gz"])
    assert "prod/daily/keep.tar.gz" in storage.objects


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [DumpFailed("pg_dump failed: boom"), DumpInvalid("empty archive")])
async def test_dump_failure_propagates_without_upload(storage, dump_service, work_dir, error):
    dump_service.error = error
    executor = _executor(storage, dump_service, work_dir)

    with pytest.raises(type(error)):
        await executor.run_cycle(HOURLY, T0)

    assert storage.uploads == []
    assert storage.list_calls == []
    assert list(work_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_upload_failure_propagates_and_removes_local_file(storage, dump_service, work_dir):
    storage.fail_upload = True
    executor = _executor(storage, dump_service, work_dir)

    with pytest.raises(UploadFailed):
        await executor.run_cycle(HOURLY, T0)

    assert list(work_dir.iterdir()) == []
    assert storage.list_calls == []


@pytest.mark.asyncio
async def test_cleanup_listing_failure_does_not_fail_cycle(storage, dump_service, work_dir, caplog):
    storage.fail_list_prefixes.add("prod/hourly/")
    executor = _executor(storage, dump_service, work_dir)

    with caplog.at_level(logging.ERROR):
        summary = await executor.run_cycle(HOURLY, T0)

    assert summary["retention"] is None
    assert summary["key"] in storage.objects
    assert "Retention cleanup for hourly aborted" in caplog.text


@pytest.mark.asyncio
async def test_local_delete_failure_is_logged_not_raised(storage, dump_service, work_dir, monkeypatch, caplog):
    def _refuse(self, *args, **kwargs):
        raise PermissionError("read-only")

    monkeypatch.setattr(Path, "unlink", _refuse)
    executor = _executor(storage, dump_service, work_dir)

    with caplog.at_level(logging.WARNING):
        summary = await executor.run_cycle(HOURLY, T0)

    assert summary["key"] in storage.objects
    assert "Failed to delete local archive" in caplog.text
