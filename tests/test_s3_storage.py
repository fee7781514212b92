"""Tests for backend/services/storage/s3.py: boto3-backed provider."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from backend.services.backup.errors import StoreUnavailable, UploadFailed
from backend.services.storage.s3 import S3Config, S3Storage


def _client_error(operation: str, code: str = "AccessDenied") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "denied"}}, operation)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def s3(client):
    return S3Storage(S3Config(bucket="backups"), client=client)


class TestListObjects:
    def test_follows_pages(self, s3, client):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "hourly/a.tar.gz", "LastModified": datetime(2026, 1, 1, tzinfo=timezone.utc), "Size": 3}]},
            {"Contents": [{"Key": "hourly/b.tar.gz", "LastModified": datetime(2026, 1, 2), "Size": 4}]},
            {},
        ]
        client.get_paginator.return_value = paginator

        objects = s3.list_objects(prefix="hourly/")

        client.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(Bucket="backups", Prefix="hourly/")
        assert [o.key for o in objects] == ["hourly/a.tar.gz", "hourly/b.tar.gz"]
        assert objects[1].last_modified == datetime(2026, 1, 2, tzinfo=timezone.utc)
        assert objects[0].size == 3

    def test_client_error_becomes_store_unavailable(self, s3, client):
        client.get_paginator.return_value.paginate.side_effect = _client_error("ListObjectsV2")
        with pytest.raises(StoreUnavailable):
            s3.list_objects(prefix="daily/")

    def test_transport_error_becomes_store_unavailable(self, s3, client):
        client.get_paginator.return_value.paginate.side_effect = EndpointConnectionError(endpoint_url="http://minio")
        with pytest.raises(StoreUnavailable):
            s3.list_objects(prefix="daily/")


class TestPutObject:
    def test_streams_with_managed_transfer(self, s3, client, tmp_path):
        archive = tmp_path / "backup.tar.gz"
        archive.write_bytes(b"12345")

        uploaded = s3.put_object(key="hourly/backup.tar.gz", local_path=archive)

        client.upload_fileobj.assert_called_once()
        args, kwargs = client.upload_fileobj.call_args
        assert args[1:] == ("backups", "hourly/backup.tar.gz")
        assert kwargs["ExtraArgs"] == {"ContentType": "application/gzip"}
        client.put_object.assert_not_called()
        assert uploaded.key == "hourly/backup.tar.gz"
        assert uploaded.size == 5

    def test_content_md5_uses_single_put(self, s3, client, tmp_path):
        archive = tmp_path / "backup.tar.gz"
        archive.write_bytes(b"12345")

        s3.put_object(key="daily/backup.tar.gz", local_path=archive, content_md5="abc==")

        client.upload_fileobj.assert_not_called()
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "backups"
        assert kwargs["Key"] == "daily/backup.tar.gz"
        assert kwargs["ContentMD5"] == "abc=="

    def test_failure_becomes_upload_failed(self, s3, client, tmp_path):
        archive = tmp_path / "backup.tar.gz"
        archive.write_bytes(b"x")
        client.upload_fileobj.side_effect = _client_error("PutObject")

        with pytest.raises(UploadFailed):
            s3.put_object(key="k", local_path=archive)

    def test_missing_local_file_becomes_upload_failed(self, s3, tmp_path):
        with pytest.raises(UploadFailed):
            s3.put_object(key="k", local_path=tmp_path / "missing.tar.gz")


class TestDeleteAndDownload:
    def test_delete(self, s3, client):
        s3.delete_object(key="hourly/a.tar.gz")
        client.delete_object.assert_called_once_with(Bucket="backups", Key="hourly/a.tar.gz")

    def test_delete_error(self, s3, client):
        client.delete_object.side_effect = _client_error("DeleteObject")
        with pytest.raises(StoreUnavailable):
            s3.delete_object(key="hourly/a.tar.gz")

    def test_download(self, s3, client, tmp_path):
        dest = tmp_path / "sub" / "a.tar.gz"
        assert s3.download_object(key="hourly/a.tar.gz", dest_path=dest) == dest
        client.download_file.assert_called_once_with("backups", "hourly/a.tar.gz", str(dest))

    def test_verify_error(self, s3, client):
        client.head_bucket.side_effect = _client_error("HeadBucket", "404")
        with pytest.raises(StoreUnavailable):
            s3.verify()


class TestClientConstruction:
    def test_path_style_and_endpoint(self, mocker):
        boto_client = mocker.patch("backend.services.storage.s3.boto3.client")

        S3Storage(
            S3Config(
                bucket="b",
                region="eu-central-1",
                endpoint_url="http://minio:9000",
                force_path_style=True,
                access_key_id="AK",
                secret_access_key="SK",
            )
        )

        kwargs = boto_client.call_args.kwargs
        assert boto_client.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "http://minio:9000"
        assert kwargs["region_name"] == "eu-central-1"
        assert kwargs["aws_access_key_id"] == "AK"
        assert kwargs["aws_secret_access_key"] == "SK"
        assert kwargs["config"].s3 == {"addressing_style": "path"}

    def test_default_credential_chain(self, mocker):
        boto_client = mocker.patch("backend.services.storage.s3.boto3.client")

        S3Storage(S3Config(bucket="b"))

        kwargs = boto_client.call_args.kwargs
        assert kwargs["endpoint_url"] is None
        assert kwargs["aws_access_key_id"] is None
        assert kwargs["config"] is None
