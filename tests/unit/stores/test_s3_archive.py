"""Unit tests for the S3 archive store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from ondemand.infrastructure.logging import MemoryHandler
from ondemand.stores.backends.s3 import MAX_DELETE_BATCH, S3ArchiveStore, S3Config
from ondemand.stores.base import StoreConnectionError, StoreReadError, StoreWriteError
from tests.mocks.cloud_mocks import MockClock, MockS3Client, client_error, create_mock_s3_client

BUCKET = "dashboard-archive"


@pytest.fixture
def s3_client(clock: MockClock) -> MockS3Client:
    return create_mock_s3_client(with_bucket=BUCKET, clock=clock)


@pytest.fixture
def store(s3_client: MockS3Client) -> S3ArchiveStore:
    return S3ArchiveStore(bucket=BUCKET, client=s3_client)


class TestS3Config:
    """Tests for S3Config."""

    def test_key_layout(self) -> None:
        """Test that each dashboard owns a prefix holding its body."""
        config = S3Config(bucket=BUCKET)

        assert config.key_for("Sales") == "Sales/DashboardBody.json"
        assert config.prefix_for("Sales") == "Sales/"

    def test_bucket_required(self) -> None:
        """Test that an empty bucket name is rejected."""
        with pytest.raises(ValueError):
            S3ArchiveStore(bucket="")

    def test_unknown_kwargs_ignored(self) -> None:
        """Test that only known config fields are taken from kwargs."""
        store = S3ArchiveStore(bucket=BUCKET, body_filename="body.json", colour="blue")

        assert store.config.body_filename == "body.json"
        assert store.tier == "archive"


class TestS3ArchiveStore:
    """Tests for S3ArchiveStore operations."""

    def test_put_and_get(self, store: S3ArchiveStore, s3_client: MockS3Client) -> None:
        """Test archiving and reading back a body."""
        store.put_body("Sales", '{"widgets": []}')

        assert store.get_body("Sales") == '{"widgets": []}'
        assert "put_object" in s3_client.calls

    def test_get_missing_returns_none(self, store: S3ArchiveStore) -> None:
        """Test that a missing body is not an error."""
        assert store.get_body("ghost") is None
        assert not store.exists("ghost")

    def test_get_failure_raises(self, store: S3ArchiveStore, s3_client: MockS3Client) -> None:
        """Test that other client errors surface as read errors."""
        s3_client.fail_on["get_object"] = client_error("AccessDenied", "GetObject")

        with pytest.raises(StoreReadError):
            store.get_body("Sales")

    def test_list_only_body_objects(
        self, store: S3ArchiveStore, s3_client: MockS3Client, clock: MockClock
    ) -> None:
        """Test that listing ignores objects other than dashboard bodies."""
        store.put_body("Sales", "{}")
        clock.advance(timedelta(minutes=5))
        store.put_body("Billing", '{"a": 1}')
        s3_client.put_object(Bucket=BUCKET, Key="Sales/notes.txt", Body=b"x")
        s3_client.put_object(Bucket=BUCKET, Key="README", Body=b"x")

        entries = {e.name: e for e in store.list_entries()}

        assert set(entries) == {"Sales", "Billing"}
        assert entries["Billing"].last_modified == clock()
        assert entries["Billing"].size == len('{"a": 1}')

    def test_list_paginates(self, clock: MockClock) -> None:
        """Test that every page of a large bucket is read."""
        client = create_mock_s3_client(with_bucket=BUCKET, clock=clock, page_size=2)
        store = S3ArchiveStore(bucket=BUCKET, client=client)
        for i in range(5):
            store.put_body(f"dash{i}", "{}")

        assert len(store.list_entries()) == 5

    def test_list_empty_bucket(self, store: S3ArchiveStore) -> None:
        """Test listing an empty bucket."""
        assert store.list_entries() == []

    def test_list_failure_raises(self, store: S3ArchiveStore, s3_client: MockS3Client) -> None:
        """Test that a listing error surfaces as a read error."""
        s3_client.fail_on["list_objects_v2"] = client_error("AccessDenied", "ListObjectsV2")

        with pytest.raises(StoreReadError, match=BUCKET):
            store.list_entries()

    def test_put_failure_raises(self, store: S3ArchiveStore, s3_client: MockS3Client) -> None:
        """Test that a rejected write surfaces as a write error."""
        s3_client.fail_on["put_object"] = client_error("AccessDenied", "PutObject")

        with pytest.raises(StoreWriteError):
            store.put_body("Sales", "{}")


class TestS3Delete:
    """Tests for deleting every version of a dashboard."""

    def test_delete_removes_all_versions(
        self, store: S3ArchiveStore, s3_client: MockS3Client
    ) -> None:
        """Test that versions and delete markers under the prefix are purged."""
        store.put_body("Sales", "{}")
        store.put_body("Sales", '{"v": 2}')
        s3_client.put_object(Bucket=BUCKET, Key="Sales/notes.txt", Body=b"x")
        s3_client.add_delete_marker(BUCKET, "Sales/notes.txt")
        store.put_body("Billing", "{}")

        assert store.delete("Sales") is True

        assert store.get_body("Sales") is None
        assert store.get_body("Billing") == "{}"
        assert s3_client.object_count(BUCKET) == 1

    def test_delete_prefix_does_not_touch_similar_names(
        self, store: S3ArchiveStore, s3_client: MockS3Client
    ) -> None:
        """Test that deleting "Sales" keeps "Sales2"."""
        store.put_body("Sales", "{}")
        store.put_body("Sales2", "{}")

        store.delete("Sales")

        assert store.get_body("Sales2") == "{}"

    def test_delete_missing_returns_false(
        self, store: S3ArchiveStore, s3_client: MockS3Client
    ) -> None:
        """Test that deleting a missing dashboard makes no delete request."""
        assert store.delete("ghost") is False
        assert "delete_objects" not in s3_client.calls

    def test_delete_in_batches(self, clock: MockClock) -> None:
        """Test that large version sets are deleted in bounded batches."""
        client = create_mock_s3_client(with_bucket=BUCKET, clock=clock)
        store = S3ArchiveStore(bucket=BUCKET, client=client)
        for _ in range(MAX_DELETE_BATCH + 5):
            store.put_body("Sales", "{}")

        assert store.delete("Sales") is True

        assert client.delete_batches == [MAX_DELETE_BATCH, 5]
        assert client.object_count(BUCKET) == 0

    def test_partial_delete_errors_raise(
        self, store: S3ArchiveStore, s3_client: MockS3Client
    ) -> None:
        """Test that per-key errors in the response fail the delete."""
        store.put_body("Sales", "{}")
        s3_client.delete_errors = [
            {"Key": "Sales/DashboardBody.json", "Code": "AccessDenied", "Message": "denied"}
        ]

        with pytest.raises(StoreWriteError, match="denied"):
            store.delete("Sales")

    def test_version_listing_failure(
        self, store: S3ArchiveStore, s3_client: MockS3Client
    ) -> None:
        """Test that a version listing error surfaces as a read error."""
        s3_client.fail_on["list_object_versions"] = client_error(
            "AccessDenied", "ListObjectVersions"
        )

        with pytest.raises(StoreReadError):
            store.delete("Sales")

    def test_delete_logged(
        self, store: S3ArchiveStore, log_capture: MemoryHandler
    ) -> None:
        """Test that a delete reports the number of removed versions."""
        store.put_body("Sales", "{}")
        store.put_body("Sales", "{}")

        store.delete("Sales")

        (record,) = [r for r in log_capture.records if r.message == "Deleted archived dashboard"]
        assert record.fields["versions"] == 2
        assert record.fields["dashboard"] == "Sales"


class TestS3BucketCheck:
    """Tests for the optional bucket check at initialization."""

    def test_missing_bucket(self, clock: MockClock) -> None:
        """Test that a missing bucket is a connection error."""
        store = S3ArchiveStore(
            bucket="nope", client=create_mock_s3_client(clock=clock), check_bucket=True
        )

        with pytest.raises(StoreConnectionError, match="Bucket not found"):
            store.initialize()

    def test_access_denied(self, s3_client: MockS3Client) -> None:
        """Test that a forbidden bucket is a connection error."""
        s3_client.fail_on["head_bucket"] = client_error("403", "HeadBucket")
        store = S3ArchiveStore(bucket=BUCKET, client=s3_client, check_bucket=True)

        with pytest.raises(StoreConnectionError, match="Access denied"):
            store.initialize()

    def test_check_skipped_by_default(self, s3_client: MockS3Client) -> None:
        """Test that the bucket is not probed unless asked."""
        S3ArchiveStore(bucket=BUCKET, client=s3_client).initialize()

        assert "head_bucket" not in s3_client.calls
