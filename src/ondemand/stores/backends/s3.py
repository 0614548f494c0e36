"""AWS S3 archive store backend.

This module provides the archive tier: dashboard bodies are kept as JSON
objects in an S3 bucket, one prefix per dashboard. Deleting a dashboard
removes every object version under its prefix so that versioned buckets
actually free the storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from ondemand.stores.backends._protocols import S3ClientProtocol

from ondemand.infrastructure.logging import get_logger
from ondemand.stores.base import (
    DashboardEntry,
    DashboardStore,
    StoreConfig,
    StoreConnectionError,
    StoreReadError,
    StoreWriteError,
)

logger = get_logger(__name__)

#: Error codes that mean "the object is not there".
NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

#: DeleteObjects accepts at most this many keys per request.
MAX_DELETE_BATCH = 1000


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


@dataclass
class S3Config(StoreConfig):
    """Configuration for the S3 archive store.

    Attributes:
        bucket: S3 bucket name.
        body_filename: Object name holding the dashboard body under each
            dashboard prefix.
        content_type: Content type of stored bodies.
        check_bucket: Whether to verify the bucket on initialization.
    """

    bucket: str = ""
    body_filename: str = "DashboardBody.json"
    content_type: str = "application/json"
    check_bucket: bool = False

    def key_for(self, name: str) -> str:
        """Get the object key holding a dashboard body."""
        return f"{name}/{self.body_filename}"

    def prefix_for(self, name: str) -> str:
        """Get the key prefix owning every object of a dashboard."""
        return f"{name}/"


class S3ArchiveStore(DashboardStore[S3Config]):
    """Archive tier backed by an S3 bucket.

    Example:
        >>> store = S3ArchiveStore(bucket="my-dashboard-archive", region="us-east-1")
        >>> store.put_body("Sales", '{"widgets": []}')
        >>> store.get_body("Sales")
        '{"widgets": []}'
    """

    tier = "archive"

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: "S3ClientProtocol | None" = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the S3 archive store.

        Args:
            bucket: S3 bucket name.
            region: AWS region name.
            endpoint_url: Custom endpoint URL (for LocalStack, MinIO, etc.).
            client: Pre-built S3 client (skips boto3 client creation).
            **kwargs: Additional configuration options.
        """
        if not bucket:
            raise ValueError("bucket is required for S3ArchiveStore")
        config = S3Config(
            bucket=bucket,
            region=region,
            endpoint_url=endpoint_url,
            **{k: v for k, v in kwargs.items() if hasattr(S3Config, k)},
        )
        super().__init__(config)
        self._client: S3ClientProtocol | None = client

    @classmethod
    def _default_config(cls) -> S3Config:
        """Create default configuration."""
        return S3Config()

    def _do_initialize(self) -> None:
        """Create the S3 client and optionally check the bucket."""
        if self._client is None:
            client_kwargs: dict[str, Any] = {}
            if self._config.region:
                client_kwargs["region_name"] = self._config.region
            if self._config.endpoint_url:
                client_kwargs["endpoint_url"] = self._config.endpoint_url
            self._client = boto3.client("s3", **client_kwargs)

        if not self._config.check_bucket:
            return

        try:
            self._client.head_bucket(Bucket=self._config.bucket)
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in ("404", "NoSuchBucket"):
                raise StoreConnectionError("S3", f"Bucket not found: {self._config.bucket}")
            elif error_code in ("403", "AccessDenied"):
                raise StoreConnectionError("S3", f"Access denied to bucket: {self._config.bucket}")
            else:
                raise StoreConnectionError("S3", str(e))

    @property
    def client(self) -> "S3ClientProtocol":
        """Get the underlying S3 client."""
        self.initialize()
        assert self._client is not None
        return self._client

    def list_entries(self) -> list[DashboardEntry]:
        """List archived dashboards.

        Only body objects count; any other object under a dashboard prefix
        is ignored.
        """
        suffix = "/" + self._config.body_filename
        entries: list[DashboardEntry] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._config.bucket):
                for obj in page.get("Contents") or []:
                    key = obj["Key"]
                    if not key.endswith(suffix):
                        continue
                    entries.append(
                        DashboardEntry(
                            name=key.split("/")[0],
                            last_modified=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
        except ClientError as e:
            raise StoreReadError(f"Failed to list S3 bucket {self._config.bucket}: {e}")
        return entries

    def get_body(self, name: str) -> str | None:
        """Get an archived dashboard body."""
        try:
            response = self.client.get_object(
                Bucket=self._config.bucket,
                Key=self._config.key_for(name),
            )
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise StoreReadError(f"Failed to read {name} from S3: {e}")

        body = response.get("Body")
        if body is None:
            return None
        return body.read().decode("utf-8")

    def put_body(self, name: str, body: str) -> None:
        """Archive a dashboard body, overwriting any current version."""
        try:
            self.client.put_object(
                Bucket=self._config.bucket,
                Key=self._config.key_for(name),
                Body=body.encode("utf-8"),
                ContentType=self._config.content_type,
            )
        except ClientError as e:
            raise StoreWriteError(f"Failed to write {name} to S3: {e}")
        logger.debug("Archived dashboard body", dashboard=name, bucket=self._config.bucket)

    def delete(self, name: str) -> bool:
        """Delete every version of an archived dashboard.

        Returns:
            True if any object version or delete marker was removed.
        """
        targets = self._list_versions(name)
        if not targets:
            return False

        for start in range(0, len(targets), MAX_DELETE_BATCH):
            batch = targets[start : start + MAX_DELETE_BATCH]
            try:
                response = self.client.delete_objects(
                    Bucket=self._config.bucket,
                    Delete={"Objects": batch, "Quiet": True},
                )
            except ClientError as e:
                raise StoreWriteError(f"Failed to delete {name} from S3: {e}")
            errors = response.get("Errors") or []
            if errors:
                raise StoreWriteError(
                    f"Failed to delete {len(errors)} object version(s) of {name}: "
                    f"{errors[0].get('Message', errors[0].get('Code', 'unknown'))}"
                )

        logger.debug(
            "Deleted archived dashboard",
            dashboard=name,
            versions=len(targets),
        )
        return True

    def _list_versions(self, name: str) -> list[dict[str, str]]:
        """Collect every object version and delete marker under a prefix."""
        prefix = self._config.prefix_for(name)
        targets: list[dict[str, str]] = []
        try:
            paginator = self.client.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=self._config.bucket, Prefix=prefix):
                for version in (page.get("Versions") or []) + (page.get("DeleteMarkers") or []):
                    target = {"Key": version["Key"]}
                    if version.get("VersionId"):
                        target["VersionId"] = version["VersionId"]
                    targets.append(target)
        except ClientError as e:
            raise StoreReadError(f"Failed to list versions of {name} in S3: {e}")
        return targets
