"""Protocol definitions for boto3 clients.

This module defines structural typing protocols for the boto3 clients used by
the store backends, allowing type-safe code without requiring type stubs
packages and letting tests substitute in-memory clients.

These protocols define only the methods actually used by the backends.
"""

from __future__ import annotations

from typing import Any, Iterator, Protocol, runtime_checkable


# =============================================================================
# Shared
# =============================================================================


class PaginatorProtocol(Protocol):
    """Protocol for a boto3 paginator."""

    def paginate(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        """Iterate over response pages."""
        ...


class ResponseBodyProtocol(Protocol):
    """Protocol for S3 response body stream."""

    def read(self) -> bytes:
        """Read all bytes from the response body."""
        ...


# =============================================================================
# S3 Client Protocol
# =============================================================================


@runtime_checkable
class S3ClientProtocol(Protocol):
    """Protocol for boto3 S3 client.

    Defines the minimal interface used by S3ArchiveStore.
    """

    def head_bucket(self, *, Bucket: str) -> dict[str, Any]:
        """Check if a bucket exists and is accessible."""
        ...

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Retrieve an object from S3."""
        ...

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str = ...,
    ) -> dict[str, Any]:
        """Upload an object to S3."""
        ...

    def delete_objects(self, *, Bucket: str, Delete: dict[str, Any]) -> dict[str, Any]:
        """Delete a batch of object versions."""
        ...

    def get_paginator(self, operation_name: str) -> PaginatorProtocol:
        """Get a paginator (list_objects_v2, list_object_versions)."""
        ...


# =============================================================================
# CloudWatch Client Protocol
# =============================================================================


@runtime_checkable
class CloudWatchClientProtocol(Protocol):
    """Protocol for boto3 CloudWatch client.

    Defines the minimal interface used by CloudWatchDashboardStore.
    """

    def get_dashboard(self, *, DashboardName: str) -> dict[str, Any]:
        """Retrieve a dashboard definition."""
        ...

    def put_dashboard(self, *, DashboardName: str, DashboardBody: str) -> dict[str, Any]:
        """Create or replace a dashboard."""
        ...

    def delete_dashboards(self, *, DashboardNames: list[str]) -> dict[str, Any]:
        """Delete dashboards by name."""
        ...

    def get_paginator(self, operation_name: str) -> PaginatorProtocol:
        """Get a paginator (list_dashboards)."""
        ...
