"""AWS CloudWatch hot store backend.

This module provides the hot tier: live CloudWatch dashboards. A dashboard
present here is actively rendered (and billed).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from ondemand.stores.backends._protocols import CloudWatchClientProtocol

from ondemand.infrastructure.logging import get_logger
from ondemand.stores.base import (
    DashboardEntry,
    DashboardStore,
    StoreConfig,
    StoreReadError,
    StoreWriteError,
)

logger = get_logger(__name__)

#: Error codes CloudWatch uses for a missing dashboard.
NOT_FOUND_CODES = frozenset(
    {"ResourceNotFound", "ResourceNotFoundException", "DashboardNotFoundError"}
)


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


@dataclass
class CloudWatchConfig(StoreConfig):
    """Configuration for the CloudWatch hot store.

    Attributes:
        name_prefix: Only list dashboards whose name starts with this prefix.
    """

    name_prefix: str = ""


class CloudWatchDashboardStore(DashboardStore[CloudWatchConfig]):
    """Hot tier backed by CloudWatch dashboards.

    Example:
        >>> store = CloudWatchDashboardStore(region="us-east-1")
        >>> [entry.name for entry in store.list_entries()]
        ['Billing', 'Sales']
    """

    tier = "hot"

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: "CloudWatchClientProtocol | None" = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the CloudWatch store.

        Args:
            region: AWS region name.
            endpoint_url: Custom endpoint URL (for LocalStack).
            client: Pre-built CloudWatch client (skips boto3 client creation).
            **kwargs: Additional configuration options.
        """
        config = CloudWatchConfig(
            region=region,
            endpoint_url=endpoint_url,
            **{k: v for k, v in kwargs.items() if hasattr(CloudWatchConfig, k)},
        )
        super().__init__(config)
        self._client: CloudWatchClientProtocol | None = client

    @classmethod
    def _default_config(cls) -> CloudWatchConfig:
        """Create default configuration."""
        return CloudWatchConfig()

    def _do_initialize(self) -> None:
        """Create the CloudWatch client."""
        if self._client is not None:
            return
        client_kwargs: dict[str, Any] = {}
        if self._config.region:
            client_kwargs["region_name"] = self._config.region
        if self._config.endpoint_url:
            client_kwargs["endpoint_url"] = self._config.endpoint_url
        self._client = boto3.client("cloudwatch", **client_kwargs)

    @property
    def client(self) -> "CloudWatchClientProtocol":
        """Get the underlying CloudWatch client."""
        self.initialize()
        assert self._client is not None
        return self._client

    def list_entries(self) -> list[DashboardEntry]:
        """List live dashboards across all pages."""
        params: dict[str, Any] = {}
        if self._config.name_prefix:
            params["DashboardNamePrefix"] = self._config.name_prefix

        entries: list[DashboardEntry] = []
        try:
            paginator = self.client.get_paginator("list_dashboards")
            for page in paginator.paginate(**params):
                for item in page.get("DashboardEntries") or []:
                    entries.append(
                        DashboardEntry(
                            name=item["DashboardName"],
                            last_modified=item["LastModified"],
                            size=item.get("Size", 0),
                        )
                    )
        except ClientError as e:
            raise StoreReadError(f"Failed to list CloudWatch dashboards: {e}")
        return entries

    def get_body(self, name: str) -> str | None:
        """Get a live dashboard body."""
        try:
            response = self.client.get_dashboard(DashboardName=name)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise StoreReadError(f"Failed to read dashboard {name}: {e}")
        return response.get("DashboardBody")

    def put_body(self, name: str, body: str) -> None:
        """Create or replace a live dashboard."""
        try:
            response = self.client.put_dashboard(DashboardName=name, DashboardBody=body)
        except ClientError as e:
            raise StoreWriteError(f"Failed to write dashboard {name}: {e}")

        messages = response.get("DashboardValidationMessages") or []
        if messages:
            logger.warning(
                "Dashboard saved with validation messages",
                dashboard=name,
                messages=[m.get("Message", "") for m in messages],
            )

    def delete(self, name: str) -> bool:
        """Delete a live dashboard."""
        try:
            self.client.delete_dashboards(DashboardNames=[name])
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise StoreWriteError(f"Failed to delete dashboard {name}: {e}")
        return True
