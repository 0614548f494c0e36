"""Dashboard stores.

Both tiers implement the same ``DashboardStore`` contract: list, read, write
and delete dashboard bodies keyed by name.

Example:
    >>> from ondemand.stores import get_store
    >>>
    >>> hot = get_store("cloudwatch", region="us-east-1")
    >>> archive = get_store("s3", bucket="dashboard-archive", region="us-east-1")
    >>> [entry.name for entry in hot.list_entries()]
"""

from ondemand.stores.base import (
    DashboardEntry,
    DashboardStore,
    StoreConfig,
    StoreConnectionError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from ondemand.stores.factory import get_store, list_available_backends, register_store

__all__ = [
    # Base classes
    "DashboardEntry",
    "DashboardStore",
    "StoreConfig",
    # Exceptions
    "StoreError",
    "StoreConnectionError",
    "StoreReadError",
    "StoreWriteError",
    # Factory
    "get_store",
    "list_available_backends",
    "register_store",
]
