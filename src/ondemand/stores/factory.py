"""Backend registry for dashboard stores.

The built-in backends import lazily so a memory store never loads boto3
settings; extra backends can be added with ``register_store``.
"""

from __future__ import annotations

from typing import Any, Callable

from ondemand.stores.base import DashboardStore, StoreError

StoreConstructor = Callable[..., DashboardStore[Any]]

# backend name -> constructor
_store_registry: dict[str, StoreConstructor] = {}

_BUILTIN_BACKENDS = ["cloudwatch", "s3", "memory"]


def register_store(name: str) -> Callable[[StoreConstructor], StoreConstructor]:
    """Register a constructor under a backend name.

    Args:
        name: Name to register the store under.

    Returns:
        Decorator function.

    Example:
        >>> @register_store("grafana")
        ... class GrafanaDashboardStore(DashboardStore):
        ...     pass
    """

    def decorator(cls: StoreConstructor) -> StoreConstructor:
        _store_registry[name] = cls
        return cls

    return decorator


def get_store(backend: str, **kwargs: Any) -> DashboardStore[Any]:
    """Build a dashboard store for one tier.

    Args:
        backend: Name of the store backend to use. Options:
            - "cloudwatch": CloudWatch dashboards (hot tier)
            - "s3": S3 bucket (archive tier)
            - "memory": In-memory storage (for testing and dry runs)
        **kwargs: Backend-specific configuration options.

    Returns:
        Store for the requested tier, not yet initialized.

    Raises:
        StoreError: If the backend is unknown.

    Example:
        >>> hot = get_store("cloudwatch", region="us-east-1")
        >>> archive = get_store("s3", bucket="dashboard-archive", region="us-east-1")
    """
    backend = backend.lower().strip()

    if backend in _store_registry:
        return _store_registry[backend](**kwargs)

    if backend == "memory":
        from ondemand.stores.backends.memory import MemoryDashboardStore

        return MemoryDashboardStore(**kwargs)

    elif backend in ("cloudwatch", "cw"):
        from ondemand.stores.backends.cloudwatch import CloudWatchDashboardStore

        return CloudWatchDashboardStore(**kwargs)

    elif backend == "s3":
        from ondemand.stores.backends.s3 import S3ArchiveStore

        return S3ArchiveStore(**kwargs)

    else:
        available = list(_store_registry.keys()) + _BUILTIN_BACKENDS
        raise StoreError(
            f"Unknown store backend: {backend}. Available backends: {', '.join(available)}"
        )


def list_available_backends() -> list[str]:
    """List registered and built-in backend names."""
    return list(_store_registry.keys()) + _BUILTIN_BACKENDS
