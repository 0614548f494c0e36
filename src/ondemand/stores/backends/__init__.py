"""Dashboard store backends.

Backends are imported lazily by ``ondemand.stores.factory.get_store`` so that
creating an in-memory store never touches boto3 client configuration.
"""

from ondemand.stores.backends.memory import MemoryDashboardStore

__all__ = ["MemoryDashboardStore"]
