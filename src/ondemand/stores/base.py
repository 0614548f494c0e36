"""Base classes and interfaces for dashboard stores.

This module defines the abstract store contract that both dashboard tiers
implement. The hot tier (live dashboards) and the archive tier (durable
copies) expose the same list/get/put/delete surface, keyed by dashboard name,
so the reconciliation engine can be exercised against in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar


# =============================================================================
# Exceptions
# =============================================================================


class StoreError(Exception):
    """Base exception for dashboard store failures."""

    pass


class StoreConnectionError(StoreError):
    """Raised when the tier's backend is unreachable or misconfigured."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"Failed to connect to {backend}: {message}")


class StoreWriteError(StoreError):
    """Raised when storing or deleting a dashboard fails."""

    pass


class StoreReadError(StoreError):
    """Raised when listing or reading dashboards fails."""

    pass


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class DashboardEntry:
    """A dashboard as listed by a store.

    Attributes:
        name: Dashboard name (the store key).
        last_modified: Last modification time (timezone-aware UTC).
        size: Size of the stored definition in bytes.
    """

    name: str
    last_modified: datetime
    size: int = 0

    def __post_init__(self) -> None:
        if self.last_modified.tzinfo is None:
            object.__setattr__(
                self, "last_modified", self.last_modified.replace(tzinfo=timezone.utc)
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "last_modified": self.last_modified.isoformat(),
            "size": self.size,
        }


@dataclass
class StoreConfig:
    """Base configuration for all dashboard stores.

    Attributes:
        region: Cloud region the backend lives in.
        endpoint_url: Custom endpoint URL (LocalStack, MinIO, ...).
        metadata: Additional backend-specific metadata.
    """

    region: str | None = None
    endpoint_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


ConfigT = TypeVar("ConfigT", bound=StoreConfig)


# =============================================================================
# Abstract Base Store
# =============================================================================


class DashboardStore(ABC, Generic[ConfigT]):
    """Abstract base class for dashboard stores.

    A dashboard store is an idempotent key-value store of dashboard bodies
    (JSON definitions) keyed by dashboard name. A missing entry is a normal
    outcome, never an error: ``get_body`` returns None and ``delete`` returns
    False. Transport and permission failures raise ``StoreError`` subclasses.

    Example:
        >>> class MyStore(DashboardStore[StoreConfig]):
        ...     def list_entries(self) -> list[DashboardEntry]:
        ...         ...
    """

    #: Human readable tier label used in log messages.
    tier: str = "store"

    def __init__(self, config: ConfigT | None = None) -> None:
        """Initialize the store with optional configuration.

        Args:
            config: Tier configuration, or the backend default.
        """
        self._config = config or self._default_config()
        self._initialized = False

    @classmethod
    @abstractmethod
    def _default_config(cls) -> ConfigT:
        """Configuration used when none is passed."""
        pass

    @property
    def config(self) -> ConfigT:
        """The tier's configuration."""
        return self._config

    # -------------------------------------------------------------------------
    # Lifecycle Methods
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """Initialize the store (create clients, check connectivity, etc.).

        Called lazily by the first store operation. Call it directly to fail
        fast on a missing bucket or bad credentials.
        """
        if not self._initialized:
            self._do_initialize()
            self._initialized = True

    @abstractmethod
    def _do_initialize(self) -> None:
        """Create clients and check the backend. Override in subclasses."""
        pass

    def close(self) -> None:
        """Close any open connections or resources."""
        pass

    def __enter__(self) -> "DashboardStore[ConfigT]":
        """Initialize on entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Release the client on exit."""
        self.close()

    # -------------------------------------------------------------------------
    # Entry Operations
    # -------------------------------------------------------------------------

    @abstractmethod
    def list_entries(self) -> list[DashboardEntry]:
        """List every dashboard in the store.

        Implementations must follow pagination to the end so callers always
        see the full inventory.

        Raises:
            StoreReadError: If listing fails.
        """
        pass

    @abstractmethod
    def get_body(self, name: str) -> str | None:
        """Get a dashboard body.

        Args:
            name: Dashboard name.

        Returns:
            The dashboard body, or None if the dashboard doesn't exist.

        Raises:
            StoreReadError: If reading fails for any other reason.
        """
        pass

    @abstractmethod
    def put_body(self, name: str, body: str) -> None:
        """Create or overwrite a dashboard body.

        Args:
            name: Dashboard name.
            body: Dashboard body.

        Raises:
            StoreWriteError: If writing fails.
        """
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Delete a dashboard.

        Args:
            name: Dashboard name.

        Returns:
            True if something was deleted, False if it didn't exist.

        Raises:
            StoreWriteError: If deletion fails.
        """
        pass

    def exists(self, name: str) -> bool:
        """Check if a dashboard exists."""
        return self.get_body(name) is not None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(tier={self.tier!r})"
