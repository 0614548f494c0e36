"""In-memory store backend.

This module provides a dashboard store that keeps data in memory.
Useful for testing and dry runs. Data is not persisted between sessions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ondemand.stores.base import DashboardEntry, DashboardStore, StoreConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryConfig(StoreConfig):
    """Configuration for memory store.

    Attributes:
        versioned: Keep every written body, like a versioned bucket.
    """

    versioned: bool = False


@dataclass
class _Record:
    versions: list[str]
    last_modified: datetime

    @property
    def body(self) -> str:
        return self.versions[-1]


class MemoryDashboardStore(DashboardStore[MemoryConfig]):
    """In-memory dashboard store.

    Example:
        >>> store = MemoryDashboardStore(tier="hot")
        >>> store.put_body("Sales", "{}")
        >>> store.get_body("Sales")
        '{}'
    """

    def __init__(
        self,
        tier: str = "memory",
        versioned: bool = False,
        clock: Callable[[], datetime] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the memory store.

        Args:
            tier: Tier label used in log messages and repr.
            versioned: Keep every written body (delete removes all of them).
            clock: Source of modification timestamps.
            **kwargs: Additional configuration options.
        """
        super().__init__(MemoryConfig(versioned=versioned))
        self.tier = tier
        self._clock = clock or _utcnow
        self._records: dict[str, _Record] = {}

    @classmethod
    def _default_config(cls) -> MemoryConfig:
        """Create default configuration."""
        return MemoryConfig()

    def _do_initialize(self) -> None:
        """Initialize the store (no-op for memory store)."""
        pass

    def seed(self, name: str, body: str, last_modified: datetime | None = None) -> None:
        """Insert a dashboard with an explicit modification time."""
        self.put_body(name, body)
        if last_modified is not None:
            if last_modified.tzinfo is None:
                last_modified = last_modified.replace(tzinfo=timezone.utc)
            self._records[name].last_modified = last_modified

    def list_entries(self) -> list[DashboardEntry]:
        """List stored dashboards."""
        self.initialize()
        return [
            DashboardEntry(
                name=name,
                last_modified=record.last_modified,
                size=len(record.body.encode("utf-8")),
            )
            for name, record in self._records.items()
        ]

    def get_body(self, name: str) -> str | None:
        """Get a dashboard body."""
        self.initialize()
        record = self._records.get(name)
        return record.body if record else None

    def put_body(self, name: str, body: str) -> None:
        """Create or overwrite a dashboard body."""
        self.initialize()
        record = self._records.get(name)
        if record is None:
            self._records[name] = _Record(versions=[body], last_modified=self._clock())
            return
        if self._config.versioned:
            record.versions.append(body)
        else:
            record.versions[:] = [body]
        record.last_modified = self._clock()

    def delete(self, name: str) -> bool:
        """Delete a dashboard and all of its versions."""
        self.initialize()
        return self._records.pop(name, None) is not None

    def version_count(self, name: str) -> int:
        """Get the number of stored versions of a dashboard."""
        record = self._records.get(name)
        return len(record.versions) if record else 0

    def clear(self) -> None:
        """Remove every dashboard."""
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records
