"""Shared fixtures for store and tiering tests."""

from __future__ import annotations

import pytest

from ondemand.stores.backends.memory import MemoryDashboardStore
from tests.mocks.cloud_mocks import MockClock


@pytest.fixture
def clock() -> MockClock:
    """Manually advanced clock starting at 2024-01-01T00:00:00Z."""
    return MockClock()


@pytest.fixture
def hot(clock: MockClock) -> MemoryDashboardStore:
    """In-memory hot tier."""
    return MemoryDashboardStore(tier="hot", clock=clock)


@pytest.fixture
def archive(clock: MockClock) -> MemoryDashboardStore:
    """In-memory, versioned archive tier."""
    return MemoryDashboardStore(tier="archive", versioned=True, clock=clock)
