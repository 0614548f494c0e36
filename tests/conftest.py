"""Shared fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from ondemand.infrastructure.logging import (
    LogContext,
    MemoryHandler,
    configure_logging,
    reset_logging,
)


@pytest.fixture
def log_capture() -> Iterator[MemoryHandler]:
    """Route every logger into an in-memory handler for the test."""
    handler = MemoryHandler()
    configure_logging(level="trace", handlers=[handler])
    yield handler
    reset_logging()


@pytest.fixture(autouse=True)
def _clean_log_context() -> Iterator[None]:
    LogContext.clear()
    yield
    LogContext.clear()
