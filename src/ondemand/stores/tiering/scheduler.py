"""Scheduler for periodic reconciliation passes.

This module provides a scheduler that runs the ``ScheduledJob`` pass of a
``DashboardManager`` on a fixed interval in a background thread. Each pass
runs on its own event loop, and passes never overlap.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ondemand.infrastructure.logging import get_logger, log_context
from ondemand.stores.tiering.base import Action, ReconciliationError
from ondemand.stores.tiering.manager import DashboardManager

logger = get_logger(__name__)

#: Seconds to wait after a failed pass before the loop resumes.
ERROR_BACKOFF_SECONDS = 60


@dataclass
class ReconciliationRun:
    """Outcome of one scheduled pass.

    Attributes:
        started_at: When the pass started.
        finished_at: When the pass finished.
        changed: Whether any action fired.
        errors: Error messages keyed by dashboard name ("*" for a pass-level
            failure such as a listing error).
    """

    started_at: datetime
    finished_at: datetime
    changed: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "changed": self.changed,
            "errors": dict(self.errors),
        }


class ReconciliationScheduler:
    """Runs reconciliation passes on a schedule.

    Example:
        >>> scheduler = ReconciliationScheduler(manager, interval=timedelta(hours=1))
        >>> scheduler.start()
        >>>
        >>> # ... application runs ...
        >>>
        >>> scheduler.stop()
    """

    def __init__(
        self,
        manager: DashboardManager,
        interval: timedelta = timedelta(hours=1),
        on_run: Callable[[ReconciliationRun], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        """Create a scheduler for ``manager``.

        Args:
            manager: Manager whose pass is run.
            interval: Time between the starts of two passes.
            on_run: Callback after every pass.
            on_error: Callback when a pass fails.
        """
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self._manager = manager
        self._interval = interval
        self._on_run = on_run
        self._on_error = on_error

        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._run_lock = threading.Lock()
        self._last_run: datetime | None = None
        self._run_count = 0
        self._error_count = 0
        self._change_count = 0

    def start(self) -> None:
        """Start the scheduler.

        The first pass runs immediately, then once per interval.
        """
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="reconciliation-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(
            "Reconciliation scheduler started",
            interval_seconds=self._interval.total_seconds(),
        )

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the scheduler.

        Args:
            timeout: Maximum seconds to wait for the thread to stop.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

        logger.info("Reconciliation scheduler stopped")

    def run_now(self) -> ReconciliationRun:
        """Run one pass immediately in the calling thread."""
        return self._run_pass()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the scheduler is stopped.

        Returns:
            True if the scheduler stopped, False on timeout.
        """
        return self._stop_event.wait(timeout)

    def _run_loop(self) -> None:
        """Run passes on the interval until stopped."""
        while self._running and not self._stop_event.is_set():
            try:
                if self._should_run():
                    self._run_pass()

                # short waits keep stop() responsive
                for _ in range(60):
                    if self._stop_event.is_set() or self._should_run():
                        break
                    time.sleep(1)

            except Exception as e:
                self._error_count += 1
                logger.exception("Reconciliation scheduler error", e)
                self._stop_event.wait(ERROR_BACKOFF_SECONDS)

    def _should_run(self) -> bool:
        """Check if a pass is due."""
        if self._last_run is None:
            return True
        return datetime.now(timezone.utc) - self._last_run >= self._interval

    def _run_pass(self) -> ReconciliationRun:
        """Execute one ScheduledJob pass."""
        with self._run_lock:
            started_at = datetime.now(timezone.utc)
            run = ReconciliationRun(started_at=started_at, finished_at=started_at)
            # the start time anchors the interval even when the pass fails
            self._last_run = started_at

            with log_context(action=Action.scheduled_job().to_dict()):
                logger.info("Starting scheduled reconciliation")
                try:
                    run.changed = asyncio.run(self._manager.reconcile())
                except ReconciliationError as e:
                    run.changed = e.changed
                    run.errors = {name: str(err) for name, err in e.errors.items()}
                    self._record_error(e)
                except Exception as e:
                    run.errors = {"*": str(e)}
                    self._record_error(e)

            run.finished_at = datetime.now(timezone.utc)
            self._run_count += 1
            if run.changed:
                self._change_count += 1

            logger.info(
                "Scheduled reconciliation completed",
                changed=run.changed,
                failed=len(run.errors),
            )

            if self._on_run:
                try:
                    self._on_run(run)
                except Exception as e:
                    logger.warning("Run callback failed", error=str(e))

            return run

    def _record_error(self, error: Exception) -> None:
        self._error_count += 1
        logger.error("Scheduled reconciliation failed", error=str(error))
        if self._on_error:
            try:
                self._on_error(error)
            except Exception as e:
                logger.warning("Error callback failed", error=str(e))

    def get_status(self) -> dict[str, Any]:
        """Get scheduler status.

        Returns:
            Dictionary with scheduler status.
        """
        return {
            "running": self._running,
            "interval_seconds": self._interval.total_seconds(),
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "next_run": self._get_next_run_time(),
            "run_count": self._run_count,
            "error_count": self._error_count,
            "change_count": self._change_count,
        }

    def _get_next_run_time(self) -> str:
        """ISO time of the next pass; now if no pass has run yet."""
        if self._last_run is None:
            return datetime.now(timezone.utc).isoformat()
        return (self._last_run + self._interval).isoformat()

    @property
    def interval(self) -> timedelta:
        """Get the pass interval."""
        return self._interval

    @property
    def is_running(self) -> bool:
        """Whether the background thread is active."""
        return self._running

    @property
    def last_run(self) -> datetime | None:
        """Get last run time."""
        return self._last_run

    @property
    def run_count(self) -> int:
        """Get number of completed passes."""
        return self._run_count

    @property
    def error_count(self) -> int:
        """Get number of failed passes."""
        return self._error_count
