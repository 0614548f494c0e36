"""Reconciliation manager for on-demand dashboards.

The manager lists both tiers, derives a snapshot per dashboard, and drives
each dashboard toward the state its rule demands. It is also the single
entry point for user-triggered actions.

Example:
    >>> from ondemand.stores.tiering import DashboardManager
    >>> from ondemand.stores.backends import MemoryDashboardStore
    >>>
    >>> manager = DashboardManager(
    ...     hot=MemoryDashboardStore(tier="hot"),
    ...     archive=MemoryDashboardStore(tier="archive"),
    ...     rules=get_preset("AllManualExceptODD"),
    ...     on_demand_name="OnDemandDashboardAdmin",
    ... )
    >>> snapshots = await manager.get_stable_info()
"""

from __future__ import annotations

import asyncio
import contextvars
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Sequence

from ondemand.infrastructure.logging import get_logger, log_context
from ondemand.stores.base import DashboardEntry, DashboardStore
from ondemand.stores.tiering.base import (
    BUILTIN_RULE,
    Action,
    ActionType,
    DashboardSnapshot,
    LiveState,
    ReconciliationError,
    Rule,
)
from ondemand.stores.tiering.executor import ActionExecutor
from ondemand.stores.tiering.state import derive_snapshots

if TYPE_CHECKING:
    from ondemand.infrastructure.config import ManagerSettings

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardManager:
    """Reconciles dashboards across the hot and archive tiers.

    Each call recomputes snapshots from fresh inventories; nothing is
    cached between calls.
    """

    def __init__(
        self,
        hot: DashboardStore[Any],
        archive: DashboardStore[Any],
        rules: Sequence[Rule] = (),
        on_demand_name: str | None = None,
        clock: Callable[[], datetime] | None = None,
        default_rule: Rule = BUILTIN_RULE,
    ) -> None:
        """Initialize the manager.

        Args:
            hot: Store holding live dashboards.
            archive: Store holding durable dashboard copies.
            rules: Rules in priority order.
            on_demand_name: Name of the on-demand management dashboard.
            clock: Source of the current time (timezone-aware).
            default_rule: Rule for dashboards no configured rule matches.
        """
        self._hot = hot
        self._archive = archive
        self._rules = tuple(rules)
        self._on_demand_name = on_demand_name
        self._clock = clock or _utcnow
        self._default_rule = default_rule
        self._executor = ActionExecutor(hot, archive)

    @classmethod
    def from_settings(
        cls,
        settings: "ManagerSettings",
        backend: str = "aws",
        **kwargs: Any,
    ) -> "DashboardManager":
        """Build a manager from loaded settings.

        Args:
            settings: Validated settings.
            backend: "aws" for CloudWatch + S3, "memory" for in-memory stores.
            **kwargs: Passed through to the constructor (e.g. ``clock``).
        """
        from ondemand.infrastructure.config import ConfigValidationError
        from ondemand.stores.factory import get_store

        if backend == "memory":
            hot = get_store("memory", tier="hot")
            archive = get_store("memory", tier="archive", versioned=True)
        else:
            if not settings.bucket_name:
                raise ConfigValidationError(["bucket_name is required for the aws backend"])
            hot = get_store(
                "cloudwatch",
                region=settings.region,
                endpoint_url=settings.cloudwatch_endpoint_url,
            )
            archive = get_store(
                "s3",
                bucket=settings.bucket_name,
                region=settings.region,
                endpoint_url=settings.s3_endpoint_url,
            )
        return cls(
            hot=hot,
            archive=archive,
            rules=settings.rules,
            on_demand_name=settings.on_demand_dashboard_name,
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def hot(self) -> DashboardStore[Any]:
        """Get the hot store."""
        return self._hot

    @property
    def archive(self) -> DashboardStore[Any]:
        """Get the archive store."""
        return self._archive

    @property
    def rules(self) -> tuple[Rule, ...]:
        """Get the configured rules."""
        return self._rules

    @property
    def on_demand_name(self) -> str | None:
        """Get the on-demand dashboard name."""
        return self._on_demand_name

    @property
    def executor(self) -> ActionExecutor:
        """Get the action executor."""
        return self._executor

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def _list(self, store: DashboardStore[Any]) -> list[DashboardEntry]:
        loop = asyncio.get_running_loop()
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(None, ctx.run, store.list_entries)

    async def get_info(self) -> list[DashboardSnapshot]:
        """Fetch both inventories and derive every dashboard's snapshot."""
        hot_entries, archive_entries = await asyncio.gather(
            self._list(self._hot),
            self._list(self._archive),
        )
        logger.debug(
            "Loaded inventories",
            hot_count=len(hot_entries),
            archive_count=len(archive_entries),
        )
        return derive_snapshots(
            hot_entries,
            archive_entries,
            self._rules,
            self._on_demand_name,
            self._default_rule,
        )

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def plan_action(
        self, snapshot: DashboardSnapshot, now: datetime
    ) -> Action | None:
        """Decide the corrective action for one snapshot, if any.

        Forced-enable correction beats forced-disable correction, which
        beats TTL expiry.
        """
        name = snapshot.dashboard_name
        if snapshot.is_forced_enabled and snapshot.state is LiveState.DISABLED:
            return Action(ActionType.ENABLE, name)
        if snapshot.is_forced_disabled and snapshot.state is not LiveState.DISABLED:
            return Action(ActionType.DISABLE, name)
        if snapshot.deactivate_at is not None and snapshot.deactivate_at < now:
            return Action(ActionType.DEACTIVATE, name)
        return None

    async def _apply_one(self, snapshot: DashboardSnapshot, now: datetime) -> bool:
        action = self.plan_action(snapshot, now)
        if action is None:
            return False
        await self.action(action)
        return True

    async def apply_rules(
        self,
        snapshots: Sequence[DashboardSnapshot],
        now: datetime | None = None,
    ) -> bool:
        """Run the corrective action of every snapshot.

        Every snapshot is processed even when another one fails.

        Args:
            snapshots: Snapshots from ``get_info``.
            now: Evaluation time (defaults to the manager clock).

        Returns:
            True if any action fired.

        Raises:
            ReconciliationError: If one or more dashboards failed.
        """
        if not snapshots:
            return False
        if now is None:
            now = self._clock()

        results = await asyncio.gather(
            *(self._apply_one(snapshot, now) for snapshot in snapshots),
            return_exceptions=True,
        )

        errors: dict[str, BaseException] = {}
        changed = False
        for snapshot, result in zip(snapshots, results):
            if isinstance(result, BaseException):
                errors[snapshot.dashboard_name] = result
                logger.exception(
                    "Failed to apply rule",
                    result,
                    dashboard=snapshot.dashboard_name,
                    rule=snapshot.matched_rule_name,
                )
            elif result:
                changed = True

        if changed:
            logger.info("Applied rule")
        if errors:
            raise ReconciliationError(errors, changed)
        return changed

    async def reconcile(self) -> bool:
        """Run one reconciliation pass over fresh inventories.

        Returns:
            True if any action fired.
        """
        return await self.apply_rules(await self.get_info())

    async def get_stable_info(self) -> list[DashboardSnapshot]:
        """Snapshots after one reconciliation pass.

        Re-fetches once when the pass changed anything.
        """
        snapshots = await self.get_info()
        if not await self.apply_rules(snapshots):
            return snapshots
        return await self.get_info()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def action(self, action: Action) -> None:
        """Execute an action to completion.

        Raises:
            ReconciliationError: If a ``ScheduledJob`` pass had failures.
            StoreError: If a per-dashboard action fails.
        """
        with log_context(action=action.to_dict()):
            logger.info("Execute action")
            if action.type is ActionType.SCHEDULED_JOB:
                await self.reconcile()
                return
            await self._executor.execute(action)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(hot={self._hot!r}, "
            f"archive={self._archive!r}, rules={len(self._rules)})"
        )
