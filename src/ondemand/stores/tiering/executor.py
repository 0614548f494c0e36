"""Tier transitions for a single dashboard.

Store backends are synchronous, so every store call is dispatched to the
event loop's default executor. Transitions are idempotent: a missing body
turns a copy into a no-op and deleting a missing entry is a no-op, so a
partially applied transition converges on the next pass.
"""

from __future__ import annotations

import asyncio
import contextvars
from typing import Any, Callable, TypeVar

from ondemand.infrastructure.logging import get_logger
from ondemand.stores.base import DashboardStore
from ondemand.stores.tiering.base import Action, ActionType, InvalidActionError

logger = get_logger(__name__)

T = TypeVar("T")


class ActionExecutor:
    """Applies tier-migration actions to a hot store and an archive store.

    Example:
        >>> executor = ActionExecutor(hot, archive)
        >>> await executor.execute(Action(ActionType.DEACTIVATE, "Sales"))
    """

    def __init__(
        self,
        hot: DashboardStore[Any],
        archive: DashboardStore[Any],
    ) -> None:
        """Initialize the executor.

        Args:
            hot: Store holding live dashboards.
            archive: Store holding durable dashboard copies.
        """
        self._hot = hot
        self._archive = archive

    @property
    def hot(self) -> DashboardStore[Any]:
        """Get the hot store."""
        return self._hot

    @property
    def archive(self) -> DashboardStore[Any]:
        """Get the archive store."""
        return self._archive

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        # copy the context so store records keep log_context fields
        ctx = contextvars.copy_context()
        return await loop.run_in_executor(None, ctx.run, func, *args)

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    async def hot_to_archive(self, name: str) -> bool:
        """Copy the hot body into the archive.

        Returns:
            True if a body was copied, False if the hot copy is absent.
        """
        body = await self._run(self._hot.get_body, name)
        if body is None:
            logger.debug("No hot copy to archive", dashboard=name)
            return False
        await self._run(self._archive.put_body, name, body)
        return True

    async def archive_to_hot(self, name: str) -> bool:
        """Bring the two copies in line, preferring the hot body.

        When both copies exist the archive is refreshed from hot; when only
        the archive exists the hot copy is rehydrated from it.

        Returns:
            True if a body was written to either store.
        """
        hot_body, archive_body = await asyncio.gather(
            self._run(self._hot.get_body, name),
            self._run(self._archive.get_body, name),
        )
        if hot_body is not None:
            if archive_body is None:
                return False
            await self._run(self._archive.put_body, name, hot_body)
            return True
        if archive_body is not None:
            await self._run(self._hot.put_body, name, archive_body)
            return True
        logger.debug("No copy in either tier", dashboard=name)
        return False

    async def delete_archive(self, name: str) -> bool:
        """Delete every archived version of a dashboard."""
        return await self._run(self._archive.delete, name)

    async def delete_hot(self, name: str) -> bool:
        """Delete the live dashboard."""
        return await self._run(self._hot.delete, name)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def enable(self, name: str) -> None:
        await self.hot_to_archive(name)

    async def disable(self, name: str) -> None:
        await self.archive_to_hot(name)
        await self.delete_archive(name)

    async def deactivate(self, name: str) -> None:
        # hot is deleted only after its body is safely archived
        if await self.hot_to_archive(name):
            await self.delete_hot(name)

    async def activate(self, name: str) -> None:
        await self.archive_to_hot(name)

    async def delete(self, name: str) -> None:
        await self.delete_archive(name)

    async def execute(self, action: Action) -> None:
        """Apply one per-dashboard action.

        Raises:
            InvalidActionError: For ``ScheduledJob``, which is a manager-level
                action.
            StoreError: If a store call fails.
        """
        transitions = {
            ActionType.ENABLE: self.enable,
            ActionType.DISABLE: self.disable,
            ActionType.DEACTIVATE: self.deactivate,
            ActionType.ACTIVATE: self.activate,
            ActionType.DELETE: self.delete,
        }
        transition = transitions.get(action.type)
        if transition is None or action.dashboard_name is None:
            raise InvalidActionError(
                f"{action.type.value} is not a per-dashboard action", action
            )

        logger.info(
            "Transition",
            action=action.type.value,
            dashboard=action.dashboard_name,
            hot=self._hot.tier,
            archive=self._archive.tier,
        )
        await transition(action.dashboard_name)
