"""Invocation entry points.

Two entry points wrap the manager:

- the dashboard handler, invoked by the management dashboard widget and by
  the scheduled trigger, which executes an optional action and returns the
  stable snapshot list for rendering;
- the redirect handler, invoked through a public URL of the form
  ``/dashboards/<name>``, which activates the dashboard and redirects the
  browser to it.

``dashboard_handler`` and ``redirect_handler`` follow the AWS Lambda
``(event, context)`` calling convention. Store failures propagate out of them
so the runtime records the invocation as failed.
"""

from __future__ import annotations

import asyncio
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import quote

from ondemand.infrastructure.config import ManagerSettings, load_settings
from ondemand.infrastructure.logging import configure_logging, get_logger, log_context
from ondemand.stores.tiering.base import Action, ActionType
from ondemand.stores.tiering.manager import DashboardManager

logger = get_logger(__name__)

_NAME_PATTERN = re.compile(r"/([A-Za-z0-9_-]+)")

DEFAULT_PREFIX = "/dashboards"


# =============================================================================
# Redirect
# =============================================================================


def parse_dashboard_name(
    path: str | None, prefix: str | None = DEFAULT_PREFIX
) -> str | None:
    """Extract the dashboard name from a request path.

    The route prefix is optional; after it, exactly one segment of letters,
    digits, ``-`` and ``_`` must remain.

    Example:
        >>> parse_dashboard_name("/dashboards/my-dash")
        'my-dash'
        >>> parse_dashboard_name("/a/b") is None
        True
    """
    if not path:
        return None
    if prefix and path.startswith(prefix + "/"):
        path = path[len(prefix) :]
    match = _NAME_PATTERN.fullmatch(path)
    return match.group(1) if match else None


def console_url(region: str | None, name: str) -> str:
    """CloudWatch console link of a dashboard."""
    region = region or "us-east-1"
    return (
        f"https://{region}.console.aws.amazon.com/cloudwatch/home"
        f"?region={region}#dashboards:name={quote(name)}"
    )


@dataclass(frozen=True)
class RedirectResponse:
    """HTTP response of the redirect endpoint."""

    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the function-URL response shape."""
        data: dict[str, Any] = {"statusCode": self.status_code, "body": self.body}
        if self.headers:
            data["headers"] = dict(self.headers)
        return data


METHOD_NOT_ALLOWED = RedirectResponse(405, "Method Not Allowed")
NOT_FOUND = RedirectResponse(404, "Not Found")


async def handle_redirect(
    manager: DashboardManager,
    method: str | None,
    path: str | None,
    region: str | None,
    prefix: str | None = DEFAULT_PREFIX,
) -> RedirectResponse:
    """Activate the requested dashboard and redirect to it.

    Rejected requests never touch a store.
    """
    if method != "GET":
        return METHOD_NOT_ALLOWED
    name = parse_dashboard_name(path, prefix)
    if name is None:
        return NOT_FOUND

    await manager.action(Action(ActionType.ACTIVATE, name))
    return RedirectResponse(303, name, {"Location": console_url(region, name)})


# =============================================================================
# Dashboard
# =============================================================================


async def handle_dashboard_event(
    manager: DashboardManager,
    event: Mapping[str, Any],
    redirect_url: str | None = None,
) -> list[dict[str, Any]] | None:
    """Execute the event's action, then report state for the widget.

    Args:
        manager: Manager to act on.
        event: ``{"action": {...}, "widgetContext": {...}}``; both keys are
            optional. The scheduled trigger sends
            ``{"action": {"type": "ScheduledJob"}}``.
        redirect_url: Base URL of the redirect endpoint. When set, each row
            gets an ``on_demand_url`` that activates the dashboard on visit.

    Returns:
        Stable snapshots as dicts when the event comes from the widget,
        otherwise None.

    Raises:
        InvalidActionError: If the action payload is malformed.
    """
    payload = event.get("action")
    if payload is not None:
        await manager.action(Action.from_dict(payload))
    if event.get("widgetContext") is None:
        return None
    rows = [snapshot.to_dict() for snapshot in await manager.get_stable_info()]
    if redirect_url:
        for row in rows:
            row["on_demand_url"] = redirect_url + row["dashboard_name"]
    return rows


# =============================================================================
# Lambda Entry Points
# =============================================================================

_manager: DashboardManager | None = None
_settings: ManagerSettings | None = None
_lock = threading.Lock()


def get_manager() -> tuple[DashboardManager, ManagerSettings]:
    """Get the process-wide manager built from the environment."""
    global _manager, _settings

    with _lock:
        if _manager is None or _settings is None:
            _settings = load_settings()
            _manager = DashboardManager.from_settings(_settings)
        return _manager, _settings


def reset_manager() -> None:
    """Drop the cached manager (the next invocation reloads settings)."""
    global _manager, _settings

    with _lock:
        _manager = None
        _settings = None


def _context_fields(context: Any) -> dict[str, Any]:
    if context is None:
        return {}
    fields = {
        "function_name": getattr(context, "function_name", None),
        "request_id": getattr(context, "aws_request_id", None),
    }
    return {k: v for k, v in fields.items() if v is not None}


def dashboard_handler(event: dict[str, Any], context: Any = None) -> Any:
    """Lambda entry point of the dashboard function."""
    manager, settings = get_manager()
    configure_logging(
        level=settings.log_level, format=settings.log_format, service="dashboard"
    )
    with log_context(event=event, **_context_fields(context)):
        result = asyncio.run(
            handle_dashboard_event(manager, event, settings.redirect_url)
        )
    return result if result is not None else ""


def redirect_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda entry point of the redirect function."""
    manager, settings = get_manager()
    configure_logging(
        level=settings.log_level, format=settings.log_format, service="redirect"
    )
    http = event.get("requestContext", {}).get("http", {})
    with log_context(event=event, **_context_fields(context)):
        response = asyncio.run(
            handle_redirect(manager, http.get("method"), http.get("path"), settings.region)
        )
        logger.info("Redirect", status_code=response.status_code, body=response.body)
    return response.to_dict()
