"""Tests for the invocation entry points."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Iterator
from unittest.mock import AsyncMock

import pytest

from ondemand import handlers
from ondemand.handlers import (
    RedirectResponse,
    console_url,
    dashboard_handler,
    get_manager,
    handle_dashboard_event,
    handle_redirect,
    parse_dashboard_name,
    redirect_handler,
    reset_manager,
)
from ondemand.infrastructure.config import ConfigValidationError, ManagerSettings
from ondemand.infrastructure.logging import reset_logging
from ondemand.stores.backends.memory import MemoryDashboardStore
from ondemand.stores.tiering.base import InvalidActionError
from ondemand.stores.tiering.manager import DashboardManager
from ondemand.stores.tiering.rules import get_preset

ODD = "OnDemandDashboardAdmin"


@pytest.fixture(autouse=True)
def _reset_globals() -> Iterator[None]:
    reset_manager()
    yield
    reset_manager()
    reset_logging()


@pytest.fixture
def manager() -> DashboardManager:
    return DashboardManager(
        MemoryDashboardStore(tier="hot"),
        MemoryDashboardStore(tier="archive", versioned=True),
        rules=get_preset("AllManualExceptODD"),
        on_demand_name=ODD,
    )


@pytest.fixture
def settings() -> ManagerSettings:
    return ManagerSettings(region="eu-west-1", log_level="WARNING")


@pytest.fixture
def patched(
    monkeypatch: pytest.MonkeyPatch, manager: DashboardManager, settings: ManagerSettings
) -> DashboardManager:
    monkeypatch.setattr(handlers, "get_manager", lambda: (manager, settings))
    return manager


class TestParseDashboardName:
    """Tests for request path parsing."""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("", None),
            (None, None),
            ("/", None),
            ("/!", None),
            ("/a", "a"),
            ("/a-b-c", "a-b-c"),
            ("/a_b_C9", "a_b_C9"),
            ("/a-b-c/", None),
            ("/a-b-c/ddd", None),
            ("/a/b", None),
            ("a", None),
            ("/dashboards/my-dash", "my-dash"),
            ("/dashboards/", None),
            ("/dashboards/a/b", None),
        ],
    )
    def test_paths(self, path: str | None, expected: str | None) -> None:
        """Test accepted and rejected paths."""
        assert parse_dashboard_name(path) == expected

    def test_without_prefix(self) -> None:
        """Test that prefix stripping can be turned off."""
        assert parse_dashboard_name("/dashboards/my-dash", prefix=None) is None


class TestConsoleUrl:
    """Tests for console links."""

    def test_region_and_quoting(self) -> None:
        """Test the link format."""
        url = console_url("eu-west-1", "my dash")

        assert url.startswith("https://eu-west-1.console.aws.amazon.com/cloudwatch/home")
        assert url.endswith("#dashboards:name=my%20dash")

    def test_default_region(self) -> None:
        """Test the fallback region."""
        assert "region=us-east-1" in console_url(None, "a")


class TestHandleRedirect:
    """Tests for the redirect endpoint."""

    @pytest.mark.asyncio
    async def test_activates_and_redirects(self, manager: DashboardManager) -> None:
        """Test that an archived dashboard is restored before redirecting."""
        manager.archive.put_body("Sales", "{}")

        response = await handle_redirect(manager, "GET", "/dashboards/Sales", "us-east-1")

        assert response.status_code == 303
        assert response.body == "Sales"
        assert response.headers["Location"] == console_url("us-east-1", "Sales")
        assert manager.hot.get_body("Sales") == "{}"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "DELETE", "get", None])
    async def test_method_not_allowed(self, method: str | None) -> None:
        """Test that non-GET requests are rejected without store access."""
        manager = AsyncMock()

        response = await handle_redirect(manager, method, "/Sales", None)

        assert response.status_code == 405
        manager.action.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """Test that malformed paths are rejected without store access."""
        manager = AsyncMock()

        response = await handle_redirect(manager, "GET", "/a/b", None)

        assert response == RedirectResponse(404, "Not Found")
        manager.action.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_dashboard_still_redirects(self, manager: DashboardManager) -> None:
        """Test that activating a dashboard in neither tier is a no-op."""
        response = await handle_redirect(manager, "GET", "/ghost", None)

        assert response.status_code == 303
        assert "ghost" not in manager.hot

    def test_response_dict(self) -> None:
        """Test the function-URL response shape."""
        assert RedirectResponse(404, "Not Found").to_dict() == {
            "statusCode": 404,
            "body": "Not Found",
        }
        assert RedirectResponse(303, "a", {"Location": "x"}).to_dict()["headers"] == {
            "Location": "x"
        }


class TestHandleDashboardEvent:
    """Tests for the dashboard endpoint."""

    @pytest.mark.asyncio
    async def test_action_without_widget(self, manager: DashboardManager) -> None:
        """Test that non-widget callers get no body."""
        manager.hot.put_body("Sales", "{}")

        result = await handle_dashboard_event(
            manager, {"action": {"type": "Enable", "dashboardName": "Sales"}}
        )

        assert result is None
        assert manager.archive.get_body("Sales") == "{}"

    @pytest.mark.asyncio
    async def test_widget_render(self, manager: DashboardManager) -> None:
        """Test that the widget receives stable snapshots."""
        manager.hot.put_body(ODD, "{}")
        manager.hot.put_body("Sales", "{}")

        result = await handle_dashboard_event(manager, {"widgetContext": {"dashboardName": ODD}})

        assert result is not None
        states = {row["dashboard_name"]: row for row in result}
        assert states[ODD]["matched_rule_name"] == "Protect ODD"
        assert states["Sales"]["can_enable"] is True

    @pytest.mark.asyncio
    async def test_widget_sees_action_result(self, manager: DashboardManager) -> None:
        """Test that the snapshot reflects the action just taken."""
        manager.hot.put_body("Sales", "{}")
        manager.archive.put_body("Sales", "{}")

        result = await handle_dashboard_event(
            manager,
            {
                "action": {"type": "Deactivate", "dashboardName": "Sales"},
                "widgetContext": {"dashboardName": ODD},
            },
        )

        assert result is not None
        assert result[0]["state"] == "Inactive"
        assert "Sales" not in manager.hot

    @pytest.mark.asyncio
    async def test_empty_widget_context(self, manager: DashboardManager) -> None:
        """Test that an empty widget context still gets the rows."""
        manager.hot.put_body("Sales", "{}")

        result = await handle_dashboard_event(manager, {"widgetContext": {}})

        assert result is not None
        assert [row["dashboard_name"] for row in result] == ["Sales"]

    @pytest.mark.asyncio
    async def test_on_demand_links(self, manager: DashboardManager) -> None:
        """Test that rows link to the redirect endpoint when it is configured."""
        manager.archive.put_body("Sales", "{}")

        result = await handle_dashboard_event(
            manager, {"widgetContext": {}}, redirect_url="https://abc.lambda-url.aws/"
        )

        assert result is not None
        assert result[0]["on_demand_url"] == "https://abc.lambda-url.aws/Sales"

    @pytest.mark.asyncio
    async def test_no_links_without_redirect_url(self, manager: DashboardManager) -> None:
        """Test that rows carry no link by default."""
        manager.hot.put_body("Sales", "{}")

        result = await handle_dashboard_event(manager, {"widgetContext": {}})

        assert result is not None
        assert "on_demand_url" not in result[0]

    @pytest.mark.asyncio
    async def test_invalid_action(self, manager: DashboardManager) -> None:
        """Test that a malformed action is rejected."""
        with pytest.raises(InvalidActionError):
            await handle_dashboard_event(manager, {"action": {"type": "Explode"}})


class TestLambdaEntryPoints:
    """Tests for the Lambda-style wrappers."""

    def test_scheduled_job(self, patched: DashboardManager) -> None:
        """Test the scheduled trigger payload."""
        patched.hot.put_body(ODD, "{}")
        patched.archive.put_body(ODD, "{}")

        assert dashboard_handler({"action": {"type": "ScheduledJob"}}) == ""

        # ODD is protected, so the forced-disable correction removed its archive
        assert ODD not in patched.archive
        assert ODD in patched.hot

    def test_widget_invocation(self, patched: DashboardManager) -> None:
        """Test a widget render call with a Lambda context."""
        patched.hot.put_body("Sales", "{}")
        context = SimpleNamespace(function_name="dashboard", aws_request_id="req-1")

        result = dashboard_handler({"widgetContext": {"dashboardName": ODD}}, context)

        assert [row["dashboard_name"] for row in result] == ["Sales"]

    def test_widget_links_from_settings(
        self, monkeypatch: pytest.MonkeyPatch, manager: DashboardManager
    ) -> None:
        """Test that the configured redirect URL becomes each row's link."""
        settings = ManagerSettings(
            redirect_url="https://abc.lambda-url.aws/", log_level="WARNING"
        )
        monkeypatch.setattr(handlers, "get_manager", lambda: (manager, settings))
        manager.hot.put_body("Sales", "{}")

        result = dashboard_handler({"widgetContext": {"dashboardName": ODD}})

        assert result[0]["on_demand_url"] == "https://abc.lambda-url.aws/Sales"

    def test_redirect_handler(self, patched: DashboardManager) -> None:
        """Test the function-URL event shape."""
        patched.archive.put_body("Sales", "{}")
        event = {"requestContext": {"http": {"method": "GET", "path": "/dashboards/Sales"}}}

        response = redirect_handler(event)

        assert response["statusCode"] == 303
        assert response["headers"]["Location"] == console_url("eu-west-1", "Sales")
        assert "Sales" in patched.hot

    def test_redirect_handler_bad_event(self, patched: DashboardManager) -> None:
        """Test that an event without HTTP details is rejected."""
        assert redirect_handler({})["statusCode"] == 405


class TestGetManager:
    """Tests for the cached process-wide manager."""

    def test_built_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that settings come from the environment and are cached."""
        monkeypatch.setenv("BUCKET_NAME", "dashboard-archive")
        monkeypatch.setenv("AWS_REGION", "us-east-1")
        monkeypatch.setenv("RULE_PRESET", "AllManualExceptODD")
        monkeypatch.setenv("ON_DEMAND_DASHBOARD_NAME", ODD)

        manager, settings = get_manager()

        assert settings.bucket_name == "dashboard-archive"
        assert manager.on_demand_name == ODD
        assert get_manager()[0] is manager

        reset_manager()
        assert get_manager()[0] is not manager

    def test_missing_bucket(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the deployed manager requires a bucket."""
        monkeypatch.delenv("BUCKET_NAME", raising=False)

        with pytest.raises(ConfigValidationError):
            get_manager()
