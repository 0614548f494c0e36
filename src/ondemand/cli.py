"""Command-line interface for the on-demand dashboard manager."""

import asyncio
import json
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from ondemand.infrastructure.config import ManagerSettings, load_settings
from ondemand.infrastructure.logging import configure_logging
from ondemand.stores.tiering import (
    Action,
    ActionType,
    DashboardManager,
    DashboardSnapshot,
    ReconciliationError,
    ReconciliationScheduler,
    describe_rules,
)

app = typer.Typer(
    name="ondemand",
    help="Two-tier lifecycle manager for CloudWatch dashboards",
    add_completion=False,
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Configuration file (YAML, JSON or TOML)"),
]
BackendOption = Annotated[
    str,
    typer.Option("--backend", "-b", help="Store backend (aws, memory)"),
]


def load_cli_settings(config_file: Optional[Path]) -> ManagerSettings:
    """Load settings and configure logging for a command."""
    if config_file is not None and not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")
    settings = load_settings(config_file)
    configure_logging(level=settings.log_level, format=settings.log_format, service="cli")
    return settings


def build_manager(
    config_file: Optional[Path],
    backend: str,
    settings: Optional[ManagerSettings] = None,
) -> DashboardManager:
    """Create the manager a command operates on."""
    if backend not in ("aws", "memory"):
        raise ValueError(f"Unknown backend: {backend} (expected aws or memory)")
    if settings is None:
        settings = load_cli_settings(config_file)
    return DashboardManager.from_settings(settings, backend=backend)


def _format_time(value: Any) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S") if value is not None else "-"


def _render_table(rows: list[dict[str, str]]) -> list[str]:
    """Render rows as aligned text lines, header first."""
    if not rows:
        return []
    columns = list(rows[0])
    widths = {c: max(len(c), *(len(row[c]) for row in rows)) for c in columns}
    lines = ["  ".join(c.upper().ljust(widths[c]) for c in columns).rstrip()]
    for row in rows:
        lines.append("  ".join(row[c].ljust(widths[c]) for c in columns).rstrip())
    return lines


def _snapshot_row(snapshot: DashboardSnapshot) -> dict[str, str]:
    moves = [
        name
        for name, allowed in (
            ("enable", snapshot.can_enable),
            ("disable", snapshot.can_disable),
            ("activate", snapshot.can_activate),
            ("deactivate", snapshot.can_deactivate),
            ("delete", snapshot.can_delete),
        )
        if allowed
    ]
    return {
        "dashboard": snapshot.dashboard_name,
        "archive": snapshot.archive_state.value,
        "state": snapshot.state.value,
        "deactivate_at": _format_time(snapshot.deactivate_at),
        "rule": snapshot.matched_rule_name,
        "actions": ",".join(moves) or "-",
    }


@app.command(name="status")
def status_cmd(
    config_file: ConfigOption = None,
    backend: BackendOption = "aws",
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (console, json)"),
    ] = "console",
    apply: Annotated[
        bool,
        typer.Option("--apply/--no-apply", help="Enforce rules before reporting"),
    ] = True,
) -> None:
    """Show every dashboard's tier state."""
    try:
        manager = build_manager(config_file, backend)
        if apply:
            snapshots = asyncio.run(manager.get_stable_info())
        else:
            snapshots = asyncio.run(manager.get_info())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if format == "json":
        typer.echo(json.dumps([s.to_dict() for s in snapshots], indent=2))
        return

    if not snapshots:
        typer.echo("No dashboards found.")
        return
    for line in _render_table([_snapshot_row(s) for s in snapshots]):
        typer.echo(line)


@app.command(name="action")
def action_cmd(
    action_type: Annotated[
        str,
        typer.Argument(
            help="Action (enable, disable, activate, deactivate, delete, scheduled-job)"
        ),
    ],
    dashboard: Annotated[
        Optional[str],
        typer.Argument(help="Dashboard name (omitted for scheduled-job)"),
    ] = None,
    config_file: ConfigOption = None,
    backend: BackendOption = "aws",
) -> None:
    """Execute one action."""
    try:
        action = Action(ActionType.from_string(action_type), dashboard)
        manager = build_manager(config_file, backend)
        asyncio.run(manager.action(action))
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Executed {action}")


@app.command(name="reconcile")
def reconcile_cmd(
    config_file: ConfigOption = None,
    backend: BackendOption = "aws",
) -> None:
    """Run one reconciliation pass."""
    try:
        manager = build_manager(config_file, backend)
        changed = asyncio.run(manager.reconcile())
    except ReconciliationError as e:
        typer.echo(f"Error: {e}", err=True)
        for name, error in sorted(e.errors.items()):
            typer.echo(f"  - {name}: {error}", err=True)
        raise typer.Exit(1)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Changes applied." if changed else "Nothing to do.")


@app.command(name="rules")
def rules_cmd(
    config_file: ConfigOption = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (console, json)"),
    ] = "console",
) -> None:
    """Show the effective rule table, highest priority first."""
    try:
        settings = load_cli_settings(config_file)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    table = describe_rules(settings.rules)
    if format == "json":
        typer.echo(json.dumps(table, indent=2))
        return
    for line in _render_table(table):
        typer.echo(line)


@app.command(name="schedule")
def schedule_cmd(
    config_file: ConfigOption = None,
    backend: BackendOption = "aws",
    interval_minutes: Annotated[
        Optional[float],
        typer.Option("--interval-minutes", "-i", help="Minutes between passes"),
    ] = None,
) -> None:
    """Run reconciliation passes on a schedule until interrupted."""
    try:
        settings = load_cli_settings(config_file)
        manager = build_manager(config_file, backend, settings)
        interval = (
            timedelta(minutes=interval_minutes)
            if interval_minutes is not None
            else settings.job_interval
        )
        scheduler = ReconciliationScheduler(manager, interval=interval)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Reconciling every {interval}. Press Ctrl+C to stop.")
    scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        status = scheduler.get_status()
        typer.echo(f"Stopped after {status['run_count']} run(s), {status['error_count']} error(s).")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
