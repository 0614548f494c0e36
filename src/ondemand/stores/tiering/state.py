"""Derivation of per-dashboard snapshots from the two tier inventories.

Everything here is pure: the inputs are inventories that were already
fetched, so there is no failure mode beyond programming errors.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from ondemand.stores.base import DashboardEntry
from ondemand.stores.tiering.base import (
    BUILTIN_RULE,
    ArchiveMode,
    ArchiveState,
    DashboardSnapshot,
    LiveState,
    Rule,
)
from ondemand.stores.tiering.rules import match_rule

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(name: str) -> tuple[tuple[object, ...], str]:
    """Sort key comparing digit runs numerically and text case-insensitively.

    ``"dash2"`` sorts before ``"dash10"``; the raw name breaks ties so the
    order is total.
    """
    parts = _DIGITS.split(name)
    # split() alternates text and digit runs starting with text
    key = tuple(int(part) if i % 2 else part.casefold() for i, part in enumerate(parts))
    return key, name


def updated_at(
    hot: DashboardEntry | None, archive: DashboardEntry | None
) -> datetime | None:
    """Later modification time of the two copies, when both exist."""
    if hot is None or archive is None:
        return None
    return max(hot.last_modified, archive.last_modified)


def deactivate_at(
    hot: DashboardEntry | None,
    archive: DashboardEntry | None,
    ttl: timedelta | None,
) -> datetime | None:
    """Time at which an active dashboard expires from the hot tier."""
    if ttl is None:
        return None
    last = updated_at(hot, archive)
    if last is None:
        return None
    return last + ttl


def _index(entries: Iterable[DashboardEntry]) -> dict[str, DashboardEntry]:
    """Index entries by name; the latest entry wins on duplicates."""
    index: dict[str, DashboardEntry] = {}
    for entry in entries:
        current = index.get(entry.name)
        if current is None or entry.last_modified > current.last_modified:
            index[entry.name] = entry
    return index


def derive_snapshot(
    name: str,
    hot: DashboardEntry | None,
    archive: DashboardEntry | None,
    rule: Rule,
) -> DashboardSnapshot:
    """Derive the snapshot of one dashboard under its governing rule."""
    has_hot = hot is not None
    has_archive = archive is not None

    if not has_archive:
        state = LiveState.DISABLED
    elif has_hot:
        state = LiveState.ACTIVE
    else:
        state = LiveState.INACTIVE

    is_forced_enabled = rule.archive_mode is ArchiveMode.ENABLED
    is_forced_disabled = rule.archive_mode is ArchiveMode.DISABLED

    managed = rule.managed
    if managed is None:
        # Disabled policy vetoes every transition
        can_enable = can_disable = can_delete = can_activate = can_deactivate = False
        ttl = None
    else:
        can_enable = has_hot and not has_archive and not is_forced_enabled
        can_disable = has_hot and has_archive and not is_forced_enabled
        can_delete = not has_hot and has_archive and managed.allow_delete
        can_activate = has_archive and not has_hot and managed.allow_activate
        can_deactivate = has_archive and has_hot and managed.allow_deactivate
        ttl = managed.ttl

    return DashboardSnapshot(
        dashboard_name=name,
        archive_state=ArchiveState.ENABLED if has_archive else ArchiveState.DISABLED,
        state=state,
        matched_rule_name=rule.rule_name,
        is_forced_enabled=is_forced_enabled,
        is_forced_disabled=is_forced_disabled,
        can_enable=can_enable,
        can_disable=can_disable,
        can_delete=can_delete,
        can_activate=can_activate,
        can_deactivate=can_deactivate,
        updated_at=updated_at(hot, archive),
        deactivate_at=deactivate_at(hot, archive, ttl),
    )


def derive_snapshots(
    hot_entries: Iterable[DashboardEntry],
    archive_entries: Iterable[DashboardEntry],
    rules: Sequence[Rule],
    on_demand_name: str | None,
    default_rule: Rule = BUILTIN_RULE,
) -> list[DashboardSnapshot]:
    """Derive one snapshot per dashboard found in either tier.

    Args:
        hot_entries: Full hot tier inventory.
        archive_entries: Full archive tier inventory.
        rules: Rules in priority order.
        on_demand_name: Name of the on-demand management dashboard.
        default_rule: Rule for dashboards no configured rule matches.

    Returns:
        Snapshots in natural name order.
    """
    hot = _index(hot_entries)
    archive = _index(archive_entries)

    snapshots = [
        derive_snapshot(
            name,
            hot.get(name),
            archive.get(name),
            match_rule(name, on_demand_name, rules, default_rule),
        )
        for name in hot.keys() | archive.keys()
    ]
    snapshots.sort(key=lambda s: natural_sort_key(s.dashboard_name))
    return snapshots
