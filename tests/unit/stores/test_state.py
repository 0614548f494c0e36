"""Unit tests for snapshot derivation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ondemand.stores.base import DashboardEntry
from ondemand.stores.tiering.base import (
    ArchiveMode,
    ArchiveState,
    LiveState,
    ManagedPolicy,
    Rule,
)
from ondemand.stores.tiering.rules import get_preset
from ondemand.stores.tiering.state import (
    deactivate_at,
    derive_snapshot,
    derive_snapshots,
    natural_sort_key,
    updated_at,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def entry(name: str, minutes: int = 0) -> DashboardEntry:
    return DashboardEntry(name=name, last_modified=T0 + timedelta(minutes=minutes))


def managed_rule(
    mode: ArchiveMode = ArchiveMode.MANUAL,
    allow: bool = True,
    ttl: timedelta | None = timedelta(minutes=3),
) -> Rule:
    return Rule(
        rule_name="Managed",
        match_all=True,
        policy=ManagedPolicy(
            mode=mode,
            allow_activate=allow,
            allow_deactivate=allow,
            allow_delete=allow,
            ttl=ttl,
        ),
    )


class TestTimestamps:
    """Tests for updated_at and deactivate_at."""

    def test_updated_at_requires_both(self) -> None:
        """Test that updated_at is undefined unless both copies exist."""
        assert updated_at(entry("a"), None) is None
        assert updated_at(None, entry("a")) is None

    def test_updated_at_is_latest(self) -> None:
        """Test that updated_at takes the later modification time."""
        assert updated_at(entry("a", 5), entry("a", 2)) == T0 + timedelta(minutes=5)
        assert updated_at(entry("a", 1), entry("a", 7)) == T0 + timedelta(minutes=7)

    def test_deactivate_at(self) -> None:
        """Test that deactivate_at adds the TTL to updated_at."""
        result = deactivate_at(entry("a", 0), entry("a", 1), timedelta(minutes=3))

        assert result == T0 + timedelta(minutes=4)

    def test_deactivate_at_without_ttl(self) -> None:
        """Test that no TTL means no deactivation time."""
        assert deactivate_at(entry("a"), entry("a"), None) is None


class TestDeriveSnapshot:
    """Tests for single-dashboard derivation."""

    def test_hot_only_manual(self) -> None:
        """Test a hot-only dashboard under a manual rule."""
        snapshot = derive_snapshot("a", entry("a"), None, managed_rule())

        assert snapshot.state is LiveState.DISABLED
        assert snapshot.archive_state is ArchiveState.DISABLED
        assert snapshot.can_enable
        assert not snapshot.can_disable
        assert not snapshot.can_activate
        assert not snapshot.can_deactivate
        assert not snapshot.can_delete
        assert snapshot.updated_at is None
        assert snapshot.deactivate_at is None

    def test_active_manual(self) -> None:
        """Test a dashboard present in both tiers."""
        snapshot = derive_snapshot("a", entry("a", 1), entry("a", 2), managed_rule())

        assert snapshot.state is LiveState.ACTIVE
        assert snapshot.archive_state is ArchiveState.ENABLED
        assert snapshot.can_disable
        assert snapshot.can_deactivate
        assert not snapshot.can_enable
        assert not snapshot.can_activate
        assert not snapshot.can_delete
        assert snapshot.updated_at == T0 + timedelta(minutes=2)
        assert snapshot.deactivate_at == T0 + timedelta(minutes=5)

    def test_inactive_manual(self) -> None:
        """Test an archive-only dashboard."""
        snapshot = derive_snapshot("a", None, entry("a"), managed_rule())

        assert snapshot.state is LiveState.INACTIVE
        assert snapshot.can_activate
        assert snapshot.can_delete
        assert not snapshot.can_enable
        assert not snapshot.can_disable
        assert not snapshot.can_deactivate
        assert snapshot.deactivate_at is None

    def test_forced_enabled_cannot_enable_or_disable(self) -> None:
        """Test that an Enabled rule never offers enable or disable."""
        rule = managed_rule(mode=ArchiveMode.ENABLED)

        hot_only = derive_snapshot("a", entry("a"), None, rule)
        both = derive_snapshot("a", entry("a"), entry("a"), rule)

        assert hot_only.is_forced_enabled
        assert not hot_only.can_enable
        assert not both.can_disable
        assert both.can_deactivate

    def test_allow_flags_gate_user_actions(self) -> None:
        """Test that allow-flags gate activate, deactivate and delete."""
        rule = managed_rule(allow=False)

        inactive = derive_snapshot("a", None, entry("a"), rule)
        active = derive_snapshot("a", entry("a"), entry("a"), rule)

        assert not inactive.can_activate
        assert not inactive.can_delete
        assert not active.can_deactivate
        assert active.can_disable

    @pytest.mark.parametrize(
        "hot, archive",
        [(True, False), (True, True), (False, True)],
    )
    def test_disabled_rule_vetoes_everything(self, hot: bool, archive: bool) -> None:
        """Test that a Disabled rule allows no transition in any state."""
        snapshot = derive_snapshot(
            "a",
            entry("a") if hot else None,
            entry("a") if archive else None,
            Rule(rule_name="Off", match_all=True),
        )

        assert snapshot.is_forced_disabled
        assert not snapshot.is_forced_enabled
        assert not any(
            [
                snapshot.can_enable,
                snapshot.can_disable,
                snapshot.can_delete,
                snapshot.can_activate,
                snapshot.can_deactivate,
            ]
        )
        assert snapshot.deactivate_at is None

    def test_no_ttl_no_deactivate_at(self) -> None:
        """Test that a managed rule without TTL never expires."""
        snapshot = derive_snapshot("a", entry("a"), entry("a"), managed_rule(ttl=None))

        assert snapshot.updated_at == T0
        assert snapshot.deactivate_at is None

    def test_to_dict(self) -> None:
        """Test snapshot serialization."""
        data = derive_snapshot("a", entry("a"), entry("a"), managed_rule()).to_dict()

        assert data["dashboard_name"] == "a"
        assert data["state"] == "Active"
        assert data["archive_state"] == "Enabled"
        assert data["matched_rule_name"] == "Managed"
        assert data["deactivate_at"] == (T0 + timedelta(minutes=3)).isoformat()


class TestDeriveSnapshots:
    """Tests for whole-inventory derivation."""

    def test_empty(self) -> None:
        """Test that empty inventories yield no snapshots."""
        assert derive_snapshots([], [], [], None) == []

    def test_union_of_inventories(self) -> None:
        """Test one snapshot per name across both tiers."""
        snapshots = derive_snapshots(
            [entry("hot"), entry("both")],
            [entry("both"), entry("archived")],
            [managed_rule()],
            None,
        )

        states = {s.dashboard_name: s.state for s in snapshots}
        assert states == {
            "archived": LiveState.INACTIVE,
            "both": LiveState.ACTIVE,
            "hot": LiveState.DISABLED,
        }

    def test_natural_order(self) -> None:
        """Test that snapshots are sorted naturally."""
        names = ["dash10", "Dash2", "dash1", "alpha"]
        snapshots = derive_snapshots([entry(n) for n in names], [], [], None)

        assert [s.dashboard_name for s in snapshots] == ["alpha", "dash1", "Dash2", "dash10"]

    def test_duplicate_entries_latest_wins(self) -> None:
        """Test that the latest entry wins when a name is listed twice."""
        snapshots = derive_snapshots(
            [entry("a", 1), entry("a", 9), entry("a", 4)],
            [entry("a", 0)],
            [managed_rule()],
            None,
        )

        assert len(snapshots) == 1
        assert snapshots[0].updated_at == T0 + timedelta(minutes=9)

    def test_rules_applied_per_name(self) -> None:
        """Test that each dashboard gets its own matched rule."""
        odd = "OnDemandDashboardAdmin"
        snapshots = derive_snapshots(
            [entry(odd), entry("Sales")],
            [],
            get_preset("AllManualExceptODD"),
            odd,
        )

        rules = {s.dashboard_name: s.matched_rule_name for s in snapshots}
        assert rules == {odd: "Protect ODD", "Sales": "All Manual"}


class TestNaturalSortKey:
    """Tests for natural ordering."""

    def test_numeric_runs(self) -> None:
        """Test that digit runs compare numerically."""
        assert natural_sort_key("dash2") < natural_sort_key("dash10")

    def test_case_insensitive(self) -> None:
        """Test that text compares case-insensitively."""
        assert natural_sort_key("apple") < natural_sort_key("Banana")

    def test_total_order(self) -> None:
        """Test that case variants still order deterministically."""
        assert natural_sort_key("A") != natural_sort_key("a")
        assert sorted(["a", "A"], key=natural_sort_key) == ["A", "a"]
