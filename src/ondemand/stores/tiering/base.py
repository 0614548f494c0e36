"""Base types for dashboard tiering.

This module defines the data structures shared by the rule matcher, the
state deriver, the action executor and the reconciliation manager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Union


# =============================================================================
# Exceptions
# =============================================================================


class TieringError(Exception):
    """Base exception for tiering-related errors."""

    pass


class InvalidActionError(TieringError):
    """Raised when an action payload cannot be turned into an Action."""

    def __init__(self, message: str, payload: Any = None) -> None:
        self.payload = payload
        super().__init__(f"Invalid action: {message}")


class RuleParseError(TieringError, ValueError):
    """Raised when a rule definition is malformed."""

    def __init__(self, message: str, rule_index: int | None = None) -> None:
        self.rule_index = rule_index
        where = f"rule #{rule_index + 1}: " if rule_index is not None else ""
        super().__init__(f"{where}{message}")


class ReconciliationError(TieringError):
    """Raised when one or more dashboards failed during a reconciliation pass.

    Every other dashboard of the pass was still processed.
    """

    def __init__(self, errors: dict[str, BaseException], changed: bool) -> None:
        self.errors = errors
        self.changed = changed
        names = ", ".join(sorted(errors))
        super().__init__(
            f"Reconciliation failed for {len(errors)} dashboard(s): {names}"
        )


# =============================================================================
# Enums
# =============================================================================


class ArchiveMode(Enum):
    """How a rule governs the archive tier."""

    DISABLED = "Disabled"  # no tier movement at all
    ENABLED = "Enabled"  # archive copy is enforced
    MANUAL = "Manual"  # archive copy is opt-in


class ArchiveState(Enum):
    """Whether a dashboard has an archive copy."""

    DISABLED = "Disabled"
    ENABLED = "Enabled"


class LiveState(Enum):
    """Tier membership of a dashboard under archive management."""

    DISABLED = "Disabled"  # not archived
    ACTIVE = "Active"  # hot and archived
    INACTIVE = "Inactive"  # archived only
    DELETED = "Deleted"  # gone from both tiers


class ActionType(Enum):
    """Tier-migration actions."""

    ENABLE = "Enable"
    DISABLE = "Disable"
    ACTIVATE = "Activate"
    DEACTIVATE = "Deactivate"
    DELETE = "Delete"
    SCHEDULED_JOB = "ScheduledJob"

    @classmethod
    def from_string(cls, value: str) -> "ActionType":
        """Convert a case-insensitive name ("enable", "ScheduledJob", ...)."""
        normalized = value.replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise InvalidActionError(f"unknown action type {value!r}", value)


# =============================================================================
# Policies
# =============================================================================


@dataclass(frozen=True)
class DisabledPolicy:
    """Archive management is off: no automated or manual tier movement."""

    @property
    def mode(self) -> ArchiveMode:
        return ArchiveMode.DISABLED


@dataclass(frozen=True)
class ManagedPolicy:
    """Archive management is on.

    Attributes:
        mode: ENABLED (archive enforced) or MANUAL (archive opt-in).
        allow_activate: Users may restore the dashboard into the hot tier.
        allow_deactivate: Users may evict the dashboard from the hot tier.
        allow_delete: Users may delete an archive-only dashboard.
        ttl: Time after the last modification at which an active dashboard
            is deactivated automatically.
    """

    mode: ArchiveMode
    allow_activate: bool = False
    allow_deactivate: bool = False
    allow_delete: bool = False
    ttl: timedelta | None = None

    def __post_init__(self) -> None:
        if self.mode is ArchiveMode.DISABLED:
            raise ValueError("ManagedPolicy mode must be ENABLED or MANUAL")
        if self.ttl is not None and self.ttl <= timedelta(0):
            raise ValueError("ttl must be positive")


ArchivePolicy = Union[DisabledPolicy, ManagedPolicy]


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True)
class Rule:
    """An ordered policy entry.

    Matcher conditions are checked in a fixed order: universal match, then
    the on-demand dashboard name, then the explicit name set.

    Attributes:
        rule_name: Display name of the rule.
        policy: Archive policy applied to matching dashboards.
        match_all: Match every dashboard.
        match_on_demand: Match the on-demand (management) dashboard itself.
        match_by_name: Match these dashboard names.
    """

    rule_name: str
    policy: ArchivePolicy = field(default_factory=DisabledPolicy)
    match_all: bool = False
    match_on_demand: bool = False
    match_by_name: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not isinstance(self.match_by_name, frozenset):
            object.__setattr__(self, "match_by_name", frozenset(self.match_by_name))

    @property
    def archive_mode(self) -> ArchiveMode:
        """Archive mode of the rule's policy."""
        return self.policy.mode

    @property
    def managed(self) -> ManagedPolicy | None:
        """The managed policy, or None when archiving is disabled."""
        return self.policy if isinstance(self.policy, ManagedPolicy) else None

    @property
    def ttl(self) -> timedelta | None:
        """TTL of a managed policy."""
        managed = self.managed
        return managed.ttl if managed else None

    def matches(self, dashboard_name: str, on_demand_name: str | None) -> bool:
        """Check whether this rule governs a dashboard."""
        if self.match_all:
            return True
        if self.match_on_demand and on_demand_name is not None:
            if dashboard_name == on_demand_name:
                return True
        return dashboard_name in self.match_by_name


#: Fallback rule guaranteeing every dashboard a governing rule.
BUILTIN_RULE = Rule(rule_name="Builtin", policy=DisabledPolicy(), match_all=True)


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class DashboardSnapshot:
    """Derived view of one dashboard's tier membership and allowed moves.

    Snapshots are recomputed from fresh inventories on every call and never
    persisted.
    """

    dashboard_name: str
    archive_state: ArchiveState
    state: LiveState
    matched_rule_name: str
    is_forced_enabled: bool = False
    is_forced_disabled: bool = False
    can_enable: bool = False
    can_disable: bool = False
    can_delete: bool = False
    can_activate: bool = False
    can_deactivate: bool = False
    updated_at: datetime | None = None
    deactivate_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "dashboard_name": self.dashboard_name,
            "archive_state": self.archive_state.value,
            "state": self.state.value,
            "matched_rule_name": self.matched_rule_name,
            "is_forced_enabled": self.is_forced_enabled,
            "is_forced_disabled": self.is_forced_disabled,
            "can_enable": self.can_enable,
            "can_disable": self.can_disable,
            "can_delete": self.can_delete,
            "can_activate": self.can_activate,
            "can_deactivate": self.can_deactivate,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deactivate_at": (
                self.deactivate_at.isoformat() if self.deactivate_at else None
            ),
        }


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class Action:
    """Intent to transition one dashboard, or to run a reconciliation pass.

    Example:
        >>> Action(ActionType.ACTIVATE, "Sales")
        >>> Action.from_dict({"type": "ScheduledJob"})
    """

    type: ActionType
    dashboard_name: str | None = None

    def __post_init__(self) -> None:
        if self.type is ActionType.SCHEDULED_JOB:
            if self.dashboard_name is not None:
                raise InvalidActionError("ScheduledJob does not take a dashboard name")
        elif not self.dashboard_name:
            raise InvalidActionError(f"{self.type.value} requires a dashboard name")

    @classmethod
    def scheduled_job(cls) -> "Action":
        """Create the periodic reconciliation action."""
        return cls(ActionType.SCHEDULED_JOB)

    @classmethod
    def from_dict(cls, data: Any) -> "Action":
        """Create from an event payload.

        Accepts ``{"type": "Enable", "dashboardName": "x"}`` as sent by the
        dashboard widget, and ``dashboard_name`` as an alternative key.
        """
        if not isinstance(data, dict):
            raise InvalidActionError("payload must be an object", data)
        raw_type = data.get("type")
        if not isinstance(raw_type, str):
            raise InvalidActionError("missing action type", data)
        action_type = ActionType.from_string(raw_type)
        name = data.get("dashboardName", data.get("dashboard_name"))
        if name is not None and not isinstance(name, str):
            raise InvalidActionError("dashboard name must be a string", data)
        if action_type is ActionType.SCHEDULED_JOB:
            name = None
        return cls(action_type, name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the event payload shape."""
        data: dict[str, Any] = {"type": self.type.value}
        if self.dashboard_name is not None:
            data["dashboardName"] = self.dashboard_name
        return data

    def __str__(self) -> str:
        if self.dashboard_name is None:
            return self.type.value
        return f"{self.type.value}({self.dashboard_name})"
