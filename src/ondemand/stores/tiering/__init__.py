"""Two-tier lifecycle management for dashboards.

Dashboards live in a hot tier (CloudWatch) and may keep a durable copy in an
archive tier (S3). Ordered rules decide, per dashboard, whether the archive
copy is enforced, opt-in or off, which user actions are allowed, and after
how long an active dashboard is evicted from the hot tier.

Example:
    >>> from ondemand.stores import get_store
    >>> from ondemand.stores.tiering import (
    ...     Action,
    ...     ActionType,
    ...     DashboardManager,
    ...     get_preset,
    ... )
    >>>
    >>> manager = DashboardManager(
    ...     hot=get_store("cloudwatch", region="us-east-1"),
    ...     archive=get_store("s3", bucket="dashboard-archive"),
    ...     rules=get_preset("AllManualExceptODD"),
    ...     on_demand_name="OnDemandDashboardAdmin",
    ... )
    >>>
    >>> # Evict a dashboard, then bring it back
    >>> await manager.action(Action(ActionType.DEACTIVATE, "Sales"))
    >>> await manager.action(Action(ActionType.ACTIVATE, "Sales"))
    >>>
    >>> # Enforce the rules and read the resulting state
    >>> snapshots = await manager.get_stable_info()
"""

from ondemand.stores.tiering.base import (
    BUILTIN_RULE,
    Action,
    ActionType,
    ArchiveMode,
    ArchivePolicy,
    ArchiveState,
    DashboardSnapshot,
    DisabledPolicy,
    InvalidActionError,
    LiveState,
    ManagedPolicy,
    ReconciliationError,
    Rule,
    RuleParseError,
    TieringError,
)
from ondemand.stores.tiering.executor import ActionExecutor
from ondemand.stores.tiering.manager import DashboardManager
from ondemand.stores.tiering.rules import (
    PRESET_RULES,
    describe_rules,
    format_ttl,
    get_preset,
    match_rule,
    parse_rule,
    parse_rules,
    rule_to_dict,
)
from ondemand.stores.tiering.scheduler import ReconciliationRun, ReconciliationScheduler
from ondemand.stores.tiering.state import (
    deactivate_at,
    derive_snapshot,
    derive_snapshots,
    natural_sort_key,
    updated_at,
)

__all__ = [
    # Base types
    "Action",
    "ActionType",
    "ArchiveMode",
    "ArchivePolicy",
    "ArchiveState",
    "BUILTIN_RULE",
    "DashboardSnapshot",
    "DisabledPolicy",
    "LiveState",
    "ManagedPolicy",
    "Rule",
    # Exceptions
    "InvalidActionError",
    "ReconciliationError",
    "RuleParseError",
    "TieringError",
    # Rules
    "PRESET_RULES",
    "describe_rules",
    "format_ttl",
    "get_preset",
    "match_rule",
    "parse_rule",
    "parse_rules",
    "rule_to_dict",
    # State
    "deactivate_at",
    "derive_snapshot",
    "derive_snapshots",
    "natural_sort_key",
    "updated_at",
    # Engine
    "ActionExecutor",
    "DashboardManager",
    "ReconciliationRun",
    "ReconciliationScheduler",
]
