"""Ondemand - Two-Tier Lifecycle Manager for CloudWatch Dashboards."""

from ondemand.stores import get_store
from ondemand.stores.tiering import (
    Action,
    ActionType,
    DashboardManager,
    DashboardSnapshot,
    ReconciliationScheduler,
    Rule,
    get_preset,
    parse_rules,
)
from ondemand.infrastructure.config import ManagerSettings, load_settings

__version__ = "0.1.0"

__all__ = [
    "Action",
    "ActionType",
    "DashboardManager",
    "DashboardSnapshot",
    "ManagerSettings",
    "ReconciliationScheduler",
    "Rule",
    "get_preset",
    "get_store",
    "load_settings",
    "parse_rules",
    "__version__",
]
