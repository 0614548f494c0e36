"""Rule matching, parsing and presets.

Rules are configuration: an ordered list loaded once per process. The first
rule whose matcher holds governs a dashboard; the builtin rule catches the
rest.

Rules are written in the camelCase form used by the deployment environment
(``RULES`` is a JSON list)::

    [
        {"ruleName": "Protect ODD", "matchODD": true, "archive": "Disabled"},
        {
            "ruleName": "All Manual",
            "matchAll": true,
            "archive": "Manual",
            "allowActivate": true,
            "allowDeactivate": true,
            "allowDelete": true,
            "ttl": 259200000
        }
    ]

``ttl`` is in milliseconds. The equivalent snake_case keys (``rule_name``,
``match_on_demand``, ``ttl_millis``, ...) are accepted too.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable, Mapping, Sequence

from ondemand.stores.tiering.base import (
    BUILTIN_RULE,
    ArchiveMode,
    DisabledPolicy,
    ManagedPolicy,
    Rule,
    RuleParseError,
)


# =============================================================================
# Matching
# =============================================================================


def match_rule(
    dashboard_name: str,
    on_demand_name: str | None,
    rules: Sequence[Rule],
    default_rule: Rule = BUILTIN_RULE,
) -> Rule:
    """Select the rule governing a dashboard.

    Args:
        dashboard_name: Dashboard to match.
        on_demand_name: Name of the on-demand management dashboard.
        rules: Rules in priority order.
        default_rule: Returned when no rule matches.

    Returns:
        The first matching rule, or ``default_rule``.
    """
    for rule in rules:
        if rule.matches(dashboard_name, on_demand_name):
            return rule
    return default_rule


# =============================================================================
# Parsing
# =============================================================================

_KEY_ALIASES = {
    "ruleName": "rule_name",
    "matchAll": "match_all",
    "matchODD": "match_on_demand",
    "matchOdd": "match_on_demand",
    "matchByName": "match_by_name",
    "allowActivate": "allow_activate",
    "allowDeactivate": "allow_deactivate",
    "allowDelete": "allow_delete",
    "ttl": "ttl_millis",
    "archiveMode": "archive",
    "archive_mode": "archive",
}

_KNOWN_KEYS = frozenset(
    {
        "rule_name",
        "archive",
        "match_all",
        "match_on_demand",
        "match_by_name",
        "allow_activate",
        "allow_deactivate",
        "allow_delete",
        "ttl_millis",
    }
)

_ALLOW_KEYS = ("allow_activate", "allow_deactivate", "allow_delete")


def _normalize_keys(data: Mapping[str, Any], index: int | None) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        canonical = _KEY_ALIASES.get(key, key)
        if canonical not in _KNOWN_KEYS:
            raise RuleParseError(f"unknown key {key!r}", index)
        normalized[canonical] = value
    return normalized


def _parse_mode(value: Any, index: int | None) -> ArchiveMode:
    if isinstance(value, ArchiveMode):
        return value
    if isinstance(value, str):
        for mode in ArchiveMode:
            if mode.value.lower() == value.lower():
                return mode
    raise RuleParseError(
        f"archive must be one of Disabled, Enabled, Manual (got {value!r})", index
    )


def _parse_bool(data: Mapping[str, Any], key: str, index: int | None) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise RuleParseError(f"{key} must be a boolean (got {value!r})", index)
    return value


def _parse_ttl(value: Any, index: int | None) -> timedelta | None:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleParseError(f"ttl must be a number of milliseconds (got {value!r})", index)
    if value <= 0:
        raise RuleParseError(f"ttl must be positive (got {value!r})", index)
    return timedelta(milliseconds=value)


def parse_rule(data: Mapping[str, Any], index: int | None = None) -> Rule:
    """Build a Rule from its configuration mapping.

    Args:
        data: Rule mapping (camelCase or snake_case keys).
        index: Position in the rule list, for error messages.

    Raises:
        RuleParseError: If the mapping is malformed.
    """
    if not isinstance(data, Mapping):
        raise RuleParseError(f"rule must be an object (got {type(data).__name__})", index)

    fields = _normalize_keys(data, index)

    rule_name = fields.get("rule_name")
    if not isinstance(rule_name, str) or not rule_name:
        raise RuleParseError("ruleName is required", index)

    if "archive" not in fields:
        raise RuleParseError(f"{rule_name}: archive is required", index)
    mode = _parse_mode(fields["archive"], index)

    names = fields.get("match_by_name") or []
    if isinstance(names, str) or not isinstance(names, Iterable):
        raise RuleParseError(f"{rule_name}: matchByName must be a list of names", index)
    names = list(names)
    if not all(isinstance(n, str) for n in names):
        raise RuleParseError(f"{rule_name}: matchByName must contain strings", index)

    if mode is ArchiveMode.DISABLED:
        extra = [k for k in (*_ALLOW_KEYS, "ttl_millis") if fields.get(k) is not None]
        if extra:
            raise RuleParseError(
                f"{rule_name}: {', '.join(extra)} not allowed when archive is Disabled",
                index,
            )
        policy: DisabledPolicy | ManagedPolicy = DisabledPolicy()
    else:
        policy = ManagedPolicy(
            mode=mode,
            allow_activate=_parse_bool(fields, "allow_activate", index),
            allow_deactivate=_parse_bool(fields, "allow_deactivate", index),
            allow_delete=_parse_bool(fields, "allow_delete", index),
            ttl=_parse_ttl(fields.get("ttl_millis"), index),
        )

    return Rule(
        rule_name=rule_name,
        policy=policy,
        match_all=_parse_bool(fields, "match_all", index),
        match_on_demand=_parse_bool(fields, "match_on_demand", index),
        match_by_name=frozenset(names),
    )


def parse_rules(data: Any) -> list[Rule]:
    """Build the ordered rule list from a configuration value.

    Raises:
        RuleParseError: If the value is not a list or any rule is malformed.
    """
    if data is None:
        return []
    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        raise RuleParseError(f"rules must be a list (got {type(data).__name__})")
    return [parse_rule(item, index) for index, item in enumerate(data)]


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    """Convert a rule to its camelCase configuration form."""
    data: dict[str, Any] = {"ruleName": rule.rule_name, "archive": rule.archive_mode.value}
    if rule.match_all:
        data["matchAll"] = True
    if rule.match_on_demand:
        data["matchODD"] = True
    if rule.match_by_name:
        data["matchByName"] = sorted(rule.match_by_name)
    managed = rule.managed
    if managed is not None:
        data["allowActivate"] = managed.allow_activate
        data["allowDeactivate"] = managed.allow_deactivate
        data["allowDelete"] = managed.allow_delete
        if managed.ttl is not None:
            data["ttl"] = managed.ttl // timedelta(milliseconds=1)
    return data


# =============================================================================
# Presets
# =============================================================================


def _all_rule(name: str, mode: ArchiveMode, ttl: timedelta) -> Rule:
    return Rule(
        rule_name=name,
        match_all=True,
        policy=ManagedPolicy(
            mode=mode,
            allow_activate=True,
            allow_deactivate=True,
            allow_delete=True,
            ttl=ttl,
        ),
    )


_PROTECT_ON_DEMAND = Rule(
    rule_name="Protect ODD", match_on_demand=True, policy=DisabledPolicy()
)

_DEMO_NAMES = frozenset({"OnDemandDashboardAdmin", "Dummy1"})

PRESET_RULES: dict[str, tuple[Rule, ...]] = {
    "Demo1": (
        Rule(
            rule_name="Manual",
            match_by_name=_DEMO_NAMES,
            policy=ManagedPolicy(
                mode=ArchiveMode.MANUAL,
                allow_activate=True,
                allow_deactivate=True,
                allow_delete=True,
                ttl=timedelta(minutes=3),
            ),
        ),
    ),
    "Demo2": (
        Rule(
            rule_name="Enabled without control",
            match_by_name=_DEMO_NAMES,
            policy=ManagedPolicy(mode=ArchiveMode.ENABLED, ttl=timedelta(minutes=3)),
        ),
    ),
    "AllManualExceptODD": (
        _PROTECT_ON_DEMAND,
        _all_rule("All Manual", ArchiveMode.MANUAL, timedelta(days=3)),
    ),
    "AllEnabledExceptODD": (
        _PROTECT_ON_DEMAND,
        _all_rule("All Enabled", ArchiveMode.ENABLED, timedelta(days=3)),
    ),
    "AllEnabled": (_all_rule("All Enabled", ArchiveMode.ENABLED, timedelta(days=3)),),
    "AllDisabled": (),
}


def get_preset(name: str) -> list[Rule]:
    """Get a copy of a preset rule list.

    Raises:
        RuleParseError: If the preset doesn't exist.
    """
    try:
        return list(PRESET_RULES[name])
    except KeyError:
        raise RuleParseError(
            f"unknown rule preset {name!r}; available: {', '.join(PRESET_RULES)}"
        ) from None


# =============================================================================
# Rule Table
# =============================================================================

_TTL_UNITS = (
    ("day", timedelta(days=1)),
    ("hour", timedelta(hours=1)),
    ("minute", timedelta(minutes=1)),
    ("second", timedelta(seconds=1)),
    ("millisecond", timedelta(milliseconds=1)),
)


def format_ttl(ttl: timedelta) -> str:
    """Render a TTL for humans, e.g. ``"3 days"`` or ``"1 hour 30 minutes"``."""
    remaining = ttl
    parts = []
    for unit, size in _TTL_UNITS:
        count = remaining // size
        if count:
            parts.append(f"{count} {unit}{'s' if count != 1 else ''}")
            remaining -= size * count
    return " ".join(parts) or "0 milliseconds"


def describe_rules(
    rules: Sequence[Rule], default_rule: Rule = BUILTIN_RULE
) -> list[dict[str, str]]:
    """Build the effective rule table, builtin rule last.

    Every cell is a string; ``"-"`` marks a value that does not apply.
    """

    def flag(value: bool) -> str:
        return "true" if value else "-"

    table = []
    for priority, rule in enumerate([*rules, default_rule], start=1):
        managed = rule.managed
        table.append(
            {
                "priority": str(priority),
                "rule_name": rule.rule_name,
                "match_all": flag(rule.match_all),
                "match_on_demand": flag(rule.match_on_demand),
                "match_by_name": ", ".join(sorted(rule.match_by_name)) or "-",
                "archive": rule.archive_mode.value,
                "ttl": format_ttl(managed.ttl) if managed and managed.ttl else "-",
                "allow_activate": str(managed.allow_activate).lower() if managed else "-",
                "allow_deactivate": (
                    str(managed.allow_deactivate).lower() if managed else "-"
                ),
                "allow_delete": str(managed.allow_delete).lower() if managed else "-",
            }
        )
    return table
