"""Configuration management for the dashboard manager.

This module loads the deployment settings from ordered sources and validates
them into an immutable ``ManagerSettings`` value:

Architecture:
    ConfigSource[] (ordered by priority)
         |
         +---> FileConfigSource (YAML, JSON, TOML)      priority 50
         +---> EnvConfigSource (environment variables)  priority 100
         |
         v
    ConfigManager
         |
         +---> Merge & Validate
         |
         v
    ManagerSettings (typed, frozen)

Usage:
    >>> from ondemand.infrastructure.config import load_settings
    >>>
    >>> settings = load_settings("ondemand.yaml")
    >>> settings.bucket_name
    'dashboard-archive'
    >>> [rule.rule_name for rule in settings.rules]
    ['Protect ODD', 'All Manual']

A configuration file uses the same keys as ``ManagerSettings``::

    rule_preset: AllManualExceptODD
    on_demand_dashboard_name: OnDemandDashboardAdmin
    bucket_name: dashboard-archive
    region: us-east-1
    job_interval_minutes: 60
"""

from __future__ import annotations

import json
import math
import os
import threading
import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from ondemand.stores.tiering.base import Rule, RuleParseError
from ondemand.stores.tiering.rules import get_preset, parse_rules, rule_to_dict


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(Exception):
    """Base error for manager settings."""

    pass


class ConfigValidationError(ConfigError):
    """Merged settings failed validation; ``errors`` lists every problem."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Configuration validation failed: {', '.join(errors)}")


class ConfigSourceError(ConfigError):
    """A settings layer could not be read or parsed."""

    pass


# =============================================================================
# Configuration Sources
# =============================================================================


class ConfigSource(ABC):
    """A layer of raw manager settings.

    Layers yield raw keys; only ``ConfigManager`` validates them.
    Sources are merged in priority order; a higher priority overrides a
    lower one.
    """

    def __init__(self, priority: int = 0) -> None:
        """Create a layer.

        Args:
            priority: Source priority (higher = processed later, overrides earlier).
        """
        self._priority = priority

    @property
    def priority(self) -> int:
        """Merge order; higher layers override lower ones."""
        return self._priority

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Return this layer's raw key-value pairs.

        Returns:
            Raw settings keyed by snake_case name.

        Raises:
            ConfigSourceError: If the source exists but cannot be read.
        """
        pass


#: Environment variables read by ``EnvConfigSource`` and their settings keys.
ENV_VARS: dict[str, str] = {
    "RULES": "rules",
    "RULE_PRESET": "rule_preset",
    "ON_DEMAND_DASHBOARD_NAME": "on_demand_dashboard_name",
    "BUCKET_NAME": "bucket_name",
    "AWS_REGION": "region",
    "REDIRECT_URL": "redirect_url",
    "S3_ENDPOINT_URL": "s3_endpoint_url",
    "CLOUDWATCH_ENDPOINT_URL": "cloudwatch_endpoint_url",
    "JOB_INTERVAL_MINUTES": "job_interval_minutes",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


class EnvConfigSource(ConfigSource):
    """Settings from the deployment environment (Lambda variables).

    Reads a fixed set of variables (see ``ENV_VARS``). ``RULES`` holds the
    rule list as JSON; every other value is kept as a string. Empty
    variables are ignored.

    Example:
        RULES='[{"ruleName": "All", "matchAll": true, "archive": "Manual"}]'
        BUCKET_NAME=dashboard-archive

        Will produce:
        {"rules": [{"ruleName": "All", ...}], "bucket_name": "dashboard-archive"}
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        variables: Mapping[str, str] | None = None,
        priority: int = 100,
    ) -> None:
        """Create the environment layer.

        Args:
            environ: Environment mapping (defaults to ``os.environ``).
            variables: Variable name to settings key mapping.
            priority: Source priority.
        """
        super().__init__(priority)
        self._environ = environ
        self._variables = dict(variables or ENV_VARS)

    def load(self) -> dict[str, Any]:
        """Read the known variables, decoding ``RULES`` as JSON."""
        environ = os.environ if self._environ is None else self._environ
        result: dict[str, Any] = {}

        for var, key in self._variables.items():
            value = environ.get(var)
            if value is None or value.strip() == "":
                continue
            if key == "rules":
                try:
                    result[key] = json.loads(value)
                except json.JSONDecodeError as e:
                    raise ConfigSourceError(f"{var} is not valid JSON: {e}") from e
            else:
                result[key] = value.strip()

        return result


class FileConfigSource(ConfigSource):
    """Settings from a YAML, JSON or TOML file.

    YAML is read with PyYAML and TOML with ``tomllib``.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        required: bool = False,
        priority: int = 50,
    ) -> None:
        """Create a file layer.

        Args:
            path: Path to configuration file.
            required: Raise error if file not found.
            priority: Source priority.
        """
        super().__init__(priority)
        self._path = Path(path)
        self._required = required

    @property
    def path(self) -> Path:
        """Get the file path."""
        return self._path

    def load(self) -> dict[str, Any]:
        """Parse the file by its extension."""
        if not self._path.exists():
            if self._required:
                raise ConfigSourceError(f"Configuration file not found: {self._path}")
            return {}

        suffix = self._path.suffix.lower()
        try:
            content = self._path.read_text(encoding="utf-8")

            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif suffix == ".json":
                data = json.loads(content)
            elif suffix == ".toml":
                data = tomllib.loads(content)
            else:
                raise ConfigSourceError(f"Unsupported file format: {suffix}")

        except ConfigSourceError:
            raise
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigSourceError(f"Failed to load config {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigSourceError(
                f"Configuration file {self._path} must contain a mapping"
            )
        return data


class DictConfigSource(ConfigSource):
    """In-memory configuration source for programmatic use and tests."""

    def __init__(self, data: Mapping[str, Any], priority: int = 200) -> None:
        super().__init__(priority)
        self._data = dict(data)

    def load(self) -> dict[str, Any]:
        return dict(self._data)


# =============================================================================
# Settings
# =============================================================================

LOG_FORMATS = ("console", "json", "logfmt")

DEFAULT_JOB_INTERVAL = timedelta(hours=1)


@dataclass(frozen=True)
class ManagerSettings:
    """Validated deployment settings.

    Attributes:
        rules: Rules in priority order.
        on_demand_dashboard_name: Name of the management dashboard.
        bucket_name: Archive bucket.
        region: Cloud region.
        redirect_url: Public URL of the redirect endpoint.
        s3_endpoint_url: Custom S3 endpoint.
        cloudwatch_endpoint_url: Custom CloudWatch endpoint.
        job_interval: Time between scheduled reconciliation passes.
        log_level: Log level name.
        log_format: "console", "json" or "logfmt".
    """

    rules: tuple[Rule, ...] = ()
    on_demand_dashboard_name: str | None = None
    bucket_name: str | None = None
    region: str | None = None
    redirect_url: str | None = None
    s3_endpoint_url: str | None = None
    cloudwatch_endpoint_url: str | None = None
    job_interval: timedelta = DEFAULT_JOB_INTERVAL
    log_level: str = "INFO"
    log_format: str = "console"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (rules in their camelCase form)."""
        return {
            "rules": [rule_to_dict(rule) for rule in self.rules],
            "on_demand_dashboard_name": self.on_demand_dashboard_name,
            "bucket_name": self.bucket_name,
            "region": self.region,
            "redirect_url": self.redirect_url,
            "s3_endpoint_url": self.s3_endpoint_url,
            "cloudwatch_endpoint_url": self.cloudwatch_endpoint_url,
            "job_interval_minutes": self.job_interval.total_seconds() / 60,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }


_STRING_KEYS = (
    "on_demand_dashboard_name",
    "bucket_name",
    "region",
    "redirect_url",
    "s3_endpoint_url",
    "cloudwatch_endpoint_url",
)


# =============================================================================
# Configuration Manager
# =============================================================================


class ConfigManager:
    """Merges settings layers and validates them into ``ManagerSettings``.

    Merges configuration sources and validates the result.

    Example:
        >>> manager = ConfigManager()
        >>> manager.add_source(FileConfigSource("ondemand.yaml"))
        >>> manager.add_source(EnvConfigSource())
        >>>
        >>> settings = manager.load()
    """

    def __init__(self) -> None:
        self._sources: list[ConfigSource] = []
        self._config: dict[str, Any] = {}
        self._settings: ManagerSettings | None = None
        self._lock = threading.RLock()

    @property
    def sources(self) -> list[ConfigSource]:
        """Get the sources in merge order."""
        return list(self._sources)

    def add_source(self, source: ConfigSource) -> "ConfigManager":
        """Register a layer; layers are kept sorted by priority.

        Args:
            source: Configuration source.

        Returns:
            Self for chaining.
        """
        with self._lock:
            self._sources.append(source)
            self._sources.sort(key=lambda s: s.priority)
        return self

    def load(self) -> ManagerSettings:
        """Merge every layer and validate the result.

        Returns:
            Validated settings.

        Raises:
            ConfigSourceError: If a source cannot be read.
            ConfigValidationError: If the merged configuration is invalid.
        """
        with self._lock:
            self._config = {}
            for source in self._sources:
                self._config.update(source.load())

            self._settings = self._validate(self._config)
            return self._settings

    @property
    def settings(self) -> ManagerSettings:
        """Get loaded settings (loads on first access)."""
        if self._settings is None:
            return self.load()
        return self._settings

    def _validate(self, config: dict[str, Any]) -> ManagerSettings:
        errors: list[str] = []
        values: dict[str, Any] = {}

        # explicit rules take precedence over a preset
        try:
            if config.get("rules") is not None:
                values["rules"] = tuple(parse_rules(config["rules"]))
            elif config.get("rule_preset"):
                values["rules"] = tuple(get_preset(str(config["rule_preset"])))
        except RuleParseError as e:
            errors.append(str(e))

        for key in _STRING_KEYS:
            value = config.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                errors.append(f"{key} must be a string")
            else:
                values[key] = value

        interval = config.get("job_interval_minutes")
        if interval is not None:
            try:
                minutes = float(interval)
            except (TypeError, ValueError):
                errors.append(f"job_interval_minutes must be a number (got {interval!r})")
            else:
                if not math.isfinite(minutes):
                    errors.append(f"job_interval_minutes must be finite (got {interval!r})")
                elif minutes <= 0:
                    errors.append("job_interval_minutes must be positive")
                else:
                    values["job_interval"] = timedelta(minutes=minutes)

        if config.get("log_level") is not None:
            values["log_level"] = str(config["log_level"]).upper()

        log_format = config.get("log_format")
        if log_format is not None:
            log_format = str(log_format).lower()
            if log_format not in LOG_FORMATS:
                errors.append(
                    f"log_format must be one of {', '.join(LOG_FORMATS)} (got {log_format!r})"
                )
            else:
                values["log_format"] = log_format

        if errors:
            raise ConfigValidationError(errors)
        return ManagerSettings(**values)


# =============================================================================
# Convenience Functions
# =============================================================================


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ManagerSettings:
    """Load settings from an optional file and the environment.

    Args:
        config_path: Configuration file (must exist when given).
        environ: Environment mapping (defaults to ``os.environ``).
        overrides: Values that override every other source.

    Returns:
        Validated settings.
    """
    manager = ConfigManager()
    if config_path is not None:
        manager.add_source(FileConfigSource(config_path, required=True))
    manager.add_source(EnvConfigSource(environ))
    if overrides:
        manager.add_source(DictConfigSource(overrides))
    return manager.load()
