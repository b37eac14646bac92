"""Configuration for metric modules and the analytics aggregator.

Defaults live in the owning modules as constants; the dataclasses here
only group them so a caller can override a subset from a TOML file::

    [power]
    window_seconds = 30

    [sessions]
    gap_minutes = 45

A ``pyproject.toml`` may carry the same tables under ``[tool.ridemetrics]``.
"""

from __future__ import annotations

import math
import tomllib
from collections.abc import Mapping as ABCMapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from ridemetrics.errors import ConfigError


@dataclass(frozen=True)
class PowerConfig:
    window_seconds: float = 30.0
    coasting_threshold_watts: float = 5.0


@dataclass(frozen=True)
class HcsrConfig:
    bucket_width: float = 10.0
    min_bucket_seconds: float = 60.0
    min_cadence: float = 20.0


@dataclass(frozen=True)
class IntervalConfig:
    interval_seconds: float = 3600.0


@dataclass(frozen=True)
class LateAerobicConfig:
    analysis_window_minutes: float = 35.0
    exclusion_buffer_minutes: float = 5.0


@dataclass(frozen=True)
class SessionConfig:
    gap_minutes: float = 30.0
    window_days: int = 30
    # label -> threshold in days since signup
    retention_milestones: tuple[tuple[str, int], ...] = (
        ("D0", 0),
        ("D1", 1),
        ("D7", 7),
        ("D30", 30),
    )


@dataclass(frozen=True)
class ActiveUserConfig:
    scan_days: int = 90
    week_days: int = 7
    month_days: int = 30


@dataclass(frozen=True)
class AlertConfig:
    window_minutes: float = 10.0
    upload_p95_ms: float = 5000.0
    failure_rate: float = 0.08


@dataclass(frozen=True)
class RideMetricsConfig:
    """Root configuration object."""

    power: PowerConfig = field(default_factory=PowerConfig)
    hcsr: HcsrConfig = field(default_factory=HcsrConfig)
    intervals: IntervalConfig = field(default_factory=IntervalConfig)
    late_aerobic: LateAerobicConfig = field(default_factory=LateAerobicConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    active_users: ActiveUserConfig = field(default_factory=ActiveUserConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)


DEFAULT_CONFIG = RideMetricsConfig()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


# Widths and window lengths must be strictly positive.
_POSITIVE_KEYS = frozenset({
    "window_seconds",
    "bucket_width",
    "interval_seconds",
    "gap_minutes",
    "window_days",
    "scan_days",
    "week_days",
    "month_days",
})


def _coerce(section: str, name: str, default: Any, value: Any) -> Any:
    if name == "retention_milestones":
        if not isinstance(value, ABCMapping) or not value:
            raise ConfigError(f"[{section}] {name} must be a table of label = days")
        pairs = []
        for label, days in value.items():
            if isinstance(days, bool) or not isinstance(days, int) or days < 0:
                raise ConfigError(f"[{section}] {name}.{label} must be a non-negative integer")
            pairs.append((str(label), days))
        return tuple(sorted(pairs, key=lambda pair: pair[1]))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"[{section}] {name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"[{section}] {name} must be finite, got {value!r}")
    if name in _POSITIVE_KEYS and value <= 0:
        raise ConfigError(f"[{section}] {name} must be > 0, got {value!r}")
    if value < 0:
        raise ConfigError(f"[{section}] {name} must be >= 0, got {value!r}")
    if isinstance(default, int):
        if not float(value).is_integer():
            raise ConfigError(f"[{section}] {name} must be an integer, got {value!r}")
        return int(value)
    return float(value)


def config_from_mapping(payload: ABCMapping[str, Any]) -> RideMetricsConfig:
    """Build a config from nested tables, rejecting unknown keys."""
    config = DEFAULT_CONFIG
    sections = {f.name: f for f in fields(RideMetricsConfig)}
    for section_name, table in payload.items():
        if section_name not in sections:
            raise ConfigError(f"unknown config section: [{section_name}]")
        if not isinstance(table, ABCMapping):
            raise ConfigError(f"[{section_name}] must be a table")
        current = getattr(config, section_name)
        known = {f.name for f in fields(current)}
        updates: dict[str, Any] = {}
        for name, value in table.items():
            if name not in known:
                raise ConfigError(f"unknown key in [{section_name}]: {name}")
            updates[name] = _coerce(section_name, name, getattr(current, name), value)
        config = replace(config, **{section_name: replace(current, **updates)})
    return config


def load_config(path: str | Path) -> RideMetricsConfig:
    """Load configuration from a TOML file.

    For a ``pyproject.toml`` only the ``[tool.ridemetrics]`` table is read
    (defaults when it is absent).
    """
    path = Path(path).expanduser()
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc

    if path.name == "pyproject.toml":
        data = data.get("tool", {}).get("ridemetrics", {})
    return config_from_mapping(data)
