"""Telemetry samples, activities, and metric records.

Samples come from an external importer that has already parsed the device
file; this module only normalizes the mapping shape (camelCase or
snake_case keys) into frozen dataclasses.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from ridemetrics.errors import MalformedRecordError


_SAMPLE_FIELDS = {
    "heart_rate": ("heartRate", "heart_rate"),
    "cadence": ("cadence",),
    "power": ("power",),
    "speed": ("speed",),
    "elevation": ("elevation",),
    "temperature": ("temperature",),
    "latitude": ("latitude",),
    "longitude": ("longitude",),
}


def finite_or_none(value: Any) -> float | None:
    """Coerce *value* to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def is_finite(value: float | None) -> bool:
    """True for a present, finite channel value."""
    return value is not None and math.isfinite(value)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise MalformedRecordError(f"invalid timestamp: {value!r}") from exc
    else:
        raise MalformedRecordError(f"invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_camel(name: str) -> str:
    """``snake_case`` -> ``camelCase``."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_asdict(obj: Any) -> dict[str, Any]:
    """``dataclasses.asdict`` with camelCase keys at every level."""
    return asdict(obj, dict_factory=lambda items: {to_camel(k): v for k, v in items})


def _pick(payload: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        if name in payload:
            return payload[name]
    return None


@dataclass(frozen=True)
class Sample:
    """One telemetry instant, ``t`` seconds from activity start."""

    t: float
    heart_rate: float | None = None
    cadence: float | None = None
    power: float | None = None
    speed: float | None = None
    elevation: float | None = None
    temperature: float | None = None
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Sample":
        """Build a sample from an importer record.

        Non-finite channel values become None.  A missing or non-finite
        ``t`` is a malformed record.
        """
        t = finite_or_none(payload.get("t"))
        if t is None:
            raise MalformedRecordError(f"sample without a finite 't': {payload!r}")
        channels = {
            name: finite_or_none(_pick(payload, keys))
            for name, keys in _SAMPLE_FIELDS.items()
        }
        return cls(t=t, **channels)


@dataclass(frozen=True)
class Activity:
    """A recorded ride and its samples (sorted by ``t``)."""

    id: str
    samples: tuple[Sample, ...] = ()
    source: str | None = None
    start_time: datetime | None = None
    duration_sec: float | None = None
    sample_rate_hz: float | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Activity":
        if "id" not in payload:
            raise MalformedRecordError("activity without an 'id'")
        raw_samples = payload.get("samples") or []
        samples = sorted(
            (Sample.from_mapping(item) for item in raw_samples),
            key=lambda s: s.t,
        )
        start = _pick(payload, ("startTime", "start_time"))
        return cls(
            id=str(payload["id"]),
            samples=tuple(samples),
            source=payload.get("source"),
            start_time=parse_timestamp(start) if start is not None else None,
            duration_sec=finite_or_none(_pick(payload, ("durationSec", "duration_sec"))),
            sample_rate_hz=finite_or_none(_pick(payload, ("sampleRateHz", "sample_rate_hz"))),
        )


@dataclass(frozen=True)
class MetricDefinition:
    """Static registry entry; ``version`` bumps invalidate stored results."""

    key: str
    name: str
    version: int
    description: str
    units: str | None = None
    compute_config: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "units": self.units,
            "computeConfig": dict(self.compute_config),
        }


@dataclass
class MetricComputation:
    """What a metric module returns: a flat summary and an optional series."""

    summary: dict[str, float | int | None]
    series: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict; ``series`` is omitted when absent."""
        payload: dict[str, Any] = {"summary": dict(self.summary)}
        if self.series is not None:
            payload["series"] = [dict(point) for point in self.series]
        return payload


@dataclass
class MetricResult:
    """The current stored result for one (activity, metric key)."""

    activity_id: str
    key: str
    version: int
    summary: dict[str, float | int | None]
    series: list[dict[str, Any]] | None
    computed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "key": self.key,
            "version": self.version,
            "summary": dict(self.summary),
            "series": self.series,
            "computedAt": self.computed_at.isoformat(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
