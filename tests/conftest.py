"""Shared fixtures and helpers for the ridemetrics test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from ridemetrics.models import Activity, Sample


# A Wednesday; the current week starts Monday 2024-06-10.
NOW = datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)
TODAY = datetime(2024, 6, 12, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Sample builders
# ---------------------------------------------------------------------------


def _channel(value: Any, i: int) -> Any:
    if isinstance(value, (list, tuple)):
        return value[i]
    return value


def make_samples(
    n: int,
    power: Any = None,
    heart_rate: Any = None,
    cadence: Any = None,
    temperature: Any = None,
    start: float = 0.0,
    step: float = 1.0,
) -> list[Sample]:
    """Build *n* samples ``step`` seconds apart.

    Each channel is either a scalar (repeated) or a per-sample list.
    """
    return [
        Sample(
            t=start + i * step,
            power=_channel(power, i),
            heart_rate=_channel(heart_rate, i),
            cadence=_channel(cadence, i),
            temperature=_channel(temperature, i),
        )
        for i in range(n)
    ]


def cadence_block(cadence: float, heart_rate: float, seconds: int, start: float = 0.0) -> list[Sample]:
    """``seconds`` 1 Hz samples at a fixed cadence and heart rate."""
    return make_samples(seconds, cadence=cadence, heart_rate=heart_rate, start=start)


def make_activity(
    samples: list[Sample],
    sample_rate_hz: float | None = 1.0,
    duration_sec: float | None = None,
    activity_id: str = "act-1",
) -> Activity:
    return Activity(
        id=activity_id,
        samples=tuple(samples),
        sample_rate_hz=sample_rate_hz,
        duration_sec=duration_sec,
    )


# ---------------------------------------------------------------------------
# Analytics record builders (JSON-style mappings)
# ---------------------------------------------------------------------------


def iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def user(user_id: str, created_at: datetime, **extra: Any) -> dict:
    return {"id": user_id, "createdAt": iso(created_at), "email": f"{user_id}@example.com", **extra}


def activity(activity_id: str, user_id: str | None, start: datetime, **extra: Any) -> dict:
    return {"id": activity_id, "userId": user_id, "startTime": iso(start), **extra}


def event(kind: str, at: datetime, user_id: str | None = None, **extra: Any) -> dict:
    payload = {"type": kind, "createdAt": iso(at), "userId": user_id}
    payload.update(extra)
    return payload


def minutes_ago(minutes: float, now: datetime = NOW) -> datetime:
    return now - timedelta(minutes=minutes)


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


@pytest.fixture
def now() -> datetime:
    return NOW
