"""Endpoint timings, storage growth, and recompute cost."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from ridemetrics.analytics.calendar import MINUTE, trailing_days
from ridemetrics.analytics.records import RequestMetric, StorageSnapshot
from ridemetrics.analytics.usage import EventTallies
from ridemetrics.stats import linear_regression_slope

ENDPOINT_LIMIT = 20
STORAGE_DAYS = 7
RECOMPUTE_COST_PER_MINUTE = 0.12  # USD

_MINUTE_MS = MINUTE.total_seconds() * 1000


@dataclass
class _EndpointTotals:
    method: str
    path: str
    duration_ms: float = 0.0
    query_duration_ms: float = 0.0
    queries: float = 0.0
    requests: int = 0


def endpoint_metrics(requests: Iterable[RequestMetric], limit: int = ENDPOINT_LIMIT) -> list[dict[str, Any]]:
    """Per ``METHOD path`` averages, slowest first."""
    totals: dict[str, _EndpointTotals] = {}
    for request in requests:
        key = f"{request.method} {request.path}"
        entry = totals.get(key)
        if entry is None:
            entry = totals[key] = _EndpointTotals(method=request.method, path=request.path)
        entry.duration_ms += request.duration_ms
        entry.query_duration_ms += request.avg_query_duration_ms * request.query_count
        entry.queries += request.query_count
        entry.requests += 1

    rows = [
        {
            "method": e.method,
            "path": e.path,
            "avgDurationMs": e.duration_ms / e.requests if e.requests else 0.0,
            "avgQueryCount": e.queries / e.requests if e.requests else 0.0,
            "avgQueryDurationMs": e.query_duration_ms / e.queries if e.queries else 0.0,
            "requestCount": e.requests,
        }
        for e in totals.values()
    ]
    rows.sort(key=lambda row: -row["avgDurationMs"])
    return rows[:limit]


def storage_summary(
    bytes_by_day: Mapping[str, float],
    today: datetime,
    snapshot: StorageSnapshot,
) -> dict[str, Any]:
    """Uploaded bytes over the last week and their least-squares trend."""
    daily = [{"date": day, "bytes": bytes_by_day.get(day, 0.0)} for day in trailing_days(today, STORAGE_DAYS)]
    slope = linear_regression_slope([(float(i), entry["bytes"]) for i, entry in enumerate(daily)])
    return {
        "uploadsDirBytes": snapshot.uploads_dir_bytes,
        "postgresBytes": snapshot.postgres_bytes,
        "sevenDaySlopeBytesPerDay": slope,
        "dailyTotals": daily,
    }


def recompute_cost(durations: Sequence[float], by_day: Mapping[str, Sequence[float]]) -> dict[str, Any]:
    total_minutes = sum(durations) / _MINUTE_MS
    return {
        "totalMinutes": total_minutes,
        "estimatedUsd": total_minutes * RECOMPUTE_COST_PER_MINUTE,
        "dailyMinutes": [
            {"date": day, "minutes": sum(values) / _MINUTE_MS}
            for day, values in sorted(by_day.items())
        ],
    }


def build_performance_section(
    requests: Sequence[RequestMetric],
    tallies: EventTallies,
    today: datetime,
    snapshot: StorageSnapshot,
) -> dict[str, Any]:
    return {
        "db": endpoint_metrics(requests),
        "storage": storage_summary(tallies.upload_bytes_by_day, today, snapshot),
        "recomputeCost": recompute_cost(tallies.recompute_durations, tallies.recompute_durations_by_day),
    }
