"""Availability, job queue, exceptions, and upload-abuse checks."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from ridemetrics.analytics.calendar import DAY, MINUTE, iso_timestamp, minute_bucket
from ridemetrics.analytics.records import ExceptionEvent, PendingJob, RequestMetric, StorageSnapshot
from ridemetrics.stats import round_half_up

SLO_TARGET = 0.995
SERVER_ERROR_STATUS = 500
EXCEPTION_LIMIT = 10
STACK_LINES = 5

SUSPICIOUS_WINDOW = timedelta(minutes=10)
SUSPICIOUS_UPLOADS = 50
SUSPICIOUS_LIMIT = 20


def availability(requests: Iterable[RequestMetric], now: datetime) -> dict[str, Any]:
    """Per-minute availability over the last 24 hours.

    A minute with no requests does not appear.  ``burnRate`` is the error
    budget consumption rate against :data:`SLO_TARGET`.
    """
    since = now - DAY
    buckets: dict[datetime, list[int]] = {}
    for request in requests:
        if request.timestamp < since:
            continue
        bucket = buckets.setdefault(minute_bucket(request.timestamp), [0, 0])
        bucket[0] += 1
        if request.status_code >= SERVER_ERROR_STATUS:
            bucket[1] += 1

    series = [
        {
            "timestamp": iso_timestamp(minute),
            "availability": (total - errors) / total if total else 1.0,
            "total": total,
            "errors": errors,
        }
        for minute, (total, errors) in sorted(buckets.items())
    ]
    total_requests = sum(point["total"] for point in series)
    total_errors = sum(point["errors"] for point in series)
    overall = (total_requests - total_errors) / total_requests if total_requests else 1.0
    return {
        "current": series[-1]["availability"] if series else 1.0,
        "errorRatio": total_errors / total_requests if total_requests else 0.0,
        "burnRate": (1.0 - overall) / (1.0 - SLO_TARGET),
        "series": series,
    }


def queue_status(jobs: Sequence[PendingJob], now: datetime) -> dict[str, Any]:
    if not jobs:
        return {"depth": 0, "oldestMinutes": None}
    oldest = min(job.enqueued_at for job in jobs)
    return {"depth": len(jobs), "oldestMinutes": round_half_up((now - oldest) / MINUTE)}


def top_exceptions(exceptions: Iterable[ExceptionEvent], limit: int = EXCEPTION_LIMIT) -> list[dict[str, Any]]:
    """Exceptions grouped by name; the first stack seen is kept, trimmed."""
    counts: Counter[str] = Counter()
    stacks: dict[str, str | None] = {}
    for event in exceptions:
        counts[event.name] += 1
        if event.name not in stacks:
            stacks[event.name] = "\n".join(event.stack.split("\n")[:STACK_LINES]) if event.stack is not None else None
    return [
        {"name": name, "count": count, "sampleStack": stacks[name]}
        for name, count in counts.most_common(limit)
    ]


def build_reliability_section(
    requests: Sequence[RequestMetric],
    jobs: Sequence[PendingJob],
    exceptions: Sequence[ExceptionEvent],
    now: datetime,
) -> dict[str, Any]:
    return {
        "availability": availability(requests, now),
        "queue": queue_status(jobs, now),
        "exceptions": top_exceptions(exceptions),
    }


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


def burst_window(
    timestamps: Sequence[datetime],
    window: timedelta = SUSPICIOUS_WINDOW,
    threshold: int = SUSPICIOUS_UPLOADS,
) -> tuple[int, datetime] | None:
    """First window of *threshold* or more timestamps within *window*.

    Two-pointer scan over the sorted timestamps.  Returns the count and
    start of the first qualifying window, or None.
    """
    ordered = sorted(timestamps)
    start = 0
    for end, moment in enumerate(ordered):
        while moment - ordered[start] > window:
            start += 1
        count = end - start + 1
        if count >= threshold:
            return count, ordered[start]
    return None


def suspicious_uploaders(
    upload_times: Mapping[str, Sequence[datetime]],
    emails: Mapping[str, str],
    limit: int = SUSPICIOUS_LIMIT,
) -> list[dict[str, Any]]:
    """Users with a burst of successful uploads.

    Only users with more than :data:`SUSPICIOUS_UPLOADS` uploads in the
    batch are scanned.
    """
    flagged = []
    for user, times in upload_times.items():
        if len(times) <= SUSPICIOUS_UPLOADS:
            continue
        burst = burst_window(times)
        if burst is None:
            continue
        count, window_start = burst
        flagged.append({
            "userId": user,
            "email": emails.get(user, "unknown"),
            "uploads": count,
            "windowStart": iso_timestamp(window_start),
        })
    return flagged[:limit]


def build_safety_section(
    upload_times: Mapping[str, Sequence[datetime]],
    emails: Mapping[str, str],
    snapshot: StorageSnapshot,
    now: datetime,
) -> dict[str, Any]:
    return {
        "suspicious": suspicious_uploaders(upload_times, emails),
        "storage": {
            "orphanCount": snapshot.orphan_count,
            "dbActivityCount": snapshot.db_activity_count,
            "scannedAt": iso_timestamp(now),
        },
    }
