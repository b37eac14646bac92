"""Event tallies and the usage, quality, and UX sections.

:class:`EventTallies` walks the event batch once and keeps every per-day,
per-user and per-code counter the section builders need.  The builders
are then pure functions of the tallies.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from ridemetrics.analytics.calendar import DAY, format_day, iso_timestamp, start_of_week_utc, trailing_days
from ridemetrics.analytics.records import EventRecord, MetricDefinitionRef, to_number
from ridemetrics.analytics.segments import UsageVector
from ridemetrics.stats import percentile

USAGE_DAYS = 30
UPLOADS_PER_USER_LIMIT = 20
RECOMPUTE_TOP_USERS = 10
TOP_ACTIVITIES_LIMIT = 20
BAD_DATA_MIN_UPLOADS = 5
BAD_DATA_MIN_FAILURE_RATE = 0.2
BAD_DATA_LIMIT = 20

FUNNEL_STEPS = ("signup", "upload", "view", "export")


@dataclass
class UploadCounts:
    success: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed


@dataclass
class RecomputeHistory:
    count: int = 0
    last_run_at: datetime | None = None
    users: set[str] = field(default_factory=set)


@dataclass
class EventTallies:
    """Counters gathered in one pass over the event batch."""

    uploads_per_day: dict[str, UploadCounts] = field(default_factory=dict)
    uploads_per_user: dict[str, UploadCounts] = field(default_factory=dict)
    upload_bytes_by_day: dict[str, float] = field(default_factory=dict)
    upload_durations: list[float] = field(default_factory=list)
    upload_durations_by_day: dict[str, list[float]] = field(default_factory=dict)
    upload_times_by_user: dict[str, list[datetime]] = field(default_factory=dict)
    failures_by_code: Counter = field(default_factory=Counter)
    retry_groups: Counter = field(default_factory=Counter)
    week_uploads: dict[str, UploadCounts] = field(default_factory=dict)

    recompute_durations: list[float] = field(default_factory=list)
    recompute_durations_by_day: dict[str, list[float]] = field(default_factory=dict)
    recompute_by_day: dict[str, RecomputeHistory] = field(default_factory=dict)
    recompute_by_user: dict[str, RecomputeHistory] = field(default_factory=dict)

    views_7d: Counter = field(default_factory=Counter)
    views_30d: Counter = field(default_factory=Counter)
    feature_clicks: Counter = field(default_factory=Counter)
    list_views: int = 0
    empty_list_views: int = 0

    usage_vectors: dict[str, UsageVector] = field(default_factory=dict)
    funnel_current: dict[str, set[str]] = field(default_factory=lambda: {s: set() for s in FUNNEL_STEPS})
    funnel_previous: dict[str, set[str]] = field(default_factory=lambda: {s: set() for s in FUNNEL_STEPS})

    # recent-window upload stats for alerting
    recent_upload_durations: list[float] = field(default_factory=list)
    recent_upload_total: int = 0
    recent_upload_failed: int = 0

    @property
    def recent_failure_rate(self) -> float:
        if self.recent_upload_total == 0:
            return 0.0
        return self.recent_upload_failed / self.recent_upload_total

    def _vector(self, user_id: str) -> UsageVector:
        vector = self.usage_vectors.get(user_id)
        if vector is None:
            vector = self.usage_vectors[user_id] = UsageVector(user_id=user_id)
        return vector

    def _funnel(self, moment: datetime, current_week: datetime) -> dict[str, set[str]] | None:
        if moment >= current_week:
            return self.funnel_current
        if moment >= current_week - 7 * DAY:
            return self.funnel_previous
        return None

    @classmethod
    def collect(
        cls,
        events: Iterable[EventRecord],
        today: datetime,
        now: datetime,
        recent_window: timedelta = timedelta(minutes=10),
    ) -> "EventTallies":
        """Tally *events* relative to *today* (UTC midnight) and *now*."""
        tallies = cls()
        seven_day_start = today - 6 * DAY
        current_week = start_of_week_utc(today)
        recent_start = now - recent_window

        for event in events:
            day = format_day(event.created_at)
            user = event.user_id
            if event.type == "upload":
                tallies._add_upload(event, day, seven_day_start, current_week)
                if event.created_at >= recent_start:
                    tallies.recent_upload_total += 1
                    if event.success:
                        if event.duration_ms is not None:
                            tallies.recent_upload_durations.append(event.duration_ms)
                    else:
                        tallies.recent_upload_failed += 1
            elif event.type == "recompute":
                tallies._add_recompute(event, day)
            elif event.type in ("activity_view", "metric_view"):
                if event.activity_id:
                    tallies.views_30d[event.activity_id] += 1
                    if event.created_at >= seven_day_start:
                        tallies.views_7d[event.activity_id] += 1
                if user:
                    tallies._vector(user).views += 1
                    funnel = tallies._funnel(event.created_at, current_week)
                    if funnel is not None:
                        funnel["view"].add(user)
            elif event.type == "export":
                funnel = tallies._funnel(event.created_at, current_week)
                if funnel is not None and user:
                    funnel["export"].add(user)
            elif event.type == "feature_click":
                feature = event.meta.get("feature")
                tallies.feature_clicks[feature if isinstance(feature, str) else "unknown"] += 1
            elif event.type == "activities_list":
                tallies.list_views += 1
                if to_number(event.meta.get("total")) == 0:
                    tallies.empty_list_views += 1
        return tallies

    def _add_upload(self, event: EventRecord, day: str, seven_day_start: datetime, current_week: datetime) -> None:
        user = event.user_id
        per_day = self.uploads_per_day.setdefault(day, UploadCounts())
        per_user = self.uploads_per_user.setdefault(user or "anonymous", UploadCounts())
        week = self.week_uploads.setdefault(user, UploadCounts()) if user and event.created_at >= seven_day_start else None

        if event.success:
            per_day.success += 1
            per_user.success += 1
            size = to_number(event.meta.get("size"))
            if size is not None:
                self.upload_bytes_by_day[day] = self.upload_bytes_by_day.get(day, 0.0) + size
            duration = event.duration_ms or 0.0
            self.upload_durations.append(duration)
            self.upload_durations_by_day.setdefault(day, []).append(duration)
            if week is not None:
                week.success += 1
            if user:
                self.upload_times_by_user.setdefault(user, []).append(event.created_at)
                self._vector(user).uploads += 1
                funnel = self._funnel(event.created_at, current_week)
                if funnel is not None:
                    funnel["upload"].add(user)
        else:
            per_day.failed += 1
            per_user.failed += 1
            code = event.meta.get("errorCode")
            self.failures_by_code[code if isinstance(code, str) else "unknown"] += 1
            file_name = event.meta.get("fileName")
            file_name = file_name if isinstance(file_name, str) else "unknown"
            self.retry_groups[f"{user or 'anonymous'}:{file_name}"] += 1
            if week is not None:
                week.failed += 1

    def _add_recompute(self, event: EventRecord, day: str) -> None:
        duration = event.duration_ms or 0.0
        self.recompute_durations.append(duration)
        self.recompute_durations_by_day.setdefault(day, []).append(duration)
        daily = self.recompute_by_day.setdefault(day, RecomputeHistory())
        daily.count += 1
        user = event.user_id
        if not user:
            return
        daily.users.add(user)
        self._vector(user).recomputes += 1
        history = self.recompute_by_user.setdefault(user, RecomputeHistory())
        history.count += 1
        if history.last_run_at is None or event.created_at > history.last_run_at:
            history.last_run_at = event.created_at


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


def build_usage_section(
    tallies: EventTallies,
    today: datetime,
    emails: Mapping[str, str],
    activity_details: Mapping[str, tuple[str | None, str]],
    metric_refs: Sequence[MetricDefinitionRef],
    activities_30d: int,
) -> dict[str, Any]:
    """Upload, recompute, view and coverage counters.

    ``activity_details`` maps activity id to ``(title, owner email)``.
    """
    uploads_per_day = []
    for day in trailing_days(today, USAGE_DAYS):
        counts = tallies.uploads_per_day.get(day, UploadCounts())
        uploads_per_day.append({"date": day, "success": counts.success, "failed": counts.failed})

    uploads_per_user = sorted(
        (
            {"userId": user, "email": emails.get(user, "unknown"), "success": c.success, "failed": c.failed}
            for user, c in tallies.uploads_per_user.items()
            if user != "anonymous"
        ),
        key=lambda row: -row["success"],
    )[:UPLOADS_PER_USER_LIMIT]

    recompute_daily = [
        {"date": day, "count": h.count, "uniqueUsers": len(h.users)}
        for day, h in sorted(tallies.recompute_by_day.items())
    ]
    recompute_top = sorted(
        (
            {
                "userId": user,
                "email": emails.get(user, "unknown"),
                "count": h.count,
                "lastRunAt": iso_timestamp(h.last_run_at) if h.last_run_at else None,
            }
            for user, h in tallies.recompute_by_user.items()
        ),
        key=lambda row: -row["count"],
    )[:RECOMPUTE_TOP_USERS]

    top_activities = []
    for window, views in (("7d", tallies.views_7d), ("30d", tallies.views_30d)):
        for activity_id, count in views.items():
            title, owner = activity_details.get(activity_id, (None, "unknown"))
            top_activities.append({
                "activityId": activity_id,
                "title": title,
                "owner": owner,
                "views": count,
                "window": window,
            })
    top_activities.sort(key=lambda row: -row["views"])

    coverage = [
        {
            "metricKey": ref.key,
            "metricName": ref.name,
            "coverage": ref.result_count / activities_30d if activities_30d > 0 else 0.0,
            "totalActivities": activities_30d,
        }
        for ref in metric_refs
    ]

    return {
        "uploadsPerDay": uploads_per_day,
        "uploadsPerUser": uploads_per_user,
        "recompute": {"daily": recompute_daily, "topUsers": recompute_top},
        "topActivities": top_activities[:TOP_ACTIVITIES_LIMIT],
        "metricCoverage": coverage,
    }


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------


def latency_snapshot(durations: Sequence[float], by_day: Mapping[str, Sequence[float]]) -> dict[str, Any]:
    return {
        "p50": percentile(durations, 0.5),
        "p95": percentile(durations, 0.95),
        "p99": percentile(durations, 0.99),
        "series": [{"date": day, "p95": percentile(values, 0.95)} for day, values in sorted(by_day.items())],
    }


def build_quality_section(tallies: EventTallies, emails: Mapping[str, str]) -> dict[str, Any]:
    """Parse failures, latency percentiles, retries, and bad-data users."""
    total_failures = sum(tallies.failures_by_code.values())
    parse_failures = [
        {"errorCode": code, "count": count, "percentage": count / total_failures if total_failures else 0.0}
        for code, count in tallies.failures_by_code.most_common()
    ]

    retries = list(tallies.retry_groups.values())
    retry = {
        "retryRate": sum(1 for n in retries if n > 1) / len(retries) if retries else 0.0,
        "meanRetries": sum(retries) / len(retries) if retries else 0.0,
        "sampleSize": len(retries),
    }

    bad_data = []
    for user, counts in tallies.week_uploads.items():
        rate = counts.failed / counts.total if counts.total else 0.0
        if counts.total >= BAD_DATA_MIN_UPLOADS and rate >= BAD_DATA_MIN_FAILURE_RATE:
            bad_data.append({
                "userId": user,
                "email": emails.get(user, "unknown"),
                "failureRate": rate,
                "totalUploads": counts.total,
            })
    bad_data.sort(key=lambda row: -row["failureRate"])

    return {
        "parseFailures": parse_failures,
        "latency": {
            "upload": latency_snapshot(tallies.upload_durations, tallies.upload_durations_by_day),
            "recompute": latency_snapshot(tallies.recompute_durations, tallies.recompute_durations_by_day),
        },
        "retry": retry,
        "badData": bad_data[:BAD_DATA_LIMIT],
    }


# ---------------------------------------------------------------------------
# UX
# ---------------------------------------------------------------------------


def build_ux_section(tallies: EventTallies) -> dict[str, Any]:
    total_clicks = sum(tallies.feature_clicks.values()) or 1
    return {
        "featureClicks": [
            {"feature": feature, "count": count, "percentage": count / total_clicks}
            for feature, count in tallies.feature_clicks.most_common()
        ],
        "emptyStates": {
            "rate": tallies.empty_list_views / tallies.list_views if tallies.list_views else 0.0,
            "totalSessions": tallies.list_views,
            "emptySessions": tallies.empty_list_views,
        },
    }
