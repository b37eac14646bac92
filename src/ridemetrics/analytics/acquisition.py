"""Signup acquisition and the weekly conversion funnel."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from ridemetrics.analytics.calendar import DAY, MINUTE, format_day, start_of_week_utc, trailing_days
from ridemetrics.analytics.records import ActivityRecord, UserRecord
from ridemetrics.analytics.usage import EventTallies

SPARKLINE_DAYS = 30

# (label, reached within)
FUNNEL_MILESTONES = (("D0", 1 * DAY), ("D1", 2 * DAY), ("D7", 7 * DAY))

# (label, upper bound in minutes); None is open-ended
TTFV_BUCKETS: tuple[tuple[str, float | None], ...] = (
    ("<10m", 10),
    ("10-60m", 60),
    ("1-3h", 180),
    ("3h-1d", 1440),
    ("1-7d", 10080),
    (">7d", None),
)


def first_activity_times(activities: Iterable[ActivityRecord]) -> dict[str, datetime]:
    """Earliest activity start per user."""
    first: dict[str, datetime] = {}
    for activity in activities:
        if activity.user_id is None:
            continue
        current = first.get(activity.user_id)
        if current is None or activity.start_time < current:
            first[activity.user_id] = activity.start_time
    return first


def _trailing_mean(counts: Sequence[int], window: int) -> float:
    tail = counts[-window:]
    return sum(tail) / len(tail) if tail else 0.0


def signup_sparkline(users: Iterable[UserRecord], today: datetime, days: int = SPARKLINE_DAYS) -> dict[str, Any]:
    per_day = Counter(format_day(user.created_at) for user in users)
    daily = [{"date": day, "count": per_day.get(day, 0)} for day in trailing_days(today, days)]
    counts = [entry["count"] for entry in daily]
    return {
        "daily": daily,
        "average7d": _trailing_mean(counts, 7),
        "average30d": _trailing_mean(counts, 30),
    }


def signup_to_first_upload(users: Sequence[UserRecord], first_uploads: Mapping[str, datetime]) -> dict[str, Any]:
    """How many recent signups reached a first upload, and how fast."""
    total = len(users)
    with_upload = 0
    reached = Counter()
    for user in users:
        first = first_uploads.get(user.id)
        if first is None:
            continue
        with_upload += 1
        delta = first - user.created_at
        for label, limit in FUNNEL_MILESTONES:
            if delta <= limit:
                reached[label] += 1

    def rate(count: int) -> float:
        return count / total if total else 0.0

    return {
        "totalSignups": total,
        "usersWithUpload": with_upload,
        "reachedWithin24h": reached["D0"],
        "reachedWithin7d": reached["D7"],
        "conversion24h": rate(reached["D0"]),
        "conversion7d": rate(reached["D7"]),
        "steps": [
            {"label": label, "count": reached[label], "conversion": rate(reached[label])}
            for label, _ in FUNNEL_MILESTONES
        ],
    }


def time_to_first_value(users: Iterable[UserRecord], first_uploads: Mapping[str, datetime]) -> list[dict[str, Any]]:
    """Histogram of signup -> first activity delay.  Negative delays are dropped."""
    counts = Counter()
    for user in users:
        first = first_uploads.get(user.id)
        if first is None:
            continue
        minutes = (first - user.created_at) / MINUTE
        if minutes < 0:
            continue
        for label, upper in TTFV_BUCKETS:
            if upper is None or minutes <= upper:
                counts[label] += 1
                break
    return [{"label": label, "count": counts[label]} for label, _ in TTFV_BUCKETS]


def signup_source(user: UserRecord) -> str:
    """UTM source, else auth provider, else ``direct``."""
    for value in (user.utm_source, user.provider):
        cleaned = (value or "").strip().lower()
        if cleaned:
            return cleaned
    return "direct"


def signups_by_source(users: Sequence[UserRecord]) -> list[dict[str, Any]]:
    counts = Counter(signup_source(user) for user in users)
    total = len(users) or 1
    return [
        {"source": source, "count": count, "percentage": count / total}
        for source, count in counts.most_common()
    ]


def build_acquisition_section(
    recent_users: Sequence[UserRecord],
    activities: Iterable[ActivityRecord],
    today: datetime,
) -> dict[str, Any]:
    first_uploads = first_activity_times(activities)
    return {
        "newSignups": signup_sparkline(recent_users, today),
        "signupToFirstUpload": signup_to_first_upload(recent_users, first_uploads),
        "timeToFirstValue": time_to_first_value(recent_users, first_uploads),
        "signupsBySource": signups_by_source(recent_users),
    }


# ---------------------------------------------------------------------------
# Weekly funnel
# ---------------------------------------------------------------------------


def weekly_funnel(
    recent_users: Iterable[UserRecord],
    tallies: EventTallies,
    today: datetime,
) -> list[dict[str, Any]]:
    """Distinct users per funnel step, this week against last week."""
    current_week = start_of_week_utc(today)
    previous_week = current_week - 7 * DAY
    signups_now: set[str] = set()
    signups_before: set[str] = set()
    for user in recent_users:
        if user.created_at >= current_week:
            signups_now.add(user.id)
        elif user.created_at >= previous_week:
            signups_before.add(user.id)

    steps = (
        ("Signup", signups_now, signups_before),
        ("Upload", tallies.funnel_current["upload"], tallies.funnel_previous["upload"]),
        ("View Metrics", tallies.funnel_current["view"], tallies.funnel_previous["view"]),
        ("Export", tallies.funnel_current["export"], tallies.funnel_previous["export"]),
    )
    return [
        {"step": name, "currentCount": len(now), "previousWeekCount": len(before)}
        for name, now, before in steps
    ]
