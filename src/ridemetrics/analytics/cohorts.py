"""Signup-week cohorts: retention and activation.

Users are grouped by the Monday-aligned UTC week of their signup.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Sequence

from ridemetrics.analytics.calendar import iso_timestamp, start_of_week_utc, whole_days_between
from ridemetrics.analytics.records import ActivityRecord, EventRecord, UserRecord
from ridemetrics.models import camel_asdict

RETENTION_MILESTONES: tuple[tuple[str, int], ...] = (
    ("D0", 0),
    ("D1", 1),
    ("D7", 7),
    ("D30", 30),
)

ACTIVATION_WINDOW_DAYS = 7
ACTIVATION_MIN_UPLOADS = 3
ACTIVATION_MIN_RECOMPUTES = 1
ACTIVATION_COHORT_LIMIT = 12


@dataclass
class RetentionPoint:
    label: str
    value: float


@dataclass
class RetentionCohort:
    cohort: str  # ISO timestamp of the cohort's Monday
    size: int
    retention: list[RetentionPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return camel_asdict(self)

    def __repr__(self) -> str:
        values = ", ".join(f"{p.label}={p.value:.0%}" for p in self.retention)
        return f"RetentionCohort({self.cohort[:10]}: n={self.size}, {values})"


@dataclass
class ActivationCohort:
    cohort: str
    activation_rate: float
    cohort_size: int

    def to_dict(self) -> dict[str, Any]:
        return camel_asdict(self)


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


def first_activity_offsets(
    users: Sequence[UserRecord],
    activities: Iterable[ActivityRecord],
) -> dict[str, int]:
    """Per user, the smallest whole-day offset from signup to an activity.

    Activities before the signup day are ignored.
    """
    signups = {user.id: user.created_at for user in users}
    earliest: dict[str, int] = {}
    for activity in activities:
        if activity.user_id is None or activity.user_id not in signups:
            continue
        offset = whole_days_between(signups[activity.user_id], activity.start_time)
        if offset < 0:
            continue
        if offset < earliest.get(activity.user_id, offset + 1):
            earliest[activity.user_id] = offset
    return earliest


def build_retention_cohorts(
    users: Sequence[UserRecord],
    activities: Iterable[ActivityRecord],
    milestones: Sequence[tuple[str, int]] = RETENTION_MILESTONES,
) -> list[RetentionCohort]:
    """Retention per signup-week cohort, oldest cohort first.

    A user counts as retained at a milestone when their earliest activity
    falls within that many days of signup, so values never decrease as
    the threshold grows.
    """
    earliest = first_activity_offsets(users, activities)

    members: dict[datetime, list[UserRecord]] = {}
    for user in users:
        members.setdefault(start_of_week_utc(user.created_at), []).append(user)

    cohorts: list[RetentionCohort] = []
    for week_start in sorted(members):
        cohort_users = members[week_start]
        size = len(cohort_users)
        retention = []
        for label, threshold in milestones:
            retained = sum(
                1 for user in cohort_users
                if user.id in earliest and earliest[user.id] <= threshold
            )
            retention.append(RetentionPoint(label=label, value=retained / size if size else 0.0))
        cohorts.append(RetentionCohort(cohort=iso_timestamp(week_start), size=size, retention=retention))
    return cohorts


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------


def build_activation_cohorts(
    users: Sequence[UserRecord],
    events: Iterable[EventRecord],
    window_days: int = ACTIVATION_WINDOW_DAYS,
    min_uploads: int = ACTIVATION_MIN_UPLOADS,
    min_recomputes: int = ACTIVATION_MIN_RECOMPUTES,
    limit: int = ACTIVATION_COHORT_LIMIT,
) -> list[ActivationCohort]:
    """Share of each signup cohort that activated soon after signing up.

    A user activates with at least *min_uploads* successful uploads and
    *min_recomputes* recomputes no later than *window_days* after signup.
    Only the most recent *limit* cohorts are returned, oldest first.
    """
    uploads: dict[str, list[datetime]] = {}
    recomputes: dict[str, list[datetime]] = {}
    for event in events:
        if event.user_id is None:
            continue
        if event.type == "upload" and event.success:
            uploads.setdefault(event.user_id, []).append(event.created_at)
        elif event.type == "recompute":
            recomputes.setdefault(event.user_id, []).append(event.created_at)

    sizes: dict[datetime, int] = {}
    activated: dict[datetime, int] = {}
    window = timedelta(days=window_days)
    for user in users:
        week_start = start_of_week_utc(user.created_at)
        sizes[week_start] = sizes.get(week_start, 0) + 1
        cutoff = user.created_at + window
        upload_count = sum(1 for moment in uploads.get(user.id, ()) if moment <= cutoff)
        recompute_count = sum(1 for moment in recomputes.get(user.id, ()) if moment <= cutoff)
        if upload_count >= min_uploads and recompute_count >= min_recomputes:
            activated[week_start] = activated.get(week_start, 0) + 1

    cohorts = [
        ActivationCohort(
            cohort=iso_timestamp(week_start),
            activation_rate=activated.get(week_start, 0) / sizes[week_start],
            cohort_size=sizes[week_start],
        )
        for week_start in sorted(sizes)
    ]
    return cohorts[-limit:] if limit > 0 else cohorts
