"""Daily / weekly / monthly active users over a sliding window.

Each window is a reference-counted multiset of user ids: a day's active
set is added when the day enters the window and subtracted when it
leaves, so a user stays counted while any of their days remain inside.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from ridemetrics.analytics.calendar import DAY, format_day, start_of_day_utc
from ridemetrics.analytics.records import ActivityRecord
from ridemetrics.models import camel_asdict

SCAN_DAYS = 90
WEEK_DAYS = 7
MONTH_DAYS = 30

RETURNING_MIN_ACTIVE_DAYS = 3
RETURNING_LIMIT = 10


class ActiveUserTracker:
    """Distinct users seen in the last ``window_days`` pushed days."""

    def __init__(self, window_days: int) -> None:
        if window_days < 1:
            raise ValueError("window_days must be >= 1")
        self.window_days = window_days
        self._days: deque[frozenset[str]] = deque()
        self._counts: Counter[str] = Counter()

    def push(self, users: Iterable[str]) -> None:
        """Advance one day with that day's active users."""
        today = frozenset(users)
        self._days.append(today)
        self._counts.update(today)
        if len(self._days) > self.window_days:
            for user in self._days.popleft():
                self._counts[user] -= 1
                if self._counts[user] <= 0:
                    del self._counts[user]

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, user: object) -> bool:
        return user in self._counts


@dataclass
class ActiveUserPoint:
    date: str
    dau: int
    wau: int
    mau: int
    stickiness: float


@dataclass
class ActiveUserSummary:
    current: dict[str, float] = field(default_factory=dict)
    series: list[ActiveUserPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return camel_asdict(self)

    def __repr__(self) -> str:
        c = self.current
        return f"ActiveUserSummary(dau={c.get('dau')}, wau={c.get('wau')}, mau={c.get('mau')})"


def daily_active_sets(activities: Iterable[ActivityRecord]) -> dict[str, set[str]]:
    days: dict[str, set[str]] = {}
    for activity in activities:
        users = days.setdefault(format_day(activity.start_time), set())
        if activity.user_id:
            users.add(activity.user_id)
    return days


def build_active_user_summary(
    activities: Iterable[ActivityRecord],
    today: datetime,
    scan_days: int = SCAN_DAYS,
    week_days: int = WEEK_DAYS,
    month_days: int = MONTH_DAYS,
) -> ActiveUserSummary:
    """DAU/WAU/MAU series over the *scan_days* days ending on *today*.

    Stickiness is DAU / MAU, 0 when MAU is 0.
    """
    today = start_of_day_utc(today)
    days = daily_active_sets(activities)
    weekly = ActiveUserTracker(week_days)
    monthly = ActiveUserTracker(month_days)

    series: list[ActiveUserPoint] = []
    start = today - (scan_days - 1) * DAY
    for i in range(scan_days):
        key = format_day(start + i * DAY)
        active = days.get(key, set())
        weekly.push(active)
        monthly.push(active)
        mau = len(monthly)
        series.append(ActiveUserPoint(
            date=key,
            dau=len(active),
            wau=len(weekly),
            mau=mau,
            stickiness=len(active) / mau if mau else 0.0,
        ))

    latest = series[-1] if series else ActiveUserPoint(date=format_day(today), dau=0, wau=0, mau=0, stickiness=0.0)
    current = {"dau": latest.dau, "wau": latest.wau, "mau": latest.mau, "stickiness": latest.stickiness}
    return ActiveUserSummary(current=current, series=series)


# ---------------------------------------------------------------------------
# Returning users
# ---------------------------------------------------------------------------


def build_returning_users(
    activities: Iterable[ActivityRecord],
    emails: Mapping[str, str],
    min_active_days: int = RETURNING_MIN_ACTIVE_DAYS,
    limit: int = RETURNING_LIMIT,
) -> list[dict[str, Any]]:
    """Users active on at least *min_active_days* distinct days.

    Ranked by active days, then activity count.  Activities whose owner is
    unknown are skipped.
    """
    days: dict[str, set[str]] = {}
    counts: Counter[str] = Counter()
    for activity in activities:
        if not activity.user_id or activity.user_id not in emails:
            continue
        days.setdefault(activity.user_id, set()).add(format_day(activity.start_time))
        counts[activity.user_id] += 1

    rows = [
        {
            "userId": user_id,
            "email": emails[user_id],
            "activeDays": len(active_days),
            "activityCount": counts[user_id],
        }
        for user_id, active_days in days.items()
        if len(active_days) >= min_active_days
    ]
    rows.sort(key=lambda row: (-row["activeDays"], -row["activityCount"]))
    return rows[:limit]
