"""Session reconstruction from page views.

A session is a run of one user's page views with no gap longer than the
session gap (30 minutes by default).  Views without a user are pooled
under ``"anonymous"``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Sequence

from ridemetrics.analytics.calendar import MINUTE
from ridemetrics.analytics.records import PageView
from ridemetrics.models import camel_asdict
from ridemetrics.stats import median, round_half_up

SESSION_GAP_MINUTES = 30.0
SESSION_WINDOW_DAYS = 30
ANONYMOUS = "anonymous"


@dataclass
class Session:
    user_id: str
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        """Whole minutes, at least 1 (a single view is a 1-minute session)."""
        return max(1, round_half_up((self.end - self.start) / MINUTE))


@dataclass
class SessionSummary:
    average_sessions_per_user: float
    median_session_minutes: float
    total_sessions: int
    window_days: int

    def to_dict(self) -> dict[str, Any]:
        return camel_asdict(self)


def split_sessions(
    user_id: str,
    timestamps: Iterable[datetime],
    gap: timedelta = timedelta(minutes=SESSION_GAP_MINUTES),
) -> list[Session]:
    """Split one user's timestamps into sessions.

    A new session starts when the gap to the previous view is strictly
    greater than *gap*.
    """
    ordered = sorted(timestamps)
    if not ordered:
        return []

    sessions: list[Session] = []
    start = last = ordered[0]
    for current in ordered[1:]:
        if current - last > gap:
            sessions.append(Session(user_id, start, last))
            start = current
        last = current
    sessions.append(Session(user_id, start, last))
    return sessions


def group_views(page_views: Iterable[PageView]) -> dict[str, list[datetime]]:
    by_user: dict[str, list[datetime]] = {}
    for view in page_views:
        by_user.setdefault(view.user_id or ANONYMOUS, []).append(view.created_at)
    return by_user


def summarize_sessions(
    page_views: Sequence[PageView],
    gap_minutes: float = SESSION_GAP_MINUTES,
    window_days: int = SESSION_WINDOW_DAYS,
) -> SessionSummary:
    """Session counts and median length across all users."""
    gap = timedelta(minutes=gap_minutes)
    by_user = group_views(page_views)

    durations: list[int] = []
    for user_id, timestamps in by_user.items():
        durations.extend(s.duration_minutes for s in split_sessions(user_id, timestamps, gap))

    total = len(durations)
    return SessionSummary(
        average_sessions_per_user=total / (len(by_user) or 1),
        median_session_minutes=median(durations) if durations else 0.0,
        total_sessions=total,
        window_days=window_days,
    )
