"""UTC calendar helpers shared by the analytics builders.

Every timestamp handled here is timezone-aware UTC (see
:func:`ridemetrics.models.parse_timestamp`).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(days=7)


def start_of_day_utc(moment: datetime) -> datetime:
    moment = moment.astimezone(timezone.utc)
    return datetime(moment.year, moment.month, moment.day, tzinfo=timezone.utc)


def start_of_week_utc(moment: datetime) -> datetime:
    """Midnight UTC of the Monday on or before *moment*."""
    day = start_of_day_utc(moment)
    return day - timedelta(days=day.weekday())


def format_day(moment: datetime) -> str:
    """``YYYY-MM-DD`` of the UTC day containing *moment*."""
    return start_of_day_utc(moment).date().isoformat()


def iso_timestamp(moment: datetime) -> str:
    """Millisecond ISO-8601 string with a ``Z`` suffix."""
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def trailing_days(today: datetime, count: int) -> list[str]:
    """Day keys for the *count* days ending at *today*, oldest first."""
    return [format_day(today - offset * DAY) for offset in range(count - 1, -1, -1)]


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Calendar-day difference between two instants (UTC days)."""
    return (start_of_day_utc(later) - start_of_day_utc(earlier)).days


def minute_bucket(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(second=0, microsecond=0)
