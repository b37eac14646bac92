"""Admin analytics overview: every dashboard section in one snapshot.

The aggregator is read-only.  Each section is built inside its own
boundary: an unexpected error is logged with its traceback and the
section falls back to an empty default, so one bad section never takes
the snapshot down.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Callable, Mapping

from ridemetrics.analytics.acquisition import build_acquisition_section, weekly_funnel
from ridemetrics.analytics.active_users import build_active_user_summary, build_returning_users
from ridemetrics.analytics.alerts import build_alerts
from ridemetrics.analytics.calendar import DAY, MINUTE, iso_timestamp, start_of_day_utc, start_of_week_utc
from ridemetrics.analytics.cohorts import build_activation_cohorts, build_retention_cohorts
from ridemetrics.analytics.performance import build_performance_section
from ridemetrics.analytics.records import (
    ActivityRecord,
    EventRecord,
    ExceptionEvent,
    MetricDefinitionRef,
    PageView,
    PendingJob,
    RequestMetric,
    StorageSnapshot,
    UserRecord,
    parse_records,
)
from ridemetrics.analytics.reliability import build_reliability_section, build_safety_section
from ridemetrics.analytics.segments import device_shares, geo_distribution, segment_users
from ridemetrics.analytics.sessions import summarize_sessions
from ridemetrics.analytics.usage import (
    EventTallies,
    build_quality_section,
    build_ux_section,
    build_usage_section,
)
from ridemetrics.cache import TTLCache
from ridemetrics.config import DEFAULT_CONFIG, RideMetricsConfig
from ridemetrics.models import parse_timestamp

logger = logging.getLogger(__name__)

SECTION_NAMES = (
    "acquisition",
    "engagement",
    "usage",
    "quality",
    "performance",
    "cohorts",
    "conversion",
    "reliability",
    "safety",
    "ux",
    "alerts",
)

OPEN_JOB_STATUSES = frozenset({"PENDING", "RUNNING"})
EXCEPTION_SCAN_LIMIT = 100
DEFAULT_CACHE_TTL_SECONDS = 60.0


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class AnalyticsInputs:
    """Record batches the caller pulled for one snapshot.

    Batches may be wider than the dashboard windows; the aggregator
    applies the windows itself.
    """

    users: list[UserRecord] = field(default_factory=list)
    activities: list[ActivityRecord] = field(default_factory=list)
    events: list[EventRecord] = field(default_factory=list)
    page_views: list[PageView] = field(default_factory=list)
    request_metrics: list[RequestMetric] = field(default_factory=list)
    exceptions: list[ExceptionEvent] = field(default_factory=list)
    pending_jobs: list[PendingJob] = field(default_factory=list)
    metric_definitions: list[MetricDefinitionRef] = field(default_factory=list)
    locations: list[str | None] = field(default_factory=list)
    storage: StorageSnapshot = field(default_factory=StorageSnapshot)
    now: datetime | None = None
    skipped: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "AnalyticsInputs":
        """Parse a JSON-style batch; malformed records are skipped and counted."""
        batches = {
            "users": ("users", UserRecord.from_mapping),
            "activities": ("activities", ActivityRecord.from_mapping),
            "events": ("events", EventRecord.from_mapping),
            "page_views": ("pageViews", PageView.from_mapping),
            "request_metrics": ("requestMetrics", RequestMetric.from_mapping),
            "exceptions": ("exceptions", ExceptionEvent.from_mapping),
            "pending_jobs": ("pendingJobs", PendingJob.from_mapping),
            "metric_definitions": ("metricDefinitions", MetricDefinitionRef.from_mapping),
        }
        parsed: dict[str, Any] = {}
        skipped: dict[str, int] = {}
        for attr, (key, parser) in batches.items():
            records, bad = parse_records(payload.get(key), parser, key)
            parsed[attr] = records
            if bad:
                skipped[key] = bad

        now = payload.get("now")
        locations = payload.get("locations") or []
        return cls(
            **parsed,
            locations=[loc if isinstance(loc, str) else None for loc in locations],
            storage=StorageSnapshot.from_mapping(payload.get("storage")),
            now=parse_timestamp(now) if now is not None else None,
            skipped=skipped,
        )


# ---------------------------------------------------------------------------
# Empty section defaults
# ---------------------------------------------------------------------------


def _empty_latency() -> dict[str, Any]:
    return {"p50": 0.0, "p95": 0.0, "p99": 0.0, "series": []}


EMPTY_SECTIONS: dict[str, Callable[[], Any]] = {
    "acquisition": lambda: {
        "newSignups": {"daily": [], "average7d": 0.0, "average30d": 0.0},
        "signupToFirstUpload": {
            "totalSignups": 0, "usersWithUpload": 0, "reachedWithin24h": 0,
            "reachedWithin7d": 0, "conversion24h": 0.0, "conversion7d": 0.0, "steps": [],
        },
        "timeToFirstValue": [],
        "signupsBySource": [],
    },
    "engagement": lambda: {
        "activeUsers": {"current": {"dau": 0, "wau": 0, "mau": 0, "stickiness": 0.0}, "series": []},
        "retentionCohorts": [],
        "returningUsers": [],
        "sessions": {"averageSessionsPerUser": 0.0, "medianSessionMinutes": 0.0, "totalSessions": 0, "windowDays": 0},
    },
    "usage": lambda: {
        "uploadsPerDay": [],
        "uploadsPerUser": [],
        "recompute": {"daily": [], "topUsers": []},
        "topActivities": [],
        "metricCoverage": [],
    },
    "quality": lambda: {
        "parseFailures": [],
        "latency": {"upload": _empty_latency(), "recompute": _empty_latency()},
        "retry": {"retryRate": 0.0, "meanRetries": 0.0, "sampleSize": 0},
        "badData": [],
    },
    "performance": lambda: {
        "db": [],
        "storage": {"uploadsDirBytes": 0.0, "postgresBytes": None, "sevenDaySlopeBytesPerDay": 0.0, "dailyTotals": []},
        "recomputeCost": {"totalMinutes": 0.0, "estimatedUsd": 0.0, "dailyMinutes": []},
    },
    "cohorts": lambda: {"devices": [], "userSegments": [], "geo": []},
    "conversion": lambda: {"funnel": [], "activation": []},
    "reliability": lambda: {
        "availability": {"current": 1.0, "errorRatio": 0.0, "burnRate": 0.0, "series": []},
        "queue": {"depth": 0, "oldestMinutes": None},
        "exceptions": [],
    },
    "safety": lambda: {"suspicious": [], "storage": {"orphanCount": 0, "dbActivityCount": 0, "scannedAt": None}},
    "ux": lambda: {"featureClicks": [], "emptyStates": {"rate": 0.0, "totalSessions": 0, "emptySessions": 0}},
    "alerts": lambda: {"banners": []},
}


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class AnalyticsAggregator:
    """Builds the overview snapshot for one ``now``."""

    def __init__(
        self,
        inputs: AnalyticsInputs,
        now: datetime | None = None,
        config: RideMetricsConfig = DEFAULT_CONFIG,
    ) -> None:
        self.inputs = inputs
        self.now = (now or inputs.now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        self.today = start_of_day_utc(self.now)
        self.config = config
        self.failed_sections: list[str] = []

    # -- windows --------------------------------------------------------------

    def _since(self, days: int) -> datetime:
        return self.today - days * DAY

    @cached_property
    def recent_users(self) -> list[UserRecord]:
        since = self._since(self.config.sessions.window_days - 1)
        return [u for u in self.inputs.users if u.created_at >= since]

    @cached_property
    def cohort_users(self) -> list[UserRecord]:
        since = self._since(self.config.active_users.scan_days)
        return [u for u in self.inputs.users if u.created_at >= since]

    @cached_property
    def emails(self) -> dict[str, str]:
        return {u.id: u.email or "unknown" for u in self.inputs.users}

    @cached_property
    def window_events(self) -> list[EventRecord]:
        since = self._since(self.config.sessions.window_days - 1)
        return [e for e in self.inputs.events if e.created_at >= since]

    @cached_property
    def tallies(self) -> EventTallies:
        return EventTallies.collect(
            self.window_events,
            self.today,
            self.now,
            recent_window=self.config.alerts.window_minutes * MINUTE,
        )

    def _activities_since(self, since: datetime) -> list[ActivityRecord]:
        return [a for a in self.inputs.activities if a.start_time >= since]

    # -- sections -------------------------------------------------------------

    def acquisition(self) -> dict[str, Any]:
        return build_acquisition_section(self.recent_users, self.inputs.activities, self.today)

    def engagement(self) -> dict[str, Any]:
        users_cfg = self.config.active_users
        sessions_cfg = self.config.sessions
        cohort_since = self._since(users_cfg.scan_days)
        page_since = self._since(sessions_cfg.window_days - 1)
        return {
            "activeUsers": build_active_user_summary(
                self.inputs.activities,
                self.today,
                scan_days=users_cfg.scan_days,
                week_days=users_cfg.week_days,
                month_days=users_cfg.month_days,
            ).to_dict(),
            "retentionCohorts": [
                cohort.to_dict()
                for cohort in build_retention_cohorts(
                    self.cohort_users,
                    self._activities_since(cohort_since),
                    milestones=sessions_cfg.retention_milestones,
                )
            ],
            "returningUsers": build_returning_users(
                self._activities_since(start_of_week_utc(self.today)),
                self.emails,
            ),
            "sessions": summarize_sessions(
                [v for v in self.inputs.page_views if v.created_at >= page_since],
                gap_minutes=sessions_cfg.gap_minutes,
                window_days=sessions_cfg.window_days,
            ).to_dict(),
        }

    def usage(self) -> dict[str, Any]:
        details = {
            a.id: (a.name, self.emails.get(a.user_id, "unknown") if a.user_id else "unknown")
            for a in self.inputs.activities
        }
        window = self.config.sessions.window_days - 1
        return build_usage_section(
            self.tallies,
            self.today,
            self.emails,
            details,
            self.inputs.metric_definitions,
            len(self._activities_since(self._since(window))),
        )

    def quality(self) -> dict[str, Any]:
        return build_quality_section(self.tallies, self.emails)

    def performance(self) -> dict[str, Any]:
        since = self.now - 7 * DAY
        requests = [r for r in self.inputs.request_metrics if r.timestamp >= since]
        return build_performance_section(requests, self.tallies, self.today, self.inputs.storage)

    def cohorts(self) -> dict[str, Any]:
        activities = self.inputs.activities
        return {
            "devices": (
                device_shares(activities, self._since(6), "7d")
                + device_shares(activities, self._since(29), "30d")
            ),
            "userSegments": [
                segment.to_dict()
                for segment in segment_users(list(self.tallies.usage_vectors.values()), self.emails)
            ],
            "geo": geo_distribution(self.inputs.locations),
        }

    def conversion(self) -> dict[str, Any]:
        return {
            "funnel": weekly_funnel(self.recent_users, self.tallies, self.today),
            "activation": [
                cohort.to_dict()
                for cohort in build_activation_cohorts(self.cohort_users, self.window_events)
            ],
        }

    def reliability(self) -> dict[str, Any]:
        since = self.now - 7 * DAY
        requests = [r for r in self.inputs.request_metrics if r.timestamp >= since]
        jobs = sorted(
            (j for j in self.inputs.pending_jobs if j.status in OPEN_JOB_STATUSES),
            key=lambda j: j.enqueued_at,
        )
        recent = sorted(
            (e for e in self.inputs.exceptions if e.created_at >= self.now - DAY),
            key=lambda e: e.created_at,
            reverse=True,
        )[:EXCEPTION_SCAN_LIMIT]
        return build_reliability_section(requests, jobs, recent, self.now)

    def safety(self) -> dict[str, Any]:
        return build_safety_section(self.tallies.upload_times_by_user, self.emails, self.inputs.storage, self.now)

    def ux(self) -> dict[str, Any]:
        return build_ux_section(self.tallies)

    def alerts(self) -> dict[str, Any]:
        return build_alerts(self.tallies, self.config.alerts)

    # -- assembly -------------------------------------------------------------

    def _section(self, name: str) -> Any:
        builder: Callable[[], Any] = getattr(self, name)
        try:
            return builder()
        except Exception:
            logger.exception("analytics section %r failed; using empty default", name)
            self.failed_sections.append(name)
            return EMPTY_SECTIONS[name]()

    def build(self) -> dict[str, Any]:
        """Build every section.  Never raises for bad data."""
        if self.inputs.skipped:
            logger.warning("malformed records skipped: %s", self.inputs.skipped)
        overview: dict[str, Any] = {"generatedAt": iso_timestamp(self.now)}
        for name in SECTION_NAMES:
            overview[name] = self._section(name)
        if self.failed_sections:
            logger.warning("overview built with %d failed section(s): %s",
                           len(self.failed_sections), ", ".join(self.failed_sections))
        return overview


def build_overview(
    inputs: AnalyticsInputs,
    now: datetime | None = None,
    *,
    config: RideMetricsConfig = DEFAULT_CONFIG,
    cache: TTLCache | None = None,
    cache_key: str = "analytics-overview",
    ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict[str, Any]:
    """Build the analytics overview, optionally memoized in *cache*.

    Args:
        inputs: Parsed record batches.
        now: Snapshot time; defaults to ``inputs.now``, then the wall clock.
        config: Window sizes and alert thresholds.
        cache: A caller-owned :class:`TTLCache`; without one the snapshot is
            rebuilt on every call.
        cache_key: Key for the snapshot in *cache*.
        ttl_seconds: How long a cached snapshot stays valid.
    """
    aggregator = AnalyticsAggregator(inputs, now=now, config=config)
    if cache is None:
        return aggregator.build()
    return cache.get_or_compute(cache_key, ttl_seconds, aggregator.build)


def overview_to_json(overview: Mapping[str, Any], indent: int = 2) -> str:
    return json.dumps(overview, indent=indent)
