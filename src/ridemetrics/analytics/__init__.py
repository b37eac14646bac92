"""Admin analytics over product event logs.

Modules:
    records      -- Typed input records and batch parsing
    calendar     -- UTC day/week helpers
    sessions     -- Session reconstruction from page views
    cohorts      -- Signup-week retention and activation cohorts
    active_users -- Sliding-window DAU/WAU/MAU and returning users
    segments     -- Two-cluster usage segmenter, devices, geography
    usage        -- Event tallies; usage, quality and UX sections
    acquisition  -- Signup sparkline, first-upload funnel, sources
    performance  -- Endpoint timings, storage growth, recompute cost
    reliability  -- Availability, queue, exceptions, upload bursts
    alerts       -- Dashboard banners
    overview     -- The aggregator that assembles every section
"""

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
from ridemetrics.analytics.sessions import split_sessions, summarize_sessions, SessionSummary
from ridemetrics.analytics.cohorts import (
    build_retention_cohorts,
    build_activation_cohorts,
    RetentionCohort,
    ActivationCohort,
)
from ridemetrics.analytics.active_users import (
    ActiveUserTracker,
    build_active_user_summary,
    ActiveUserSummary,
)
from ridemetrics.analytics.segments import segment_users, UsageVector, UserSegment
from ridemetrics.analytics.usage import EventTallies
from ridemetrics.analytics.alerts import build_alerts
from ridemetrics.analytics.overview import AnalyticsAggregator, AnalyticsInputs, build_overview

__all__ = [
    # records
    "ActivityRecord",
    "EventRecord",
    "ExceptionEvent",
    "MetricDefinitionRef",
    "PageView",
    "PendingJob",
    "RequestMetric",
    "StorageSnapshot",
    "UserRecord",
    "parse_records",
    # sessions
    "split_sessions",
    "summarize_sessions",
    "SessionSummary",
    # cohorts
    "build_retention_cohorts",
    "build_activation_cohorts",
    "RetentionCohort",
    "ActivationCohort",
    # active users
    "ActiveUserTracker",
    "build_active_user_summary",
    "ActiveUserSummary",
    # segments
    "segment_users",
    "UsageVector",
    "UserSegment",
    # tallies / alerts
    "EventTallies",
    "build_alerts",
    # overview
    "AnalyticsAggregator",
    "AnalyticsInputs",
    "build_overview",
]
