"""Tests for sessions, retention cohorts, and activation cohorts."""

from datetime import datetime, timedelta, timezone

import pytest

from ridemetrics.analytics.cohorts import build_activation_cohorts, build_retention_cohorts
from ridemetrics.analytics.records import ActivityRecord, EventRecord, PageView, UserRecord
from ridemetrics.analytics.sessions import Session, split_sessions, summarize_sessions
from tests.conftest import NOW, activity, days_ago, event, minutes_ago, user


def _users(*payloads):
    return [UserRecord.from_mapping(p) for p in payloads]


def _activities(*payloads):
    return [ActivityRecord.from_mapping(p) for p in payloads]


def _events(*payloads):
    return [EventRecord.from_mapping(p) for p in payloads]


def _view(at, user_id="u1"):
    return PageView(created_at=at, user_id=user_id, path="/")


class TestSplitSessions:
    def test_gap_splits(self):
        stamps = [minutes_ago(120), minutes_ago(110), minutes_ago(60), minutes_ago(55)]
        sessions = split_sessions("u1", stamps)
        assert len(sessions) == 2
        assert [s.duration_minutes for s in sessions] == [10, 5]

    def test_exact_gap_does_not_split(self):
        sessions = split_sessions("u1", [minutes_ago(30), NOW])
        assert len(sessions) == 1
        assert sessions[0].duration_minutes == 30

    def test_unsorted_input(self):
        sessions = split_sessions("u1", [NOW, minutes_ago(90)])
        assert sessions[0].start == minutes_ago(90)

    def test_single_view_is_one_minute(self):
        assert Session("u1", NOW, NOW).duration_minutes == 1

    def test_half_minute_rounds_up(self):
        assert Session("u1", NOW, NOW + timedelta(seconds=150)).duration_minutes == 3

    def test_empty(self):
        assert split_sessions("u1", []) == []


class TestSummarizeSessions:
    def test_summary(self):
        views = [
            _view(minutes_ago(120)), _view(minutes_ago(110)),  # 10 min
            _view(minutes_ago(60)), _view(minutes_ago(55)),  # 5 min
            _view(minutes_ago(20), None),  # anonymous, 1 min
        ]
        summary = summarize_sessions(views)
        assert summary.total_sessions == 3
        assert summary.average_sessions_per_user == pytest.approx(1.5)
        assert summary.median_session_minutes == 5
        assert summary.to_dict() == {
            "averageSessionsPerUser": 1.5,
            "medianSessionMinutes": 5.0,
            "totalSessions": 3,
            "windowDays": 30,
        }

    def test_no_views(self):
        summary = summarize_sessions([])
        assert summary.total_sessions == 0
        assert summary.average_sessions_per_user == 0
        assert summary.median_session_minutes == 0

    def test_custom_gap(self):
        views = [_view(minutes_ago(60)), _view(minutes_ago(20))]
        assert summarize_sessions(views, gap_minutes=30).total_sessions == 2
        assert summarize_sessions(views, gap_minutes=45).total_sessions == 1


class TestRetentionCohorts:
    def test_milestones(self):
        monday = datetime(2024, 5, 6, 9, tzinfo=timezone.utc)
        users = _users(
            user("same-day", monday),
            user("next-day", monday),
            user("week", monday),
            user("never", monday),
        )
        activities = _activities(
            activity("a1", "same-day", monday + timedelta(hours=2)),
            activity("a2", "next-day", monday + timedelta(days=1)),
            activity("a3", "week", monday + timedelta(days=6)),
            activity("a4", "week", monday + timedelta(days=20)),
        )
        [cohort] = build_retention_cohorts(users, activities)
        assert cohort.cohort == "2024-05-06T00:00:00.000Z"
        assert cohort.size == 4
        values = {point.label: point.value for point in cohort.retention}
        assert values == {"D0": 0.25, "D1": 0.5, "D7": 0.75, "D30": 0.75}

    def test_monotone(self):
        base = datetime(2024, 4, 1, tzinfo=timezone.utc)
        users = _users(*(user(f"u{i}", base + timedelta(days=i % 7)) for i in range(20)))
        activities = _activities(*(
            activity(f"a{i}", f"u{i}", base + timedelta(days=i % 7 + i * 2)) for i in range(20)
        ))
        for cohort in build_retention_cohorts(users, activities):
            values = [point.value for point in cohort.retention]
            assert values == sorted(values)

    def test_activity_before_signup_ignored(self):
        signup = datetime(2024, 5, 8, tzinfo=timezone.utc)
        users = _users(user("u1", signup))
        activities = _activities(activity("a1", "u1", signup - timedelta(days=3)))
        [cohort] = build_retention_cohorts(users, activities)
        assert all(point.value == 0 for point in cohort.retention)

    def test_cohorts_sorted(self):
        users = _users(user("late", days_ago(3)), user("early", days_ago(30)))
        cohorts = build_retention_cohorts(users, [])
        assert [c.cohort for c in cohorts] == sorted(c.cohort for c in cohorts)
        assert len(cohorts) == 2

    def test_to_dict_camel_case(self):
        users = _users(user("u1", days_ago(3)))
        payload = build_retention_cohorts(users, [])[0].to_dict()
        assert set(payload) == {"cohort", "size", "retention"}
        assert payload["retention"][0] == {"label": "D0", "value": 0.0}


class TestActivationCohorts:
    def test_activation(self):
        signup = datetime(2024, 5, 6, 9, tzinfo=timezone.utc)
        users = _users(user("active", signup), user("slow", signup))
        events = _events(
            *(event("upload", signup + timedelta(days=d), "active", success=True) for d in (0, 1, 2)),
            event("recompute", signup + timedelta(days=3), "active"),
            # uploads after the window don't count
            *(event("upload", signup + timedelta(days=9), "slow", success=True) for _ in range(3)),
            event("recompute", signup + timedelta(days=1), "slow"),
        )
        [cohort] = build_activation_cohorts(users, events)
        assert cohort.cohort_size == 2
        assert cohort.activation_rate == pytest.approx(0.5)
        assert cohort.to_dict() == {
            "cohort": "2024-05-06T00:00:00.000Z",
            "activationRate": 0.5,
            "cohortSize": 2,
        }

    def test_failed_uploads_do_not_count(self):
        signup = datetime(2024, 5, 6, tzinfo=timezone.utc)
        users = _users(user("u1", signup))
        events = _events(
            *(event("upload", signup, "u1", success=False) for _ in range(3)),
            event("recompute", signup, "u1"),
        )
        assert build_activation_cohorts(users, events)[0].activation_rate == 0.0

    def test_limit_keeps_latest(self):
        users = _users(*(user(f"u{i}", days_ago(7 * i)) for i in range(15)))
        cohorts = build_activation_cohorts(users, [])
        assert len(cohorts) == 12
        assert cohorts[-1].cohort == "2024-06-10T00:00:00.000Z"
