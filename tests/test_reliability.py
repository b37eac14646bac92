"""Tests for performance, reliability, and safety sections."""

from datetime import timedelta

import pytest

from ridemetrics.analytics.performance import endpoint_metrics, recompute_cost, storage_summary
from ridemetrics.analytics.records import ExceptionEvent, PendingJob, RequestMetric, StorageSnapshot
from ridemetrics.analytics.reliability import (
    availability,
    build_safety_section,
    burst_window,
    queue_status,
    suspicious_uploaders,
    top_exceptions,
)
from tests.conftest import NOW, TODAY, minutes_ago


def _request(at, status=200, duration=10.0, method="GET", path="/api/activities", **extra):
    return RequestMetric(method=method, path=path, status_code=status, duration_ms=duration, timestamp=at, **extra)


class TestEndpointMetrics:
    def test_averages(self):
        requests = [
            _request(NOW, duration=100, query_count=2, avg_query_duration_ms=5),
            _request(NOW, duration=300, query_count=4, avg_query_duration_ms=10),
            _request(NOW, duration=50, method="POST", path="/api/uploads"),
        ]
        rows = endpoint_metrics(requests)
        assert rows[0] == {
            "method": "GET",
            "path": "/api/activities",
            "avgDurationMs": 200.0,
            "avgQueryCount": 3.0,
            "avgQueryDurationMs": pytest.approx(50 / 6),
            "requestCount": 2,
        }
        assert rows[1]["avgQueryDurationMs"] == 0.0

    def test_limit(self):
        requests = [_request(NOW, path=f"/p{i}", duration=i) for i in range(25)]
        rows = endpoint_metrics(requests)
        assert len(rows) == 20
        assert rows[0]["path"] == "/p24"


class TestStorage:
    def test_growth_slope(self):
        bytes_by_day = {f"2024-06-{day:02d}": float((day - 6) * 100) for day in range(6, 13)}
        summary = storage_summary(bytes_by_day, TODAY, StorageSnapshot(uploads_dir_bytes=1e6))
        assert summary["sevenDaySlopeBytesPerDay"] == pytest.approx(100.0)
        assert summary["uploadsDirBytes"] == 1e6
        assert summary["postgresBytes"] is None
        assert len(summary["dailyTotals"]) == 7

    def test_no_uploads(self):
        summary = storage_summary({}, TODAY, StorageSnapshot())
        assert summary["sevenDaySlopeBytesPerDay"] == 0.0

    def test_recompute_cost(self):
        cost = recompute_cost([60_000.0, 120_000.0], {"2024-06-12": [60_000.0, 120_000.0]})
        assert cost["totalMinutes"] == pytest.approx(3.0)
        assert cost["estimatedUsd"] == pytest.approx(0.36)
        assert cost["dailyMinutes"] == [{"date": "2024-06-12", "minutes": pytest.approx(3.0)}]


class TestAvailability:
    def test_per_minute(self):
        requests = [
            _request(minutes_ago(2)),
            _request(minutes_ago(2), status=503),
            _request(minutes_ago(1)),
            _request(NOW - timedelta(days=2), status=500),
        ]
        result = availability(requests, NOW)
        assert [point["total"] for point in result["series"]] == [2, 1]
        assert result["series"][0]["availability"] == pytest.approx(0.5)
        assert result["current"] == 1.0
        assert result["errorRatio"] == pytest.approx(1 / 3)
        assert result["burnRate"] == pytest.approx((1 / 3) / 0.005)

    def test_no_traffic(self):
        result = availability([], NOW)
        assert result == {"current": 1.0, "errorRatio": 0.0, "burnRate": 0.0, "series": []}

    def test_4xx_is_available(self):
        assert availability([_request(NOW, status=404)], NOW)["current"] == 1.0


class TestQueueAndExceptions:
    def test_queue(self):
        jobs = [
            PendingJob(status="PENDING", enqueued_at=minutes_ago(3)),
            PendingJob(status="RUNNING", enqueued_at=minutes_ago(12.5)),
        ]
        assert queue_status(jobs, NOW) == {"depth": 2, "oldestMinutes": 13}

    def test_empty_queue(self):
        assert queue_status([], NOW) == {"depth": 0, "oldestMinutes": None}

    def test_top_exceptions(self):
        stack = "\n".join(f"line {i}" for i in range(8))
        events = [
            ExceptionEvent(name="ValueError", created_at=NOW, stack=stack),
            ExceptionEvent(name="ValueError", created_at=NOW, stack="other"),
            ExceptionEvent(name="KeyError", created_at=NOW),
        ]
        rows = top_exceptions(events)
        assert rows[0]["name"] == "ValueError"
        assert rows[0]["count"] == 2
        assert rows[0]["sampleStack"] == "line 0\nline 1\nline 2\nline 3\nline 4"
        assert rows[1] == {"name": "KeyError", "count": 1, "sampleStack": None}


class TestSafety:
    def test_burst_window(self):
        times = [NOW + timedelta(seconds=10 * i) for i in range(50)]
        count, start = burst_window(times)
        assert count == 50
        assert start == NOW

    def test_spread_out_uploads(self):
        times = [NOW + timedelta(minutes=i) for i in range(100)]
        assert burst_window(times) is None

    def test_suspicious_needs_more_than_threshold(self):
        burst = [NOW + timedelta(seconds=i) for i in range(50)]
        assert suspicious_uploaders({"u1": burst}, {}) == []
        rows = suspicious_uploaders({"u1": burst + [NOW + timedelta(seconds=50)]}, {"u1": "u1@example.com"})
        assert rows == [{
            "userId": "u1",
            "email": "u1@example.com",
            "uploads": 50,
            "windowStart": "2024-06-12T12:00:00.000Z",
        }]

    def test_section(self):
        section = build_safety_section({}, {}, StorageSnapshot(orphan_count=3, db_activity_count=40), NOW)
        assert section == {
            "suspicious": [],
            "storage": {"orphanCount": 3, "dbActivityCount": 40, "scannedAt": "2024-06-12T12:00:00.000Z"},
        }
