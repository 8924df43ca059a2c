"""
Tests for Module 08 — API usage analytics repository.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.analytics import AnalyticsRepository, RequestMetric, client_ip, should_track

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def metric(endpoint, status_code=200, response_time_ms=10, minutes=0, method="GET"):
    return RequestMetric(
        endpoint=endpoint,
        method=method,
        status_code=status_code,
        response_time_ms=response_time_ms,
        timestamp=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture()
def analytics(session_factory):
    return AnalyticsRepository(session_factory)


class TestHelpers:
    @pytest.mark.parametrize("path, tracked", [
        ("/api/cities", True),
        ("/api/advisory/city/Lyon", True),
        ("/api/analytics/summary", False),
        ("/api/analytics", False),
        ("/docs", False),
        ("/api", False),
    ])
    def test_should_track(self, path, tracked):
        assert should_track(path) is tracked

    def test_client_ip_prefers_forwarded_for(self):
        headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.2"}
        assert client_ip(headers, "127.0.0.1") == "203.0.113.7"

    def test_client_ip_falls_back(self):
        assert client_ip({"x-real-ip": "10.0.0.2"}, "127.0.0.1") == "10.0.0.2"
        assert client_ip({}, "127.0.0.1") == "127.0.0.1"
        assert client_ip({}, None) is None


class TestAggregates:
    def test_empty(self, analytics):
        assert analytics.total_requests() == 0
        assert analytics.endpoint_stats() == {}
        assert analytics.response_time_stats() == {}
        assert analytics.success_error_rates() == {}
        assert analytics.timeline() == []

    def test_counts_and_averages(self, analytics):
        for m in (
            metric("/api/cities", response_time_ms=10),
            metric("/api/cities", response_time_ms=30),
            metric("/api/city/Atlantis", status_code=404, response_time_ms=5),
        ):
            assert analytics.record(m) is True
        assert analytics.total_requests() == 3
        assert analytics.endpoint_stats() == {"/api/cities": 2, "/api/city/Atlantis": 1}
        assert analytics.response_time_stats() == {"/api/cities": 20.0, "/api/city/Atlantis": 5.0}

    def test_redirects_are_neither_success_nor_error(self, analytics):
        for status in (200, 204, 302, 404, 500):
            analytics.record(metric("/api/global", status_code=status))
        assert analytics.success_error_rates() == {"/api/global": {"success": 2, "error": 2}}

    def test_timeline_newest_first_and_limited(self, analytics):
        analytics.record(metric("/api/global", minutes=1))
        analytics.record(metric("/api/countries", minutes=5))
        analytics.record(metric("/api/cities", minutes=3))
        timeline = analytics.timeline(limit=2)
        assert [e["endpoint"] for e in timeline] == ["/api/countries", "/api/cities"]
        assert set(timeline[0]) == {"timestamp", "endpoint", "method", "status_code", "response_time_ms"}

    def test_long_values_are_truncated(self, analytics):
        m = metric("/api/city/" + "x" * 600)
        m.user_agent = "agent/" + "y" * 600
        assert analytics.record(m) is True
        assert len(next(iter(analytics.endpoint_stats()))) == 500


class TestRecordFailure:
    def test_write_error_is_logged_not_raised(self, caplog):
        broken = AnalyticsRepository(sessionmaker(bind=create_engine("sqlite://")))
        assert broken.record(metric("/api/cities")) is False
        assert "Error saving request metric" in caplog.text
