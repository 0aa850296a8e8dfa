"""Tests for security analytics."""

import pytest

from trustgate.analytics import daily_trend, score_stats
from trustgate.errors import NotFoundError, ValidationError
from trustgate.ledger import EventType, GeoLocation, NewEvent, PageRequest


def _log(ledger, event_type, risk, user=None, ip="10.0.0.1", country=None, device=None):
    return ledger.append(NewEvent(
        event_type=event_type, risk_score=risk, ip_address=ip, user_id=user,
        geo_location=GeoLocation(country) if country else None,
        device_fingerprint_id=device,
    ))


class TestHelpers:
    def test_score_stats(self):
        assert score_stats([10, 20, 40]) == (23.33, 40)

    def test_score_stats_empty(self):
        assert score_stats([]) == (0.0, 0)

    def test_daily_trend_empty(self):
        assert daily_trend([], 70) == []


class TestDashboard:
    def test_empty(self, analytics):
        data = analytics.dashboard()
        assert data["metrics"]["totalEvents"] == 0
        assert len(data["riskDistribution"]) == 5
        assert all(b["count"] == 0 and b["avgScore"] == 0.0 for b in data["riskDistribution"])
        assert data["geoDistribution"] == []

    def test_metrics(self, analytics, ledger, registry, recorder):
        for _ in range(5):
            recorder.record_login(False, "10.0.0.9", "bob", fingerprint_hash="bob-box")
        recorder.record_login(True, "10.0.0.1", "alice", GeoLocation("US"), "alice-laptop")
        _log(ledger, EventType.SUSPICIOUS_ACTIVITY, 80, "alice")
        device = registry.find_by_hash("bob-box")
        registry.block(device.id, "brute force", "sec-ops")

        metrics = analytics.dashboard()["metrics"]
        assert metrics["totalEvents"] == 8
        assert metrics["failedLogins"] == 5
        assert metrics["suspiciousActivity"] == 2
        assert metrics["highRiskEvents"] == 2
        assert metrics["newDevices"] == 2
        assert metrics["unverifiedDevices"] == 2
        assert metrics["blockedDevices"] == 1

    def test_histogram_matches_total(self, analytics, ledger):
        for risk in (0, 24, 25, 50, 74, 75, 89, 90, 100, 100):
            _log(ledger, EventType.RISK_ASSESSMENT, risk)
        data = analytics.dashboard()
        buckets = data["riskDistribution"]
        assert sum(b["count"] for b in buckets) == data["metrics"]["totalEvents"]
        assert [b["count"] for b in buckets] == [2, 1, 2, 2, 3]
        assert buckets[-1]["bucket"] == "[90,100]"
        assert buckets[-1]["avgScore"] == pytest.approx(96.67)

    def test_windows(self, analytics, ledger, clock):
        _log(ledger, EventType.LOGIN_SUCCESS, 0, "alice", country="US")
        clock.advance(days=3)
        _log(ledger, EventType.LOGIN_SUCCESS, 0, "alice", country="US")
        _log(ledger, EventType.LOGIN_SUCCESS, 10, "bob", country="CA")
        data = analytics.dashboard()
        assert data["metrics"]["totalEvents"] == 2
        geo = data["geoDistribution"]
        assert geo[0] == {"country": "US", "count": 2, "avgRiskScore": 0.0, "uniqueUserCount": 1}
        assert geo[1]["country"] == "CA"

    def test_recent_high_risk(self, analytics, ledger):
        _log(ledger, EventType.LOGIN_FAILED, 40, "bob")
        _log(ledger, EventType.BRUTE_FORCE_ATTEMPT, 90, "bob")
        recent = analytics.dashboard()["recentHighRiskEvents"]
        assert len(recent) == 1
        assert recent[0]["userEmail"] == "bob@corp.io"


class TestListings:
    def test_events_with_email(self, analytics, ledger):
        _log(ledger, EventType.LOGIN_SUCCESS, 0, "alice")
        _log(ledger, EventType.LOGIN_SUCCESS, 0, "ghost")
        page = analytics.events()
        emails = sorted(str(e["userEmail"]) for e in page.items)
        assert emails == ["None", "alice@corp.io"]

    def test_page_limit(self, analytics):
        with pytest.raises(ValidationError):
            analytics.events(page=PageRequest(limit=1000))

    def test_devices_with_operator(self, analytics, registry):
        device, _ = registry.get_or_create("alice-laptop", user_id="alice")
        registry.block(device.id, "lost", "sec-ops")
        page = analytics.devices()
        row = page.items[0]
        assert row["blockedByOperator"]["email"] == "secops@corp.io"
        assert row["associatedUsers"][0]["email"] == "alice@corp.io"


class TestTrendsAndSummaries:
    def test_risk_trends(self, analytics, ledger, clock):
        _log(ledger, EventType.LOGIN_FAILED, 40)
        _log(ledger, EventType.BRUTE_FORCE_ATTEMPT, 90)
        clock.advance(days=2)
        _log(ledger, EventType.LOGIN_SUCCESS, 0)
        trends = analytics.risk_trends(7)
        assert [t["eventCount"] for t in trends] == [2, 1]
        assert trends[0]["date"] == "2026-03-02"
        assert trends[0]["avgRiskScore"] == 65.0
        assert trends[0]["highRiskCount"] == 1
        assert analytics.risk_trends(1)[0]["date"] == "2026-03-04"

    @pytest.mark.parametrize("days", [0, -3, 366])
    def test_risk_trends_bounds(self, analytics, days):
        with pytest.raises(ValidationError):
            analytics.risk_trends(days)

    def test_threat_summary(self, analytics, recorder):
        for i in range(6):
            recorder.record_login(False, f"198.51.100.{i % 2}", "bob")
        summary = analytics.threat_summary()
        assert summary[0]["eventType"] == "LOGIN_FAILED"
        assert summary[0]["count"] == 6
        assert summary[0]["avgRiskScore"] == 40.0
        assert summary[0]["uniqueIPCount"] == 2
        assert summary[0]["uniqueUserCount"] == 1
        brute = summary[1]
        assert brute["eventType"] == "BRUTE_FORCE_ATTEMPT"
        assert brute["count"] == 2
        assert brute["maxRiskScore"] == 90

    def test_threat_summary_suspicious_group(self, analytics, ledger):
        for ip in ("10.0.0.1", "10.0.0.2", "10.0.0.2"):
            _log(ledger, EventType.SUSPICIOUS_ACTIVITY, 75, "bob", ip=ip)
        _log(ledger, EventType.LOGIN_SUCCESS, 0, "alice")
        row = next(r for r in analytics.threat_summary() if r["eventType"] == "SUSPICIOUS_ACTIVITY")
        assert row["count"] == 3
        assert row["uniqueIPCount"] == 2
        assert row["uniqueUserCount"] == 1

    def test_threat_summary_window(self, analytics, ledger, clock):
        _log(ledger, EventType.LOGIN_FAILED, 40)
        clock.advance(hours=25)
        assert analytics.threat_summary() == []


class TestUserProfile:
    def test_unknown_user(self, analytics):
        with pytest.raises(NotFoundError):
            analytics.user_security_profile("nobody")

    def test_user_without_events(self, analytics):
        profile = analytics.user_security_profile("alice")
        assert profile["summary"]["totalEvents"] == 0
        assert profile["summary"]["avgRiskScore"] == 0.0
        assert profile["summary"]["maxRiskScore"] == 0
        assert profile["events"] == []
        assert profile["riskTrends"] == []

    def test_profile(self, analytics, recorder, registry):
        recorder.record_login(True, "10.0.0.1", "alice", GeoLocation("US"), "alice-laptop")
        recorder.record_login(False, "10.0.0.1", "alice")
        device = registry.find_by_hash("alice-laptop")
        registry.verify(device.id, "OTP")
        profile = analytics.user_security_profile("alice")
        summary = profile["summary"]
        assert summary["totalEvents"] == 2
        assert summary["avgRiskScore"] == 20.0
        assert summary["maxRiskScore"] == 40
        assert summary["deviceCount"] == 1
        assert summary["verifiedDevices"] == 1
        assert len(profile["recentEvents"]) == 2
