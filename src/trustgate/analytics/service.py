"""
Security analytics.

Read-only aggregations over the ledger and device registry for the
operator dashboard: headline counts, risk histogram, geo distribution,
daily risk trends, per-event-type threat summaries and per-user
security profiles. Histogram buckets come from the same table the risk
engine uses to assign severity.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Any, Iterable

import numpy as np

from ..config import Settings
from ..devices import DeviceTrustRegistry
from ..devices.registry import DeviceFilter
from ..errors import NotFoundError, ValidationError
from ..identity import IdentityDirectory
from ..ledger import SecurityLedger
from ..ledger.models import (
    SUSPICIOUS_EVENT_TYPES,
    EventFilter,
    EventType,
    Page,
    PageRequest,
    SecurityEvent,
)
from ..risk.levels import RISK_BUCKET_BOUNDARIES, bucket_index, bucket_label

MAX_TREND_DAYS = 365
TOP_COUNTRIES = 10
RECENT_HIGH_RISK = 10
PROFILE_EVENT_LIMIT = 100
PROFILE_RECENT_EVENTS = 20


def score_stats(scores: Iterable[int]) -> tuple[float, int]:
    """(mean, max) of risk scores; (0.0, 0) for an empty collection."""
    arr = np.fromiter(scores, dtype=np.float64)
    if arr.size == 0:
        return 0.0, 0
    return round(float(arr.mean()), 2), int(arr.max())


def daily_trend(events: Iterable[SecurityEvent], high_risk_threshold: int) -> list[dict[str, Any]]:
    """Per-day average/max risk and counts, oldest day first."""
    by_day: dict[str, list[int]] = defaultdict(list)
    for e in events:
        by_day[e.created_at.strftime("%Y-%m-%d")].append(e.risk_score)
    trend = []
    for day in sorted(by_day):
        scores = by_day[day]
        mean, peak = score_stats(scores)
        trend.append({
            "date": day,
            "avgRiskScore": mean,
            "maxRiskScore": peak,
            "eventCount": len(scores),
            "highRiskCount": sum(1 for s in scores if s >= high_risk_threshold),
        })
    return trend


class SecurityAnalytics:
    """Operator-facing aggregations. Never writes to either store."""

    def __init__(
        self,
        ledger: SecurityLedger,
        registry: DeviceTrustRegistry,
        directory: IdentityDirectory,
        settings: Settings | None = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.directory = directory
        self.settings = settings or Settings()

    # --- Dashboard ---

    def dashboard(self) -> dict[str, Any]:
        s = self.settings
        now = self.ledger.clock()
        since = now - timedelta(hours=s.dashboard_window_hours)
        events = self.ledger.select(since=since)
        devices = self.registry.all()

        metrics = {
            "totalEvents": len(events),
            "highRiskEvents": sum(1 for e in events if e.risk_score >= s.high_risk_threshold),
            "failedLogins": sum(1 for e in events if e.event_type == EventType.LOGIN_FAILED),
            "suspiciousActivity": sum(1 for e in events if e.event_type in SUSPICIOUS_EVENT_TYPES),
            "newDevices": sum(1 for d in devices if d.first_seen >= since),
            "unverifiedDevices": sum(1 for d in devices if not d.is_verified),
            "blockedDevices": sum(1 for d in devices if d.is_blocked),
        }

        geo_events = self.ledger.select(since=now - timedelta(days=s.geo_window_days))
        recent_high = [e for e in events if e.risk_score >= s.high_risk_threshold][:RECENT_HIGH_RISK]

        return {
            "metrics": metrics,
            "riskDistribution": self.risk_histogram(events),
            "geoDistribution": self.geo_distribution(geo_events),
            "recentHighRiskEvents": [self._event_dict(e) for e in recent_high],
            "timestamp": now.isoformat(),
        }

    @staticmethod
    def risk_histogram(events: Iterable[SecurityEvent]) -> list[dict[str, Any]]:
        buckets: list[list[int]] = [[] for _ in range(len(RISK_BUCKET_BOUNDARIES) - 1)]
        for e in events:
            buckets[bucket_index(e.risk_score)].append(e.risk_score)
        result = []
        for i, scores in enumerate(buckets):
            mean, _ = score_stats(scores)
            result.append({
                "bucket": bucket_label(i),
                "min": RISK_BUCKET_BOUNDARIES[i],
                "max": RISK_BUCKET_BOUNDARIES[i + 1],
                "count": len(scores),
                "avgScore": mean,
            })
        return result

    @staticmethod
    def geo_distribution(events: Iterable[SecurityEvent], limit: int = TOP_COUNTRIES) -> list[dict[str, Any]]:
        groups: dict[str | None, list[SecurityEvent]] = defaultdict(list)
        for e in events:
            groups[e.country].append(e)
        rows = []
        for country, group in groups.items():
            mean, _ = score_stats(e.risk_score for e in group)
            rows.append({
                "country": country,
                "count": len(group),
                "avgRiskScore": mean,
                "uniqueUserCount": len({e.user_id for e in group if e.user_id}),
            })
        rows.sort(key=lambda r: (-r["count"], r["country"] or ""))
        return rows[:limit]

    # --- Listings ---

    def events(self, filter: EventFilter | None = None, page: PageRequest | None = None) -> Page:
        result = self.ledger.query(filter, self._page(page))
        result.items = [self._event_dict(e) for e in result.items]
        return result

    def devices(
        self,
        filter: DeviceFilter | None = None,
        page: PageRequest | None = None,
        sort_by: str = "lastSeen",
    ) -> Page:
        result = self.registry.query(filter, self._page(page), sort_by=sort_by)
        result.items = [self._device_dict(d) for d in result.items]
        return result

    def _page(self, page: PageRequest | None) -> PageRequest:
        page = page or PageRequest(limit=self.settings.default_page_size)
        if page.limit > self.settings.max_page_size:
            raise ValidationError(f"limit must not exceed {self.settings.max_page_size}")
        return page

    # --- Trends and summaries ---

    def risk_trends(self, days: int | None = None) -> list[dict[str, Any]]:
        days = self.settings.default_trend_days if days is None else days
        if not 1 <= days <= MAX_TREND_DAYS:
            raise ValidationError(f"days must be within [1, {MAX_TREND_DAYS}]")
        events = self.ledger.window(days=days)
        return daily_trend(events, self.settings.high_risk_threshold)

    def threat_summary(self) -> list[dict[str, Any]]:
        events = self.ledger.window(hours=self.settings.threat_summary_window_hours)
        groups: dict[EventType, list[SecurityEvent]] = defaultdict(list)
        for e in events:
            groups[e.event_type].append(e)
        summary = []
        for event_type, group in groups.items():
            mean, peak = score_stats(e.risk_score for e in group)
            summary.append({
                "eventType": event_type.value,
                "count": len(group),
                "avgRiskScore": mean,
                "maxRiskScore": peak,
                "uniqueIPCount": len({e.ip_address for e in group}),
                "uniqueUserCount": len({e.user_id for e in group if e.user_id}),
            })
        summary.sort(key=lambda r: (-r["count"], r["eventType"]))
        return summary

    def user_security_profile(self, user_id: str) -> dict[str, Any]:
        if self.directory.get(user_id) is None:
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)
        since = self.ledger.clock() - timedelta(days=self.settings.profile_window_days)
        events = self.ledger.select(lambda e: e.user_id == user_id, since=since)
        devices = self.registry.devices_for_user(user_id)
        mean, peak = score_stats(e.risk_score for e in events)
        return {
            "summary": {
                "totalEvents": len(events),
                "avgRiskScore": mean,
                "maxRiskScore": peak,
                "deviceCount": len(devices),
                "verifiedDevices": sum(1 for d in devices if d.is_verified),
                "blockedDevices": sum(1 for d in devices if d.is_blocked),
            },
            "recentEvents": [self._event_dict(e) for e in events[:PROFILE_RECENT_EVENTS]],
            "events": [self._event_dict(e) for e in events[:PROFILE_EVENT_LIMIT]],
            "devices": [self._device_dict(d) for d in devices],
            "riskTrends": daily_trend(events, self.settings.high_risk_threshold),
        }

    # --- Rendering ---

    def _event_dict(self, event: SecurityEvent) -> dict[str, Any]:
        data = event.to_dict()
        data["userEmail"] = self.directory.email_for(event.user_id)
        return data

    def _device_dict(self, device) -> dict[str, Any]:
        data = device.to_dict()
        data["blockedByOperator"] = self.directory.resolve_operator(device.blocked_by)
        for entry in data["associatedUsers"]:
            entry["email"] = self.directory.email_for(entry["userId"])
        return data
