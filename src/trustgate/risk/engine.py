"""
Request risk scoring engine.

Combines the device's trust, the requester's recent failed logins, geo
consistency with past successful logins and request velocity with
request-time, network, client and payload signals into a 0-100 score.
Each call is a pure function of its context and settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..config import Settings
from .context import RequestContext
from .levels import Severity, clamp_risk, severity_for, trust_level_for
from .signals import detect_malicious_payload, is_bot_user_agent, is_private_address


@dataclass
class RiskAssessment:
    """Risk score with component breakdown."""
    risk_score: int
    severity: Severity
    components: dict[str, int] = field(default_factory=dict)
    factors: list[str] = field(default_factory=list)

    @property
    def trust_level(self) -> str:
        return trust_level_for(self.risk_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "severity": self.severity.value,
            "trustLevel": self.trust_level,
            "components": dict(self.components),
            "factors": list(self.factors),
        }


class RiskEngine:
    """Scores a RequestContext using the increments configured in Settings."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def score(self, ctx: RequestContext) -> RiskAssessment:
        s = self.settings
        components: dict[str, int] = {}
        factors: list[str] = []

        components["device"] = 100 - max(0, min(100, ctx.trust_score))
        if ctx.trust_score < 30:
            factors.append(f"Low device trust ({ctx.trust_score})")

        failed = min(s.failed_login_cap, max(0, ctx.failed_login_count) * s.failed_login_increment)
        components["failed_logins"] = failed
        if failed:
            factors.append(
                f"{ctx.failed_login_count} failed logins in last "
                f"{s.failed_login_window_minutes} minutes"
            )

        geo = 0
        if ctx.country and ctx.recent_login_countries:
            if ctx.country not in ctx.recent_login_countries:
                geo = s.geo_anomaly_increment
                factors.append(f"Login country {ctx.country} not seen in recent logins")
        components["geo_anomaly"] = geo

        high_risk_geo = 0
        if ctx.country and ctx.country in s.high_risk_countries:
            high_risk_geo = s.high_risk_country_increment
            factors.append(f"High-risk country {ctx.country}")
        components["high_risk_country"] = high_risk_geo

        velocity = 0
        if ctx.request_velocity > s.velocity_threshold:
            velocity = s.velocity_increment
            factors.append(
                f"Request velocity {ctx.request_velocity} exceeds {s.velocity_threshold}"
                f" per {s.velocity_window_seconds}s"
            )
        components["velocity"] = velocity

        components["off_hours"] = 0
        components["weekend"] = 0
        if ctx.requested_at is not None:
            hour = ctx.requested_at.hour
            if hour < s.business_hours_start or hour > s.business_hours_end:
                components["off_hours"] = s.off_hours_increment
                if s.off_hours_increment:
                    factors.append(f"Request outside business hours ({hour:02d}:00)")
            if ctx.requested_at.weekday() >= 5:
                components["weekend"] = s.weekend_increment
                if s.weekend_increment:
                    factors.append("Weekend request")

        private = 0
        if s.private_network_increment and is_private_address(ctx.ip_address, s.private_networks):
            private = s.private_network_increment
            factors.append(f"Private network address {ctx.ip_address}")
        components["private_network"] = private

        headers = 0
        if ctx.accept_language is not None and not ctx.accept_language.strip():
            headers += s.missing_accept_language_increment
            if s.missing_accept_language_increment:
                factors.append("Missing Accept-Language header")
        if ctx.accept_encoding is not None and not ctx.accept_encoding.strip():
            headers += s.missing_accept_encoding_increment
            if s.missing_accept_encoding_increment:
                factors.append("Missing Accept-Encoding header")
        components["missing_headers"] = headers

        bot = 0
        if s.bot_user_agent_increment and is_bot_user_agent(ctx.user_agent, s.bot_user_agent_markers):
            bot = s.bot_user_agent_increment
            factors.append("Automated client user agent")
        components["bot_user_agent"] = bot

        payload = 0
        if s.malicious_payload_increment:
            threats = detect_malicious_payload(ctx.payload, s.max_payload_scan_chars)
            if threats:
                payload = s.malicious_payload_increment
                factors.append(f"Malicious payload pattern: {', '.join(threats)}")
        components["malicious_payload"] = payload

        total = clamp_risk(sum(components.values()))
        return RiskAssessment(
            risk_score=total,
            severity=severity_for(total),
            components=components,
            factors=factors,
        )

    def batch_score(self, contexts: list[RequestContext]) -> list[RiskAssessment]:
        return [self.score(ctx) for ctx in contexts]
