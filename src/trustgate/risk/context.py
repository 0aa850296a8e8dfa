"""
Request context for risk scoring.

Captures everything the risk engine needs about one in-flight request:
the device's current trust, the requester's short-window history, where
the request appears to come from, and what the client sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RequestContext:
    """Inputs to one risk evaluation."""
    ip_address: str
    user_id: str | None = None
    device_fingerprint_id: str | None = None
    trust_score: int = 50
    country: str | None = None
    failed_login_count: int = 0  # within the failed-login lookback
    request_velocity: int = 0  # requests within the velocity window
    recent_login_countries: list[str] = field(default_factory=list)
    requested_at: datetime | None = None
    user_agent: str = ""
    # None means the header set was not observed, "" means the header was absent.
    accept_language: str | None = None
    accept_encoding: str | None = None
    payload: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip_address": self.ip_address,
            "user_id": self.user_id,
            "device_fingerprint_id": self.device_fingerprint_id,
            "trust_score": self.trust_score,
            "country": self.country,
            "failed_login_count": self.failed_login_count,
            "request_velocity": self.request_velocity,
            "recent_login_countries": list(self.recent_login_countries),
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "user_agent": self.user_agent,
        }
