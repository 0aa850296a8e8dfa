"""Security event data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..clock import isoformat
from ..errors import ValidationError
from ..risk.levels import RISK_MAX, RISK_MIN, Severity, severity_for


class EventType(str, Enum):
    # Authentication
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    MFA_CHALLENGE = "MFA_CHALLENGE"
    MFA_SUCCESS = "MFA_SUCCESS"
    MFA_FAILED = "MFA_FAILED"
    # Authorization
    ACCESS_GRANTED = "ACCESS_GRANTED"
    ACCESS_DENIED = "ACCESS_DENIED"
    # Zero trust
    ZERO_TRUST_VERIFICATION = "ZERO_TRUST_VERIFICATION"
    DEVICE_FINGERPRINT_NEW = "DEVICE_FINGERPRINT_NEW"
    DEVICE_VERIFIED = "DEVICE_VERIFIED"
    DEVICE_BLOCKED = "DEVICE_BLOCKED"
    RISK_ASSESSMENT = "RISK_ASSESSMENT"
    # Suspicious activity
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    BRUTE_FORCE_ATTEMPT = "BRUTE_FORCE_ATTEMPT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    ANOMALOUS_BEHAVIOR = "ANOMALOUS_BEHAVIOR"
    GEO_ANOMALY = "GEO_ANOMALY"
    # System
    SYSTEM_ERROR = "SYSTEM_ERROR"
    THREAT_DETECTED = "THREAT_DETECTED"

    @classmethod
    def parse(cls, value: "str | EventType") -> "EventType":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unrecognized event type: {value!r}") from None


SUSPICIOUS_EVENT_TYPES = frozenset({
    EventType.SUSPICIOUS_ACTIVITY,
    EventType.BRUTE_FORCE_ATTEMPT,
    EventType.ANOMALOUS_BEHAVIOR,
})

# Gate bookkeeping and operator actions say nothing about how the device behaves.
NON_TRUST_SIGNAL_TYPES = frozenset({
    EventType.ZERO_TRUST_VERIFICATION,
    EventType.DEVICE_VERIFIED,
    EventType.DEVICE_BLOCKED,
    EventType.DEVICE_FINGERPRINT_NEW,
})


class SecurityDecision(str, Enum):
    ALLOW = "ALLOW"
    CHALLENGE = "CHALLENGE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class GeoLocation:
    country: str
    region: str | None = None
    city: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"country": self.country, "region": self.region, "city": self.city}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "GeoLocation | None":
        if not data or not data.get("country"):
            return None
        return cls(country=data["country"], region=data.get("region"), city=data.get("city"))


@dataclass
class NewEvent:
    """An event as submitted to the ledger, before id/timestamp assignment."""
    event_type: EventType | str
    risk_score: int = 0
    ip_address: str = ""
    geo_location: GeoLocation | None = None
    user_id: str | None = None
    device_fingerprint_id: str | None = None
    description: str = ""
    security_decision: SecurityDecision | None = None
    risk_factors: list[str] = field(default_factory=list)
    user_agent: str = ""
    request_path: str = ""
    request_method: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def validated(self) -> "NewEvent":
        event_type = EventType.parse(self.event_type)
        if isinstance(self.risk_score, bool) or not isinstance(self.risk_score, int):
            raise ValidationError(f"risk_score must be an integer, got {self.risk_score!r}")
        if not RISK_MIN <= self.risk_score <= RISK_MAX:
            raise ValidationError(
                f"risk_score {self.risk_score} outside [{RISK_MIN}, {RISK_MAX}]"
            )
        self.event_type = event_type
        return self


@dataclass(frozen=True)
class SecurityEvent:
    """An immutable ledger record."""
    id: str
    event_type: EventType
    severity: Severity
    risk_score: int
    ip_address: str
    created_at: datetime
    geo_location: GeoLocation | None = None
    user_id: str | None = None
    device_fingerprint_id: str | None = None
    description: str = ""
    security_decision: SecurityDecision | None = None
    risk_factors: tuple[str, ...] = ()
    user_agent: str = ""
    request_path: str = ""
    request_method: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_new(cls, event_id: str, new: NewEvent, created_at: datetime) -> "SecurityEvent":
        return cls(
            id=event_id,
            event_type=EventType(new.event_type),
            severity=severity_for(new.risk_score),
            risk_score=new.risk_score,
            ip_address=new.ip_address,
            created_at=created_at,
            geo_location=new.geo_location,
            user_id=new.user_id,
            device_fingerprint_id=new.device_fingerprint_id,
            description=new.description,
            security_decision=new.security_decision,
            risk_factors=tuple(new.risk_factors),
            user_agent=new.user_agent,
            request_path=new.request_path,
            request_method=new.request_method,
            metadata=dict(new.metadata),
        )

    @property
    def country(self) -> str | None:
        return self.geo_location.country if self.geo_location else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "riskScore": self.risk_score,
            "ipAddress": self.ip_address,
            "geoLocation": self.geo_location.to_dict() if self.geo_location else None,
            "userId": self.user_id,
            "deviceFingerprintId": self.device_fingerprint_id,
            "description": self.description,
            "securityDecision": self.security_decision.value if self.security_decision else None,
            "riskFactors": list(self.risk_factors),
            "userAgent": self.user_agent,
            "requestPath": self.request_path,
            "requestMethod": self.request_method,
            "metadata": self.metadata,
            "createdAt": isoformat(self.created_at),
        }


@dataclass
class EventFilter:
    event_type: EventType | None = None
    severity: Severity | None = None
    min_risk_score: int | None = None
    ip_address: str | None = None
    user_id: str | None = None
    device_fingerprint_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    def __post_init__(self):
        if self.event_type is not None:
            self.event_type = EventType.parse(self.event_type)
        if self.severity is not None and not isinstance(self.severity, Severity):
            try:
                self.severity = Severity(str(self.severity).lower())
            except ValueError:
                raise ValidationError(f"Unrecognized severity: {self.severity!r}") from None
        if self.min_risk_score is not None and not RISK_MIN <= self.min_risk_score <= RISK_MAX:
            raise ValidationError(f"riskScore filter {self.min_risk_score} outside [0, 100]")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError("startDate must not be after endDate")

    def matches(self, event: SecurityEvent) -> bool:
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        if self.severity is not None and event.severity != self.severity:
            return False
        if self.min_risk_score is not None and event.risk_score < self.min_risk_score:
            return False
        if self.ip_address is not None and event.ip_address != self.ip_address:
            return False
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        if (self.device_fingerprint_id is not None
                and event.device_fingerprint_id != self.device_fingerprint_id):
            return False
        if self.start_date is not None and event.created_at < self.start_date:
            return False
        if self.end_date is not None and event.created_at > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 50

    def __post_init__(self):
        if self.page < 1:
            raise ValidationError("page must be >= 1")
        if self.limit < 1:
            raise ValidationError("limit must be >= 1")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: list[Any]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.total else 0

    def pagination(self) -> dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}
