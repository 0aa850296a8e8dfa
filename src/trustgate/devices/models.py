"""Device fingerprint data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..clock import isoformat
from ..errors import ValidationError


class VerificationMethod(str, Enum):
    ADMIN_APPROVAL = "ADMIN_APPROVAL"
    OTP = "OTP"
    EMAIL = "EMAIL"
    SMS = "SMS"
    BEHAVIORAL_ANALYSIS = "BEHAVIORAL_ANALYSIS"

    @classmethod
    def parse(cls, value: "str | VerificationMethod") -> "VerificationMethod":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unrecognized verification method: {value!r}") from None


@dataclass
class AssociatedUser:
    user_id: str
    role: str = ""
    first_association: datetime | None = None
    last_association: datetime | None = None
    access_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "role": self.role,
            "firstAssociation": isoformat(self.first_association),
            "lastAssociation": isoformat(self.last_association),
            "accessCount": self.access_count,
        }


@dataclass
class DeviceFingerprint:
    """One observed client device."""
    id: str
    fingerprint_hash: str
    first_seen: datetime
    last_seen: datetime
    trust_score: int = 50
    is_verified: bool = False
    verification_method: VerificationMethod | None = None
    verified_at: datetime | None = None
    is_blocked: bool = False
    blocked_reason: str | None = None
    blocked_at: datetime | None = None
    blocked_by: str | None = None
    associated_users: dict[str, AssociatedUser] = field(default_factory=dict)
    risk_score: int = 0
    last_risk_assessment: datetime | None = None
    access_count: int = 1
    ip_addresses: list[str] = field(default_factory=list)
    # History penalty held until the event that set it leaves the trust window.
    penalty_floor: float = 0.0
    penalty_anchor: str | None = None

    @property
    def user_count(self) -> int:
        return len(self.associated_users)

    def snapshot(self) -> "DeviceFingerprint":
        """Detached copy safe to hand to callers outside the registry lock."""
        return DeviceFingerprint(
            id=self.id,
            fingerprint_hash=self.fingerprint_hash,
            first_seen=self.first_seen,
            last_seen=self.last_seen,
            trust_score=self.trust_score,
            is_verified=self.is_verified,
            verification_method=self.verification_method,
            verified_at=self.verified_at,
            is_blocked=self.is_blocked,
            blocked_reason=self.blocked_reason,
            blocked_at=self.blocked_at,
            blocked_by=self.blocked_by,
            associated_users={
                uid: AssociatedUser(**vars(au)) for uid, au in self.associated_users.items()
            },
            risk_score=self.risk_score,
            last_risk_assessment=self.last_risk_assessment,
            access_count=self.access_count,
            ip_addresses=list(self.ip_addresses),
            penalty_floor=self.penalty_floor,
            penalty_anchor=self.penalty_anchor,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fingerprintHash": self.fingerprint_hash,
            "firstSeen": isoformat(self.first_seen),
            "lastSeen": isoformat(self.last_seen),
            "trustScore": self.trust_score,
            "isVerified": self.is_verified,
            "verificationMethod": self.verification_method.value if self.verification_method else None,
            "verifiedAt": isoformat(self.verified_at),
            "isBlocked": self.is_blocked,
            "blockedReason": self.blocked_reason,
            "blockedAt": isoformat(self.blocked_at),
            "blockedBy": self.blocked_by,
            "associatedUsers": [au.to_dict() for au in self.associated_users.values()],
            "riskScore": self.risk_score,
            "lastRiskAssessment": isoformat(self.last_risk_assessment),
            "accessCount": self.access_count,
            "ipAddresses": list(self.ip_addresses),
        }
