"""
Gate decision policy.

Maps a risk assessment onto allow / challenge / reject and carries the
outcome back to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..ledger.models import EventType, SecurityDecision
from ..risk.levels import Severity, severity_for, trust_level_for


class Decision(str, Enum):
    ALLOW = "allow"
    CHALLENGE = "challenge"  # Step-up authentication required
    REJECT = "reject"

    @property
    def ledger_value(self) -> SecurityDecision:
        return SecurityDecision[self.name]


# Ledger tag written for each terminal decision.
DECISION_EVENT_TYPES = {
    Decision.ALLOW: EventType.ZERO_TRUST_VERIFICATION,
    Decision.CHALLENGE: EventType.SUSPICIOUS_ACTIVITY,
    Decision.REJECT: EventType.DEVICE_BLOCKED,
}


@dataclass
class GateResult:
    decision: Decision
    risk_score: int
    reason: str
    device_id: str | None = None
    event_id: str | None = None
    factors: list[str] = field(default_factory=list)
    fail_policy: bool = False

    @property
    def severity(self) -> Severity:
        return severity_for(self.risk_score)

    @property
    def trust_level(self) -> str:
        return trust_level_for(self.risk_score)

    @property
    def allowed(self) -> bool:
        return self.decision == Decision.ALLOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "riskScore": self.risk_score,
            "severity": self.severity.value,
            "trustLevel": self.trust_level,
            "reason": self.reason,
            "deviceId": self.device_id,
            "eventId": self.event_id,
            "factors": list(self.factors),
            "failPolicy": self.fail_policy,
        }


def decide(risk_score: int, challenge_threshold: int) -> tuple[Decision, str]:
    """Decision for an unblocked device."""
    if risk_score >= challenge_threshold:
        return Decision.CHALLENGE, (
            f"Risk score {risk_score} at or above challenge threshold {challenge_threshold}"
        )
    return Decision.ALLOW, f"Risk score {risk_score} below challenge threshold {challenge_threshold}"
