"""
Risk bucket table shared by the risk engine and the analytics service.

Boundaries are half-open ``[lo, hi)`` except the last bucket, which
includes 100 so that every clamped score lands in exactly one bucket.
"""

from __future__ import annotations

from enum import Enum

RISK_MIN = 0
RISK_MAX = 100

RISK_BUCKET_BOUNDARIES: tuple[int, ...] = (0, 25, 50, 75, 90, 100)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    SEVERE = "severe"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER: tuple[Severity, ...] = (
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
    Severity.SEVERE,
)

# Trust label per bucket, lowest risk first.
TRUST_LEVELS: tuple[str, ...] = ("HIGH", "MEDIUM", "LOW", "NONE", "NONE")


def clamp_risk(value: float) -> int:
    """Round and clamp a raw score into [0, 100]."""
    return int(max(RISK_MIN, min(RISK_MAX, round(value))))


def bucket_index(risk_score: int) -> int:
    if not RISK_MIN <= risk_score <= RISK_MAX:
        raise ValueError(f"risk score {risk_score} outside [{RISK_MIN}, {RISK_MAX}]")
    for i in range(len(RISK_BUCKET_BOUNDARIES) - 2, -1, -1):
        if risk_score >= RISK_BUCKET_BOUNDARIES[i]:
            return i
    return 0


def severity_for(risk_score: int) -> Severity:
    return SEVERITY_ORDER[bucket_index(risk_score)]


def trust_level_for(risk_score: int) -> str:
    return TRUST_LEVELS[bucket_index(risk_score)]


def bucket_label(index: int) -> str:
    lo = RISK_BUCKET_BOUNDARIES[index]
    hi = RISK_BUCKET_BOUNDARIES[index + 1]
    closing = "]" if index == len(RISK_BUCKET_BOUNDARIES) - 2 else ")"
    return f"[{lo},{hi}{closing}"
