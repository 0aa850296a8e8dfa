"""Continuous verification gate for TrustGate."""

from .engine import Decision, GateResult
from .context import GateRequest, derive_fingerprint
from .verification import ContinuousVerificationGate

__all__ = [
    "ContinuousVerificationGate",
    "GateRequest",
    "GateResult",
    "Decision",
    "derive_fingerprint",
]
