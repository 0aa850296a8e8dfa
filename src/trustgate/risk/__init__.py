"""Risk scoring for TrustGate."""

from .engine import RiskEngine, RiskAssessment
from .context import RequestContext
from .levels import Severity, severity_for
from .velocity import VelocityTracker

__all__ = [
    "RiskEngine",
    "RiskAssessment",
    "RequestContext",
    "Severity",
    "severity_for",
    "VelocityTracker",
]
