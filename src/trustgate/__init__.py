"""
TrustGate: zero trust continuous verification and risk scoring.

Security event ledger, device trust registry, per-request risk scoring
and gating, and operator analytics.
"""

__version__ = "0.1.0"
