"""Operator actions for TrustGate."""

from .actions import AdminActions

__all__ = ["AdminActions"]
