"""Device trust registry for TrustGate."""

from .registry import DeviceTrustRegistry, DeviceFilter
from .models import DeviceFingerprint, AssociatedUser, VerificationMethod

__all__ = [
    "DeviceTrustRegistry",
    "DeviceFilter",
    "DeviceFingerprint",
    "AssociatedUser",
    "VerificationMethod",
]
