"""Identity provider and operator directory for TrustGate."""

from .registry import IdentityDirectory
from .models import Identity

__all__ = ["IdentityDirectory", "Identity"]
