"""REST API for TrustGate."""

from .app import create_app

__all__ = ["create_app"]
