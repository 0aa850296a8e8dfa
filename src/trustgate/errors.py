"""
Error taxonomy for TrustGate.

Every error carries the HTTP status the API layer renders it with, so
routes can raise and let the app-level handler translate.
"""

from __future__ import annotations

from typing import Any


class TrustGateError(Exception):
    """Base class for all TrustGate errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(TrustGateError):
    """Malformed filter, out-of-range score, or unknown enum value."""
    status_code = 400
    code = "validation_error"


class AuthenticationError(TrustGateError):
    """No authenticated identity on the request."""
    status_code = 401
    code = "authentication_required"


class AuthorizationError(TrustGateError):
    """Caller lacks the operator role."""
    status_code = 403
    code = "forbidden"


class NotFoundError(TrustGateError):
    status_code = 404
    code = "not_found"


class StoreUnavailableError(TrustGateError):
    """Ledger or registry backend unreachable."""
    status_code = 503
    code = "store_unavailable"
