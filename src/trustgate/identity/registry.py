"""
Identity directory.

Stands in for the upstream identity provider: resolves an authenticated
user id to ``{userId, role, email}`` and resolves operator ids recorded
on blocked devices. Records are only referenced by id from the ledger
and the device registry, never owned by them.
"""

from __future__ import annotations

from typing import Any, Iterable

from ..errors import AuthenticationError, AuthorizationError
from .models import Identity


class IdentityDirectory:
    """In-memory identity lookup."""

    def __init__(self, identities: Iterable[Identity] = ()):
        self.identities: dict[str, Identity] = {}
        for identity in identities:
            self.register(identity)

    def register(self, identity: Identity) -> None:
        self.identities[identity.user_id] = identity

    def get(self, user_id: str | None) -> Identity | None:
        if not user_id:
            return None
        return self.identities.get(user_id)

    def find_by_email(self, email: str) -> Identity | None:
        for ident in self.identities.values():
            if ident.email == email:
                return ident
        return None

    def email_for(self, user_id: str | None) -> str | None:
        ident = self.get(user_id)
        return ident.email if ident else None

    def disable(self, user_id: str) -> bool:
        ident = self.identities.get(user_id)
        if ident:
            ident.enabled = False
            return True
        return False

    # --- Request identity ---

    def authenticate(self, user_id: str | None) -> Identity:
        """Resolve the caller; missing, unknown or disabled ids are rejected."""
        ident = self.get(user_id)
        if ident is None or not ident.enabled:
            raise AuthenticationError("Authenticated identity required")
        return ident

    @staticmethod
    def require_role(identity: Identity, roles: Iterable[str]) -> None:
        allowed = set(roles)
        if identity.role not in allowed:
            raise AuthorizationError(
                f"Role {identity.role!r} is not permitted; requires one of {sorted(allowed)}",
                user_id=identity.user_id,
            )

    def resolve_operator(self, operator_id: str | None) -> dict[str, Any] | None:
        ident = self.get(operator_id)
        return ident.to_dict() if ident else None
