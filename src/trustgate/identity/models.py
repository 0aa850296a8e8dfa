"""Identity data model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class Identity:
    """An authenticated user or operator as supplied by the identity provider."""
    user_id: str
    email: str = ""
    role: str = "user"
    name: str = ""
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "role": self.role,
            "name": self.name,
        }
