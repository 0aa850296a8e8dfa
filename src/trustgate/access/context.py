"""
Gate request context.

What the transport layer hands the continuous verification gate for one
request: the upstream-authenticated identity, the device fingerprint,
and best-effort network/geo signals.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from ..ledger.models import GeoLocation


def derive_fingerprint(user_agent: str, accept_language: str = "", accept_encoding: str = "") -> str:
    """Fallback fingerprint when the client sends none: hash of stable headers."""
    data = {
        "userAgent": user_agent,
        "acceptLanguage": accept_language,
        "acceptEncoding": accept_encoding,
    }
    return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()


@dataclass
class GateRequest:
    """One protected request as seen by the gate."""
    fingerprint_hash: str
    ip_address: str
    user_id: str | None = None
    role: str = ""
    geo_location: GeoLocation | None = None
    user_agent: str = ""
    request_path: str = ""
    request_method: str = ""
    # None when the transport did not observe the header set at all.
    accept_language: str | None = None
    accept_encoding: str | None = None
    payload: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def country(self) -> str | None:
        return self.geo_location.country if self.geo_location else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint_hash": self.fingerprint_hash,
            "ip_address": self.ip_address,
            "user_id": self.user_id,
            "role": self.role,
            "country": self.country,
            "request_path": self.request_path,
            "request_method": self.request_method,
        }
