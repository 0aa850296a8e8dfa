"""
Authentication event recorder.

Login flows report outcomes here. Failed logins carry a fixed risk and,
once the identity (or source IP, before authentication) reaches the
brute-force threshold inside the failed-login window, an additional
BRUTE_FORCE_ATTEMPT event is written.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from ..config import Settings
from ..devices import DeviceTrustRegistry
from ..ledger import GeoLocation, NewEvent, SecurityLedger
from ..ledger.models import EventType

logger = logging.getLogger(__name__)


class AuthEventRecorder:
    """Writes login outcomes to the ledger and refreshes device trust."""

    def __init__(
        self,
        ledger: SecurityLedger,
        registry: DeviceTrustRegistry,
        settings: Settings | None = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.settings = settings or Settings()

    def record_login(
        self,
        success: bool,
        ip_address: str,
        user_id: str | None = None,
        geo_location: GeoLocation | None = None,
        fingerprint_hash: str | None = None,
        role: str = "",
        user_agent: str = "",
    ) -> list[str]:
        """Record one login attempt; returns the ids of the events written."""
        s = self.settings
        device_id = None
        if fingerprint_hash:
            device, _ = self.registry.get_or_create(
                fingerprint_hash,
                user_id=user_id if success else None,
                role=role,
                ip_address=ip_address,
            )
            device_id = device.id

        event_ids = [self.ledger.append(NewEvent(
            event_type=EventType.LOGIN_SUCCESS if success else EventType.LOGIN_FAILED,
            risk_score=0 if success else s.failed_login_risk,
            ip_address=ip_address,
            geo_location=geo_location,
            user_id=user_id,
            device_fingerprint_id=device_id,
            description="Login succeeded" if success else "Login failed",
            user_agent=user_agent,
        ))]

        if not success:
            since = self.ledger.clock() - timedelta(minutes=s.failed_login_window_minutes)
            if user_id:
                failures = self.ledger.count([EventType.LOGIN_FAILED], since=since, user_id=user_id)
            else:
                failures = self.ledger.count([EventType.LOGIN_FAILED], since=since,
                                             ip_address=ip_address)
            if failures >= s.brute_force_threshold:
                logger.warning(
                    "brute force suspected user=%s ip=%s failures=%d",
                    user_id, ip_address, failures,
                )
                event_ids.append(self.ledger.append(NewEvent(
                    event_type=EventType.BRUTE_FORCE_ATTEMPT,
                    risk_score=s.brute_force_risk,
                    ip_address=ip_address,
                    geo_location=geo_location,
                    user_id=user_id,
                    device_fingerprint_id=device_id,
                    description=(
                        f"{failures} failed logins within "
                        f"{s.failed_login_window_minutes} minutes"
                    ),
                    risk_factors=[f"{failures} failed logins"],
                    user_agent=user_agent,
                    metadata={"failures": failures},
                )))

        if device_id:
            self.registry.recompute_trust(device_id)
        return event_ids
