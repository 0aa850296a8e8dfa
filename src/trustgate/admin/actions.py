"""
Operator actions on devices.

Verify and block are gated to operator roles and leave one ledger event
per call recording who did what.
"""

from __future__ import annotations

import logging

from ..config import Settings
from ..devices import DeviceTrustRegistry
from ..devices.models import DeviceFingerprint, VerificationMethod
from ..errors import TrustGateError, ValidationError
from ..identity import Identity, IdentityDirectory
from ..ledger import NewEvent, SecurityLedger
from ..ledger.models import EventType

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "Security concern"


class AdminActions:
    """Role-checked device state transitions."""

    def __init__(
        self,
        ledger: SecurityLedger,
        registry: DeviceTrustRegistry,
        directory: IdentityDirectory,
        settings: Settings | None = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.directory = directory
        self.settings = settings or Settings()

    def authorize(self, operator: Identity) -> None:
        self.directory.require_role(operator, self.settings.operator_roles)

    def verify_device(
        self,
        operator: Identity,
        device_id: str,
        method: VerificationMethod | str = VerificationMethod.ADMIN_APPROVAL,
        ip_address: str = "",
    ) -> DeviceFingerprint:
        self.authorize(operator)
        try:
            device = self.registry.verify(device_id, method)
        except TrustGateError:
            logger.warning(
                "verify failed device=%s operator=%s", device_id, operator.user_id, exc_info=True
            )
            raise
        self._audit(operator, NewEvent(
            event_type=EventType.DEVICE_VERIFIED,
            risk_score=0,
            ip_address=ip_address,
            user_id=operator.user_id,
            device_fingerprint_id=device.id,
            description=f"Device verified via {device.verification_method.value}",
            metadata={"operatorId": operator.user_id, "method": device.verification_method.value},
        ))
        return device

    def block_device(
        self,
        operator: Identity,
        device_id: str,
        reason: str | None = None,
        ip_address: str = "",
    ) -> DeviceFingerprint:
        self.authorize(operator)
        reason = (reason or DEFAULT_BLOCK_REASON).strip()
        if not reason:
            raise ValidationError("block reason must not be empty")
        try:
            device = self.registry.block(device_id, reason, operator.user_id)
        except TrustGateError:
            logger.warning(
                "block failed device=%s operator=%s", device_id, operator.user_id, exc_info=True
            )
            raise
        self._audit(operator, NewEvent(
            event_type=EventType.DEVICE_BLOCKED,
            risk_score=0,
            ip_address=ip_address,
            user_id=operator.user_id,
            device_fingerprint_id=device.id,
            description=f"Device blocked: {reason}",
            metadata={"operatorId": operator.user_id, "reason": reason, "action": "block"},
        ))
        return device

    def _audit(self, operator: Identity, event: NewEvent) -> str:
        """Record an applied action; the registry change is already in effect when this fails."""
        try:
            return self.ledger.append(event)
        except Exception:
            logger.error(
                "%s applied but not recorded: operator=%s device=%s",
                event.event_type.value, operator.user_id, event.device_fingerprint_id, exc_info=True,
            )
            raise
