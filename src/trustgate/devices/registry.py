"""
Device trust registry.

Owns every DeviceFingerprint record. Records are never deleted; state
changes go through get_or_create, verify, block and recompute_trust.
Each device has its own lock, so an operator block and a concurrent
trust recompute on the same device serialize and the block always wins.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass

from ..clock import Clock, utcnow
from ..config import Settings
from ..errors import NotFoundError, ValidationError
from ..ledger import SecurityLedger
from ..ledger.models import NON_TRUST_SIGNAL_TYPES, Page, PageRequest
from .models import AssociatedUser, DeviceFingerprint, VerificationMethod
from .trust import compute_trust, history_penalty

logger = logging.getLogger(__name__)

MAX_IP_ADDRESSES = 10

SORT_KEYS = {
    "lastSeen": lambda d: d.last_seen,
    "firstSeen": lambda d: d.first_seen,
    "riskScore": lambda d: d.risk_score,
    "trustScore": lambda d: d.trust_score,
    "accessCount": lambda d: d.access_count,
}


@dataclass
class DeviceFilter:
    risk_threshold: int | None = None
    is_verified: bool | None = None
    is_blocked: bool | None = None

    def __post_init__(self):
        if self.risk_threshold is not None and not 0 <= self.risk_threshold <= 100:
            raise ValidationError(f"riskThreshold {self.risk_threshold} outside [0, 100]")

    def matches(self, device: DeviceFingerprint) -> bool:
        if self.risk_threshold is not None and device.risk_score < self.risk_threshold:
            return False
        if self.is_verified is not None and device.is_verified != self.is_verified:
            return False
        if self.is_blocked is not None and device.is_blocked != self.is_blocked:
            return False
        return True


class DeviceTrustRegistry:
    """Registry of observed devices and their trust state."""

    def __init__(
        self,
        ledger: SecurityLedger,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        self.ledger = ledger
        self.settings = settings or Settings()
        self.clock = clock or utcnow
        self._devices: dict[str, DeviceFingerprint] = {}
        self._by_hash: dict[str, str] = {}
        self._device_locks: dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    # --- Lookup ---

    def _require(self, device_id: str) -> tuple[DeviceFingerprint, threading.RLock]:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise NotFoundError(f"Device fingerprint {device_id} not found", device_id=device_id)
            return device, self._device_locks[device_id]

    def get(self, device_id: str) -> DeviceFingerprint | None:
        with self._lock:
            device = self._devices.get(device_id)
            lock = self._device_locks.get(device_id)
        if device is None:
            return None
        with lock:
            return device.snapshot()

    def find_by_hash(self, fingerprint_hash: str) -> DeviceFingerprint | None:
        with self._lock:
            device_id = self._by_hash.get(fingerprint_hash)
        return self.get(device_id) if device_id else None

    def all(self) -> list[DeviceFingerprint]:
        with self._lock:
            ids = list(self._devices)
        return [d for d in (self.get(i) for i in ids) if d is not None]

    def devices_for_user(self, user_id: str) -> list[DeviceFingerprint]:
        return [d for d in self.all() if user_id in d.associated_users]

    # --- Observation ---

    def get_or_create(
        self,
        fingerprint_hash: str,
        user_id: str | None = None,
        role: str = "",
        ip_address: str | None = None,
    ) -> tuple[DeviceFingerprint, bool]:
        """Return ``(device, created)``; refreshes ``last_seen`` on known devices."""
        if not fingerprint_hash:
            raise ValidationError("fingerprint hash required")
        now = self.clock()
        created = False
        with self._lock:
            device_id = self._by_hash.get(fingerprint_hash)
            if device_id is None:
                device_id = uuid.uuid4().hex
                self._devices[device_id] = DeviceFingerprint(
                    id=device_id,
                    fingerprint_hash=fingerprint_hash,
                    first_seen=now,
                    last_seen=now,
                    trust_score=self.settings.trust_base_unverified,
                    access_count=0,
                )
                self._by_hash[fingerprint_hash] = device_id
                self._device_locks[device_id] = threading.RLock()
                created = True
            device = self._devices[device_id]
            lock = self._device_locks[device_id]

        with lock:
            device.last_seen = max(device.last_seen, now)
            device.access_count += 1
            if ip_address and ip_address not in device.ip_addresses:
                device.ip_addresses.append(ip_address)
                del device.ip_addresses[:-MAX_IP_ADDRESSES]
            if user_id:
                self._associate(device, user_id, role, now)
            if created:
                logger.info("new device %s observed", device_id)
            return device.snapshot(), created

    def _associate(self, device: DeviceFingerprint, user_id: str, role: str, now) -> None:
        entry = device.associated_users.get(user_id)
        if entry is None:
            device.associated_users[user_id] = AssociatedUser(
                user_id=user_id, role=role,
                first_association=now, last_association=now,
            )
            return
        entry.last_association = now
        entry.access_count += 1
        if role:
            entry.role = role

    def record_assessment(self, device_id: str, risk_score: int) -> None:
        device, lock = self._require(device_id)
        with lock:
            device.risk_score = risk_score
            device.last_risk_assessment = self.clock()

    # --- State transitions ---

    def verify(self, device_id: str, method: VerificationMethod | str) -> DeviceFingerprint:
        method = VerificationMethod.parse(method)
        device, lock = self._require(device_id)
        with lock:
            device.is_verified = True
            device.verification_method = method
            device.verified_at = self.clock()
            self._recompute_locked(device)
            logger.info("device %s verified via %s", device_id, method.value)
            return device.snapshot()

    def block(self, device_id: str, reason: str, operator_id: str) -> DeviceFingerprint:
        device, lock = self._require(device_id)
        with lock:
            device.is_blocked = True
            device.blocked_reason = reason
            device.blocked_at = self.clock()
            device.blocked_by = operator_id
            device.trust_score = 0
            logger.warning("device %s blocked by %s: %s", device_id, operator_id, reason)
            return device.snapshot()

    def recompute_trust(self, device_id: str) -> int:
        device, lock = self._require(device_id)
        with lock:
            return self._recompute_locked(device)

    def _recompute_locked(self, device: DeviceFingerprint) -> int:
        # Fresh ledger read under the device lock. A held penalty lapses once its
        # anchor event is no longer among the last N signal events.
        history = self.ledger.select(
            lambda e: e.device_fingerprint_id == device.id
            and e.event_type not in NON_TRUST_SIGNAL_TYPES
        )[: self.settings.trust_history_size]
        scores = [e.risk_score for e in history]
        penalty = history_penalty(scores, self.settings)
        if penalty >= device.penalty_floor or device.penalty_anchor not in {e.id for e in history}:
            device.penalty_floor = penalty
            device.penalty_anchor = history[0].id if history else None
        device.trust_score = compute_trust(
            is_verified=device.is_verified,
            is_blocked=device.is_blocked,
            recent_risk_scores=scores,
            user_count=device.user_count,
            settings=self.settings,
            penalty_floor=device.penalty_floor,
        )
        return device.trust_score

    # --- Listing ---

    def query(
        self,
        filter: DeviceFilter | None = None,
        page: PageRequest | None = None,
        sort_by: str = "lastSeen",
    ) -> Page:
        if sort_by not in SORT_KEYS:
            raise ValidationError(
                f"sortBy must be one of {', '.join(sorted(SORT_KEYS))}, got {sort_by!r}"
            )
        filter = filter or DeviceFilter()
        page = page or PageRequest()
        matched = [d for d in self.all() if filter.matches(d)]
        matched.sort(key=SORT_KEYS[sort_by], reverse=True)
        return Page(
            items=matched[page.offset:page.offset + page.limit],
            page=page.page,
            limit=page.limit,
            total=len(matched),
        )

