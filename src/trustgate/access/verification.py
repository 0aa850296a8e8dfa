"""
Continuous verification gate.

Runs on every protected request, not once per session: resolve the
device, reject blocked devices outright, otherwise score the request and
allow or challenge. Each evaluation appends exactly one ledger event
before the result is returned.

If any collaborator fails, or evaluation exceeds the configured timeout,
the gate applies the configured fail mode (closed by default: reject)
and records it as a SYSTEM_ERROR event carrying the applied decision.
A worker that finishes after its caller has given up is superseded and
writes nothing.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import timedelta

from ..config import FAIL_CLOSED, Settings
from ..devices import DeviceTrustRegistry
from ..devices.models import DeviceFingerprint
from ..errors import ValidationError
from ..ledger import NewEvent, SecurityLedger
from ..ledger.models import EventType
from ..risk import RequestContext, RiskAssessment, RiskEngine, VelocityTracker
from ..risk.levels import RISK_MAX
from .context import GateRequest
from .engine import DECISION_EVENT_TYPES, Decision, GateResult, decide

logger = logging.getLogger(__name__)


@dataclass
class _Attempt:
    """Ledger ownership for one evaluation; whoever commits first wins."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    superseded: bool = False
    result: GateResult | None = None


class ContinuousVerificationGate:
    """
    Per-request zero trust gate.

    Constructed once at startup with its collaborators and handed to the
    request pipeline; holds no per-request state besides the velocity
    window.
    """

    def __init__(
        self,
        ledger: SecurityLedger,
        registry: DeviceTrustRegistry,
        engine: RiskEngine | None = None,
        settings: Settings | None = None,
        velocity: VelocityTracker | None = None,
        max_workers: int = 8,
    ):
        self.ledger = ledger
        self.registry = registry
        self.settings = settings or Settings()
        self.engine = engine or RiskEngine(self.settings)
        self.velocity = velocity or VelocityTracker(self.settings.velocity_window_seconds)
        self._executor: ThreadPoolExecutor | None = None
        if self.settings.gate_timeout_seconds is not None:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="trustgate-gate"
            )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    # --- Entry point ---

    def evaluate(self, request: GateRequest) -> GateResult:
        attempt = _Attempt()
        if self._executor is None:
            try:
                return self._evaluate(request, attempt)
            except ValidationError:
                raise
            except Exception as exc:
                return self._fail(request, attempt, exc)

        future = self._executor.submit(self._evaluate, request, attempt)
        try:
            return future.result(timeout=self.settings.gate_timeout_seconds)
        except ValidationError:
            raise
        except FuturesTimeout as exc:
            return self._fail(request, attempt, exc, timed_out=True)
        except Exception as exc:
            return self._fail(request, attempt, exc)

    # --- State machine ---

    def _evaluate(self, request: GateRequest, attempt: _Attempt) -> GateResult | None:
        device, created = self.registry.get_or_create(
            request.fingerprint_hash,
            user_id=request.user_id,
            role=request.role,
            ip_address=request.ip_address,
        )

        if device.is_blocked:
            return self._reject_blocked(request, attempt, device)

        ctx = self.build_context(request, device)
        assessment = self.engine.score(ctx)
        self.registry.record_assessment(device.id, assessment.risk_score)

        # An operator block may have landed while we were scoring.
        current = self.registry.get(device.id)
        if current is not None and current.is_blocked:
            return self._reject_blocked(request, attempt, current)

        decision, reason = decide(assessment.risk_score, self.settings.challenge_threshold)
        result = self._commit(
            attempt,
            self._decision_event(request, device.id, decision, assessment, reason, created),
            GateResult(
                decision=decision,
                risk_score=assessment.risk_score,
                reason=reason,
                device_id=device.id,
                factors=assessment.factors,
            ),
        )
        if result is None:
            return None

        if decision == Decision.CHALLENGE:
            logger.warning(
                "challenge user=%s device=%s risk=%d factors=%s",
                request.user_id, device.id, assessment.risk_score, assessment.factors,
            )
            try:
                self.registry.recompute_trust(device.id)
            except Exception:
                logger.error(
                    "trust refresh failed after challenge device=%s event=%s; decision stands",
                    device.id, result.event_id, exc_info=True,
                )
        else:
            logger.debug(
                "allow user=%s device=%s risk=%d",
                request.user_id, device.id, assessment.risk_score,
            )
        return result

    def build_context(self, request: GateRequest, device: DeviceFingerprint) -> RequestContext:
        s = self.settings
        now = self.ledger.clock()
        since = now - timedelta(minutes=s.failed_login_window_minutes)
        if request.user_id:
            failed = self.ledger.count([EventType.LOGIN_FAILED], since=since, user_id=request.user_id)
            countries = self.ledger.recent_login_countries(request.user_id, s.geo_history_size)
        else:
            failed = self.ledger.count([EventType.LOGIN_FAILED], since=since,
                                       ip_address=request.ip_address)
            countries = []
        velocity = self.velocity.hit(VelocityTracker.key_for(request.user_id, request.ip_address))
        return RequestContext(
            ip_address=request.ip_address,
            user_id=request.user_id,
            device_fingerprint_id=device.id,
            trust_score=device.trust_score,
            country=request.country,
            failed_login_count=failed,
            request_velocity=velocity,
            recent_login_countries=countries,
            requested_at=now,
            user_agent=request.user_agent,
            accept_language=request.accept_language,
            accept_encoding=request.accept_encoding,
            payload=request.payload,
        )

    def _reject_blocked(
        self, request: GateRequest, attempt: _Attempt, device: DeviceFingerprint
    ) -> GateResult | None:
        reason = f"Device is blocked: {device.blocked_reason or 'no reason recorded'}"
        result = self._commit(
            attempt,
            NewEvent(
                event_type=DECISION_EVENT_TYPES[Decision.REJECT],
                risk_score=RISK_MAX,
                ip_address=request.ip_address,
                geo_location=request.geo_location,
                user_id=request.user_id,
                device_fingerprint_id=device.id,
                description=reason,
                security_decision=Decision.REJECT.ledger_value,
                risk_factors=["Blocked device"],
                user_agent=request.user_agent,
                request_path=request.request_path,
                request_method=request.request_method,
                metadata={"blockedBy": device.blocked_by},
            ),
            GateResult(
                decision=Decision.REJECT,
                risk_score=RISK_MAX,
                reason=reason,
                device_id=device.id,
                factors=["Blocked device"],
            ),
        )
        if result is not None:
            logger.warning(
                "reject blocked device=%s user=%s ip=%s",
                device.id, request.user_id, request.ip_address,
            )
        return result

    def _decision_event(
        self,
        request: GateRequest,
        device_id: str,
        decision: Decision,
        assessment: RiskAssessment,
        reason: str,
        new_device: bool,
    ) -> NewEvent:
        return NewEvent(
            event_type=DECISION_EVENT_TYPES[decision],
            risk_score=assessment.risk_score,
            ip_address=request.ip_address,
            geo_location=request.geo_location,
            user_id=request.user_id,
            device_fingerprint_id=device_id,
            description=reason,
            security_decision=decision.ledger_value,
            risk_factors=assessment.factors,
            user_agent=request.user_agent,
            request_path=request.request_path,
            request_method=request.request_method,
            metadata={
                "components": assessment.components,
                "trustLevel": assessment.trust_level,
                "newDevice": new_device,
            },
        )

    def _commit(self, attempt: _Attempt, event: NewEvent, result: GateResult) -> GateResult | None:
        """Append the decision event unless the caller already gave up on this evaluation."""
        with attempt.lock:
            if attempt.superseded:
                logger.warning(
                    "discarding late %s for user=%s device=%s; fail policy already applied",
                    result.decision.ledger_value, event.user_id, result.device_id,
                )
                return None
            result.event_id = self.ledger.append(event)
            attempt.result = result
            return result

    # --- Failure policy ---

    def _fail(
        self,
        request: GateRequest,
        attempt: _Attempt,
        exc: BaseException,
        timed_out: bool = False,
    ) -> GateResult:
        with attempt.lock:
            if attempt.result is not None:
                # Decision already recorded; a later step failed.
                return attempt.result
            attempt.superseded = True

        fail_closed = self.settings.fail_mode == FAIL_CLOSED
        decision = Decision.REJECT if fail_closed else Decision.ALLOW
        risk = RISK_MAX if fail_closed else 0
        cause = "timed out" if timed_out else f"failed ({type(exc).__name__})"
        logger.error(
            "verification %s for user=%s fingerprint=%s ip=%s; failing %s",
            cause, request.user_id, request.fingerprint_hash, request.ip_address,
            self.settings.fail_mode, exc_info=exc,
        )
        event_id = None
        try:
            event_id = self.ledger.append(NewEvent(
                event_type=EventType.SYSTEM_ERROR,
                risk_score=risk,
                ip_address=request.ip_address,
                geo_location=request.geo_location,
                user_id=request.user_id,
                description=f"Verification {cause}: {exc}" if str(exc) else f"Verification {cause}",
                security_decision=decision.ledger_value,
                user_agent=request.user_agent,
                request_path=request.request_path,
                request_method=request.request_method,
                metadata={"failMode": self.settings.fail_mode, "timedOut": timed_out},
            ))
        except Exception:
            logger.error(
                "fail-policy outcome %s for user=%s ip=%s not recorded",
                decision.ledger_value, request.user_id, request.ip_address, exc_info=True,
            )
        return GateResult(
            decision=decision,
            risk_score=risk,
            reason="verification_unavailable",
            event_id=event_id,
            fail_policy=True,
        )
