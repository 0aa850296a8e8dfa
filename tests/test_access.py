"""Tests for the continuous verification gate and auth event recorder."""

import logging
import threading
import time

import pytest

from trustgate.access import ContinuousVerificationGate, Decision, GateRequest, derive_fingerprint
from trustgate.config import Settings
from trustgate.devices import DeviceTrustRegistry
from trustgate.errors import StoreUnavailableError, ValidationError
from trustgate.ledger import EventType, GeoLocation, SecurityDecision, SecurityLedger
from trustgate.risk import RiskEngine

US = GeoLocation("US", "CA", "Oakland")


def _request(fingerprint="alice-laptop", user="alice", ip="203.0.113.10", geo=US):
    return GateRequest(fingerprint, ip, user, "user", geo, request_path="/api/v1/zero-trust/x",
                       request_method="GET")


class UnavailableRegistry(DeviceTrustRegistry):
    def get_or_create(self, *args, **kwargs):
        raise StoreUnavailableError("registry offline")


class UnavailableLedger(SecurityLedger):
    def append(self, event):
        raise StoreUnavailableError("ledger offline")


class SlowRegistry(DeviceTrustRegistry):
    def get_or_create(self, *args, **kwargs):
        time.sleep(0.3)
        return super().get_or_create(*args, **kwargs)


class TestGateScenarios:
    def test_fresh_device_allowed(self, gate, recorder, ledger, registry):
        recorder.record_login(True, "203.0.113.10", "alice", US, "alice-laptop")
        before = len(ledger)
        result = gate.evaluate(_request())
        assert result.decision == Decision.ALLOW
        assert result.risk_score == 50
        assert registry.get(result.device_id).trust_score == 50
        assert len(ledger) == before + 1
        event = ledger.get(result.event_id)
        assert event.event_type == EventType.ZERO_TRUST_VERIFICATION
        assert event.security_decision == SecurityDecision.ALLOW

    def test_unknown_device_created(self, gate, registry):
        result = gate.evaluate(_request(fingerprint="brand-new"))
        assert result.decision == Decision.ALLOW
        assert registry.find_by_hash("brand-new") is not None

    def test_blocked_device_rejected(self, gate, registry, ledger):
        first = gate.evaluate(_request())
        registry.block(first.device_id, "stolen credentials", "sec-ops")
        before = len(ledger)
        result = gate.evaluate(_request())
        assert result.decision == Decision.REJECT
        assert result.risk_score == 100
        assert "stolen credentials" in result.reason
        assert len(ledger) == before + 1
        event = ledger.get(result.event_id)
        assert event.event_type == EventType.DEVICE_BLOCKED
        assert event.security_decision == SecurityDecision.REJECT
        assert event.metadata["blockedBy"] == "sec-ops"

    def test_failed_logins_challenge(self, gate, recorder, ledger):
        for _ in range(6):
            recorder.record_login(False, "198.51.100.7", "mallory", fingerprint_hash="mallory-box")
        result = gate.evaluate(_request("mallory-box", "mallory", "198.51.100.7", None))
        assert result.decision == Decision.CHALLENGE
        assert result.risk_score >= 70
        assert any("failed logins" in f for f in result.factors)
        event = ledger.get(result.event_id)
        assert event.event_type == EventType.SUSPICIOUS_ACTIVITY
        assert event.security_decision == SecurityDecision.CHALLENGE

    def test_failed_logins_without_device_history(self, gate, recorder):
        for _ in range(6):
            recorder.record_login(False, "198.51.100.7", "mallory")
        result = gate.evaluate(_request("mallory-box", "mallory", "198.51.100.7", None))
        assert result.decision == Decision.CHALLENGE
        assert result.risk_score == 80

    def test_geo_anomaly_challenge(self, gate, recorder):
        recorder.record_login(True, "203.0.113.10", "alice", US, "alice-laptop")
        result = gate.evaluate(_request(geo=GeoLocation("BR")))
        assert result.decision == Decision.CHALLENGE
        assert result.risk_score == 70

    def test_old_failures_expire(self, gate, recorder, clock):
        for _ in range(6):
            recorder.record_login(False, "198.51.100.7", "mallory")
        clock.advance(minutes=16)
        result = gate.evaluate(_request("mallory-box", "mallory", "198.51.100.7", None))
        assert result.decision == Decision.ALLOW

    def test_block_during_scoring(self, ledger, registry, settings):
        class BlockingEngine(RiskEngine):
            def score(self, ctx):
                registry.block(ctx.device_fingerprint_id, "raced", "sec-ops")
                return super().score(ctx)

        gate = ContinuousVerificationGate(ledger, registry, engine=BlockingEngine(settings),
                                          settings=settings)
        before = len(ledger)
        result = gate.evaluate(_request())
        assert result.decision == Decision.REJECT
        assert len(ledger) == before + 1

    def test_one_event_per_request(self, gate, ledger):
        for _ in range(5):
            gate.evaluate(_request())
        assert len(ledger) == 5

    def test_invalid_request_propagates(self, gate):
        with pytest.raises(ValidationError):
            gate.evaluate(_request(fingerprint=""))

    def test_result_to_dict(self, gate):
        data = gate.evaluate(_request()).to_dict()
        assert data["decision"] == "allow"
        assert data["severity"] == "high"
        assert data["failPolicy"] is False


class TestFailPolicy:
    def test_fail_closed(self, ledger, settings):
        gate = ContinuousVerificationGate(ledger, UnavailableRegistry(ledger, settings),
                                          settings=settings)
        result = gate.evaluate(_request())
        assert result.decision == Decision.REJECT
        assert result.fail_policy
        assert result.reason == "verification_unavailable"
        assert ledger.get(result.event_id).event_type == EventType.SYSTEM_ERROR

    def test_fail_open(self, ledger):
        settings = Settings(gate_timeout_seconds=None, fail_mode="open")
        gate = ContinuousVerificationGate(ledger, UnavailableRegistry(ledger, settings),
                                          settings=settings)
        result = gate.evaluate(_request())
        assert result.decision == Decision.ALLOW
        assert result.fail_policy
        assert result.risk_score == 0

    def test_ledger_down(self, settings, clock):
        ledger = UnavailableLedger(clock=clock)
        registry = DeviceTrustRegistry(ledger, settings, clock=clock)
        gate = ContinuousVerificationGate(ledger, registry, settings=settings)
        result = gate.evaluate(_request())
        assert result.decision == Decision.REJECT
        assert result.fail_policy
        assert result.event_id is None

    def test_timeout(self, ledger):
        settings = Settings(gate_timeout_seconds=0.05)
        registry = SlowRegistry(ledger, settings, clock=ledger.clock)
        gate = ContinuousVerificationGate(ledger, registry, settings=settings)
        result = gate.evaluate(_request())
        assert result.decision == Decision.REJECT
        assert result.fail_policy
        event = ledger.get(result.event_id)
        assert event.event_type == EventType.SYSTEM_ERROR
        assert event.security_decision == SecurityDecision.REJECT
        assert event.metadata["timedOut"] is True
        gate.close()
        # The late worker is superseded and does not record a second outcome.
        assert len(ledger) == 1
        assert ledger.count([EventType.ZERO_TRUST_VERIFICATION]) == 0

    def test_timeout_with_hung_worker(self, ledger):
        release = threading.Event()

        class HungRegistry(DeviceTrustRegistry):
            def get_or_create(self, *args, **kwargs):
                release.wait(5)
                return super().get_or_create(*args, **kwargs)

        settings = Settings(gate_timeout_seconds=0.05, fail_mode="open")
        gate = ContinuousVerificationGate(ledger, HungRegistry(ledger, settings, clock=ledger.clock),
                                          settings=settings)
        try:
            result = gate.evaluate(_request())
            assert result.decision == Decision.ALLOW
            assert result.fail_policy
            # Recorded before the worker gets anywhere.
            assert len(ledger) == 1
            event = ledger.select()[0]
            assert event.event_type == EventType.SYSTEM_ERROR
            assert event.security_decision == SecurityDecision.ALLOW
        finally:
            release.set()
            gate.close()
        assert len(ledger) == 1

    @pytest.mark.parametrize("fail_mode, decision, risk", [
        ("closed", Decision.REJECT, 100),
        ("open", Decision.ALLOW, 0),
    ])
    @pytest.mark.parametrize("timeout", [None, 5.0])
    def test_unexpected_backend_error(self, ledger, fail_mode, decision, risk, timeout):
        class FlakyRegistry(DeviceTrustRegistry):
            def get_or_create(self, *args, **kwargs):
                raise ConnectionError("connection reset by peer")

        settings = Settings(gate_timeout_seconds=timeout, fail_mode=fail_mode)
        gate = ContinuousVerificationGate(ledger, FlakyRegistry(ledger, settings), settings=settings)
        try:
            result = gate.evaluate(_request())
        finally:
            gate.close()
        assert result.decision == decision
        assert result.risk_score == risk
        assert result.fail_policy
        event = ledger.get(result.event_id)
        assert event.event_type == EventType.SYSTEM_ERROR
        assert event.security_decision == decision.ledger_value
        assert "ConnectionError" in event.description

    def test_trust_refresh_failure_keeps_challenge(self, ledger, settings, caplog):
        class RefreshFailsRegistry(DeviceTrustRegistry):
            def recompute_trust(self, device_id):
                raise StoreUnavailableError("registry offline")

        gate = ContinuousVerificationGate(ledger, RefreshFailsRegistry(ledger, settings, clock=ledger.clock),
                                          settings=settings)
        with caplog.at_level(logging.ERROR, logger="trustgate.access.verification"):
            result = gate.evaluate(_request(geo=GeoLocation("CN")))
        assert result.decision == Decision.CHALLENGE
        assert not result.fail_policy
        assert len(ledger) == 1
        assert ledger.get(result.event_id).event_type == EventType.SUSPICIOUS_ACTIVITY
        assert ledger.count([EventType.SYSTEM_ERROR]) == 0
        assert "decision stands" in caplog.text

    def test_within_timeout(self, ledger):
        settings = Settings(gate_timeout_seconds=5.0)
        registry = DeviceTrustRegistry(ledger, settings, clock=ledger.clock)
        gate = ContinuousVerificationGate(ledger, registry, settings=settings)
        try:
            assert gate.evaluate(_request()).decision == Decision.ALLOW
        finally:
            gate.close()


class TestAuthEvents:
    def test_success(self, recorder, ledger, registry):
        ids = recorder.record_login(True, "10.0.0.1", "alice", US, "alice-laptop", role="user")
        assert len(ids) == 1
        assert ledger.get(ids[0]).event_type == EventType.LOGIN_SUCCESS
        device = registry.find_by_hash("alice-laptop")
        assert "alice" in device.associated_users

    def test_failure_not_associated(self, recorder, registry):
        recorder.record_login(False, "10.0.0.1", "alice", fingerprint_hash="shared-box")
        assert registry.find_by_hash("shared-box").associated_users == {}

    def test_brute_force(self, recorder, ledger):
        for _ in range(4):
            assert len(recorder.record_login(False, "10.0.0.9", "bob")) == 1
        ids = recorder.record_login(False, "10.0.0.9", "bob")
        assert len(ids) == 2
        brute = ledger.get(ids[1])
        assert brute.event_type == EventType.BRUTE_FORCE_ATTEMPT
        assert brute.risk_score == 90

    def test_brute_force_by_ip(self, recorder, ledger):
        for _ in range(5):
            recorder.record_login(False, "10.0.0.9")
        assert ledger.count([EventType.BRUTE_FORCE_ATTEMPT], ip_address="10.0.0.9") == 1

    def test_failures_lower_trust(self, recorder, registry):
        recorder.record_login(False, "10.0.0.9", "bob", fingerprint_hash="bob-box")
        first = registry.find_by_hash("bob-box").trust_score
        for _ in range(5):
            recorder.record_login(False, "10.0.0.9", "bob", fingerprint_hash="bob-box")
        assert registry.find_by_hash("bob-box").trust_score < first


class TestFingerprint:
    def test_stable(self):
        a = derive_fingerprint("Mozilla/5.0", "en-US", "gzip")
        b = derive_fingerprint("Mozilla/5.0", "en-US", "gzip")
        assert a == b
        assert len(a) == 64

    def test_differs(self):
        assert derive_fingerprint("Mozilla/5.0") != derive_fingerprint("curl/8.0")
