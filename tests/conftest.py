"""Shared test fixtures for TrustGate."""

from datetime import datetime, timedelta, timezone

import pytest

from trustgate.access import ContinuousVerificationGate
from trustgate.access.auth_events import AuthEventRecorder
from trustgate.admin import AdminActions
from trustgate.analytics import SecurityAnalytics
from trustgate.api import create_app
from trustgate.config import Settings
from trustgate.devices import DeviceTrustRegistry
from trustgate.identity import Identity, IdentityDirectory
from trustgate.ledger import SecurityLedger
from trustgate.risk import RiskEngine


class FakeClock:
    """Settable clock; call to read, ``advance`` to move forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(gate_timeout_seconds=None)


@pytest.fixture
def ledger(clock):
    return SecurityLedger(clock=clock)


@pytest.fixture
def registry(ledger, settings):
    return DeviceTrustRegistry(ledger, settings, clock=ledger.clock)


@pytest.fixture
def directory():
    return IdentityDirectory([
        Identity("alice", "alice@corp.io", "user", "Alice Chen"),
        Identity("bob", "bob@corp.io", "user", "Bob Ruiz"),
        Identity("sec-ops", "secops@corp.io", "security", "Security Operator"),
        Identity("admin", "admin@corp.io", "admin", "Administrator"),
    ])


@pytest.fixture
def engine(settings):
    return RiskEngine(settings)


@pytest.fixture
def gate(ledger, registry, settings):
    g = ContinuousVerificationGate(ledger, registry, settings=settings)
    yield g
    g.close()


@pytest.fixture
def recorder(ledger, registry, settings):
    return AuthEventRecorder(ledger, registry, settings)


@pytest.fixture
def admin(ledger, registry, directory, settings):
    return AdminActions(ledger, registry, directory, settings)


@pytest.fixture
def analytics(ledger, registry, directory, settings):
    return SecurityAnalytics(ledger, registry, directory, settings)


@pytest.fixture
def operator(directory):
    return directory.get("sec-ops")


@pytest.fixture
def app(settings, ledger, registry, directory, gate):
    app = create_app(
        settings=settings, ledger=ledger, registry=registry,
        directory=directory, gate=gate,
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
