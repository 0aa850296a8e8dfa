"""
TrustGate Command Line Interface.

Commands: serve, config, score, demo
"""

from __future__ import annotations

import json

import click

from .access import ContinuousVerificationGate, GateRequest
from .access.auth_events import AuthEventRecorder
from .admin import AdminActions
from .analytics import SecurityAnalytics
from .config import load_settings
from .devices import DeviceTrustRegistry
from .identity import Identity, IdentityDirectory
from .ledger import GeoLocation, SecurityLedger
from .log import setup_logging
from .risk import RequestContext, RiskEngine


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config", "config_path", default=None, envvar="TRUSTGATE_CONFIG",
              help="YAML settings file")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str):
    """TrustGate: Zero Trust Continuous Verification and Risk Scoring"""
    setup_logging(log_level.upper())
    ctx.obj = load_settings(config_path)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind host")
@click.option("--port", default=5000, help="Bind port")
@click.pass_obj
def serve(settings, host: str, port: int):
    """Run the REST API."""
    from .api import create_app

    directory = IdentityDirectory([
        Identity("admin", "admin@example.com", "admin", "Administrator"),
    ])
    app = create_app(settings=settings, directory=directory)
    click.echo(f"[*] Starting TrustGate API on {host}:{port}")
    app.run(host=host, port=port)


@cli.command(name="config")
@click.pass_obj
def show_config(settings):
    """Print the effective settings as YAML."""
    click.echo(settings.to_yaml())


@cli.command()
@click.option("--trust", default=50, help="Device trust score (0-100)")
@click.option("--failed-logins", default=0, help="Failed logins in the lookback window")
@click.option("--velocity", default=0, help="Requests in the velocity window")
@click.option("--country", default=None, help="Request country code")
@click.option("--history", default="", help="Comma-separated countries of recent logins")
@click.option("--ip", "ip_address", default="127.0.0.1", help="Source IP address")
@click.option("--user-agent", default="", help="Client User-Agent header")
@click.option("--payload", default="", help="Request text to screen for injection patterns")
@click.pass_obj
def score(settings, trust: int, failed_logins: int, velocity: int, country: str | None,
          history: str, ip_address: str, user_agent: str, payload: str):
    """Score an ad-hoc request context."""
    engine = RiskEngine(settings)
    result = engine.score(RequestContext(
        ip_address=ip_address,
        trust_score=trust,
        failed_login_count=failed_logins,
        request_velocity=velocity,
        country=country,
        recent_login_countries=[c.strip() for c in history.split(",") if c.strip()],
        user_agent=user_agent,
        payload=payload,
    ))
    decision = "CHALLENGE" if result.risk_score >= settings.challenge_threshold else "ALLOW"

    click.echo(f"\n--- Risk Assessment ---")
    click.echo(f"Risk Score:  {result.risk_score}")
    click.echo(f"Severity:    {result.severity.value}")
    click.echo(f"Trust Level: {result.trust_level}")
    click.echo(f"Decision:    {decision}")
    click.echo(f"\nComponents:")
    for comp, value in result.components.items():
        bar = "#" * (value // 4)
        click.echo(f"  {comp:18s} {value:3d} |{bar}")
    if result.factors:
        click.echo(f"\nFactors:")
        for factor in result.factors:
            click.echo(f"  - {factor}")


@cli.command()
@click.pass_obj
def demo(settings):
    """Run a complete continuous verification scenario."""
    click.echo("=" * 60)
    click.echo("  TrustGate  -  Continuous Verification Demo")
    click.echo("=" * 60)

    settings.gate_timeout_seconds = None
    # Same outcome whatever the wall clock says.
    settings.off_hours_increment = 0
    settings.weekend_increment = 0
    ledger = SecurityLedger()
    registry = DeviceTrustRegistry(ledger, settings, clock=ledger.clock)
    directory = IdentityDirectory([
        Identity("alice", "alice@corp.io", "user", "Alice Chen"),
        Identity("mallory", "mallory@corp.io", "user", "Mallory"),
        Identity("sec-ops", "secops@corp.io", "security", "Security Operator"),
    ])
    gate = ContinuousVerificationGate(ledger, registry, settings=settings)
    recorder = AuthEventRecorder(ledger, registry, settings)
    admin = AdminActions(ledger, registry, directory, settings)
    analytics = SecurityAnalytics(ledger, registry, directory, settings)
    us = GeoLocation("US", "CA")

    # 1. Fresh device
    click.echo("\n[1/4] Fresh device, first request...")
    recorder.record_login(True, "203.0.113.10", "alice", us, "alice-laptop")
    r1 = gate.evaluate(GateRequest("alice-laptop", "203.0.113.10", "alice", "user", us))
    device = registry.get(r1.device_id)
    click.echo(f"    trust={device.trust_score} risk={r1.risk_score} decision={r1.decision.value}")

    # 2. Blocked device
    click.echo("\n[2/4] Operator blocks a stolen device...")
    operator = directory.get("sec-ops")
    admin.block_device(operator, r1.device_id, "stolen credentials")
    r2 = gate.evaluate(GateRequest("alice-laptop", "203.0.113.10", "alice", "user", us))
    click.echo(f"    decision={r2.decision.value} reason={r2.reason}")

    # 3. Failed logins
    click.echo("\n[3/4] Six failed logins, then a request...")
    for _ in range(6):
        recorder.record_login(False, "198.51.100.7", "mallory", fingerprint_hash="mallory-box")
    r3 = gate.evaluate(GateRequest("mallory-box", "198.51.100.7", "mallory", "user"))
    click.echo(f"    risk={r3.risk_score} decision={r3.decision.value}")
    for factor in r3.factors:
        click.echo(f"      - {factor}")

    # 4. Analytics
    click.echo("\n[4/4] Threat summary (last 24h)...")
    for row in analytics.threat_summary():
        click.echo(f"    {row['eventType']:26s} count={row['count']} "
                   f"avg={row['avgRiskScore']} ips={row['uniqueIPCount']} "
                   f"users={row['uniqueUserCount']}")
    metrics = analytics.dashboard()["metrics"]
    click.echo(f"\n    Dashboard: {json.dumps(metrics)}")

    click.echo("\n" + "=" * 60)
    click.echo("  Demo complete. Every request verified, every decision recorded.")
    click.echo("=" * 60)


def main():
    cli()


if __name__ == "__main__":
    main()
