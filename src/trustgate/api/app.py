"""
Flask REST API for TrustGate.

Operator endpoints for the security dashboard, event and device
listings, device verify/block, and risk analytics. Every ``/api/``
request first passes the continuous verification gate; the operator
endpoints additionally require an operator role.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import unquote_plus

from flask import Flask, g, jsonify, request

from ..access import ContinuousVerificationGate, Decision, GateRequest, derive_fingerprint
from ..access.auth_events import AuthEventRecorder
from ..admin import AdminActions
from ..analytics import SecurityAnalytics
from ..config import Settings
from ..devices import DeviceFilter, DeviceTrustRegistry
from ..errors import TrustGateError, ValidationError
from ..identity import IdentityDirectory
from ..ledger import EventFilter, GeoLocation, PageRequest, SecurityLedger

logger = logging.getLogger(__name__)

PREFIX = "/api/v1/zero-trust"

USER_HEADER = "X-User-Id"
FINGERPRINT_HEADER = "X-Device-Fingerprint"


# --- Query parsing ---

def _int_arg(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


def _bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false, got {raw!r}")


def _date_arg(name: str) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 date, got {raw!r}") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _page_arg(settings: Settings) -> PageRequest:
    return PageRequest(
        page=_int_arg("page", 1),
        limit=_int_arg("limit", settings.default_page_size),
    )


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.remote_addr or "")
    if ip.startswith("::ffff:"):
        ip = ip[len("::ffff:"):]
    if not ip or ip == "::1":
        ip = "127.0.0.1"
    return ip


def _geo_from_headers() -> GeoLocation | None:
    return GeoLocation.from_dict({
        "country": request.headers.get("X-Geo-Country"),
        "region": request.headers.get("X-Geo-Region"),
        "city": request.headers.get("X-Geo-City"),
    })


def _fingerprint() -> str:
    return request.headers.get(FINGERPRINT_HEADER) or derive_fingerprint(
        request.headers.get("User-Agent", ""),
        request.headers.get("Accept-Language", ""),
        request.headers.get("Accept-Encoding", ""),
    )


def _request_text(limit: int) -> str:
    """Decoded query string plus the leading part of the body, for payload screening."""
    body = request.get_data(cache=True, as_text=True)[:limit]
    return f"{unquote_plus(request.full_path)} {body}"


def _page_body(key: str, page) -> dict[str, Any]:
    return {key: page.items, "pagination": page.pagination()}


def create_app(
    settings: Settings | None = None,
    ledger: SecurityLedger | None = None,
    registry: DeviceTrustRegistry | None = None,
    directory: IdentityDirectory | None = None,
    gate: ContinuousVerificationGate | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)

    cfg = settings or Settings()
    events = ledger or SecurityLedger()
    devices = registry or DeviceTrustRegistry(events, cfg, clock=events.clock)
    identities = directory or IdentityDirectory()
    verifier = gate or ContinuousVerificationGate(events, devices, settings=cfg)
    analytics = SecurityAnalytics(events, devices, identities, cfg)
    admin = AdminActions(events, devices, identities, cfg)
    auth_events = AuthEventRecorder(events, devices, cfg)

    app.extensions["trustgate"] = {
        "settings": cfg,
        "ledger": events,
        "registry": devices,
        "directory": identities,
        "gate": verifier,
        "analytics": analytics,
        "admin": admin,
        "auth_events": auth_events,
    }

    @app.errorhandler(TrustGateError)
    def handle_error(exc: TrustGateError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        else:
            logger.info("%s %s rejected: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.before_request
    def continuous_verification():
        if not request.path.startswith("/api/"):
            return None
        caller = identities.authenticate(request.headers.get(USER_HEADER))
        g.identity = caller
        result = verifier.evaluate(GateRequest(
            fingerprint_hash=_fingerprint(),
            ip_address=_client_ip(),
            user_id=caller.user_id,
            role=caller.role,
            geo_location=_geo_from_headers(),
            user_agent=request.headers.get("User-Agent", ""),
            request_path=request.path,
            request_method=request.method,
            accept_language=request.headers.get("Accept-Language", ""),
            accept_encoding=request.headers.get("Accept-Encoding", ""),
            payload=_request_text(cfg.max_payload_scan_chars),
        ))
        g.gate_result = result
        if result.decision == Decision.CHALLENGE:
            body = {"message": "Additional authentication required", "challengeType": "MFA"}
            body.update(result.to_dict())
            return jsonify(body), 202
        if result.decision == Decision.REJECT:
            body = {"message": "Access denied by zero trust policy"}
            body.update(result.to_dict())
            return jsonify(body), 503 if result.fail_policy else 403
        return None

    def operator():
        admin.authorize(g.identity)
        return g.identity

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy", "timestamp": time.time()})

    # --- Dashboard and listings ---

    @app.route(f"{PREFIX}/dashboard", methods=["GET"])
    def dashboard():
        operator()
        return jsonify(analytics.dashboard())

    @app.route(f"{PREFIX}/events", methods=["GET"])
    def list_events():
        operator()
        flt = EventFilter(
            event_type=request.args.get("eventType") or None,
            severity=request.args.get("severity") or None,
            min_risk_score=_int_arg("riskScore"),
            ip_address=request.args.get("ipAddress") or None,
            user_id=request.args.get("userId") or None,
            start_date=_date_arg("startDate"),
            end_date=_date_arg("endDate"),
        )
        return jsonify(_page_body("events", analytics.events(flt, _page_arg(cfg))))

    @app.route(f"{PREFIX}/devices", methods=["GET"])
    def list_devices():
        operator()
        flt = DeviceFilter(
            risk_threshold=_int_arg("riskThreshold"),
            is_verified=_bool_arg("verified"),
            is_blocked=_bool_arg("blocked"),
        )
        sort_by = request.args.get("sortBy") or "lastSeen"
        return jsonify(_page_body("devices", analytics.devices(flt, _page_arg(cfg), sort_by)))

    # --- Device actions ---

    @app.route(f"{PREFIX}/devices/<device_id>/verify", methods=["PUT"])
    def verify_device(device_id: str):
        caller = operator()
        data = request.get_json(silent=True) or {}
        device = admin.verify_device(
            caller, device_id,
            method=data.get("verificationMethod") or "ADMIN_APPROVAL",
            ip_address=_client_ip(),
        )
        return jsonify({"message": "Device verified successfully", "device": device.to_dict()})

    @app.route(f"{PREFIX}/devices/<device_id>/block", methods=["PUT"])
    def block_device(device_id: str):
        caller = operator()
        data = request.get_json(silent=True) or {}
        device = admin.block_device(caller, device_id, reason=data.get("reason"),
                                    ip_address=_client_ip())
        return jsonify({"message": "Device blocked successfully", "device": device.to_dict()})

    # --- Analytics ---

    @app.route(f"{PREFIX}/analytics/risk-trends", methods=["GET"])
    def risk_trends():
        operator()
        days = _int_arg("days", cfg.default_trend_days)
        return jsonify({"days": days, "trends": analytics.risk_trends(days)})

    @app.route(f"{PREFIX}/analytics/threat-summary", methods=["GET"])
    def threat_summary():
        operator()
        return jsonify({"threats": analytics.threat_summary()})

    @app.route(f"{PREFIX}/user/<user_id>/security-profile", methods=["GET"])
    def security_profile(user_id: str):
        operator()
        return jsonify(analytics.user_security_profile(user_id))

    return app
