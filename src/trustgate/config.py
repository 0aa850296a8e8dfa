"""
TrustGate configuration.

All scoring weights, thresholds and lookback windows live here so the
risk engine, trust model, gate and analytics read one source of truth.
Settings load from YAML; keys mirror the dataclass field names.
"""

from __future__ import annotations

import ipaddress
import os
from dataclasses import MISSING, asdict, dataclass, field, fields
from typing import Any

import yaml

from .errors import ValidationError

CONFIG_ENV_VAR = "TRUSTGATE_CONFIG"

FAIL_CLOSED = "closed"
FAIL_OPEN = "open"

# YAML integers are accepted where a float is expected.
_ACCEPTED_TYPES = {float: (int, float)}
_NULLABLE = {"gate_timeout_seconds"}


@dataclass
class Settings:
    # Gate decision policy
    challenge_threshold: int = 70
    high_risk_threshold: int = 70
    fail_mode: str = FAIL_CLOSED
    gate_timeout_seconds: float | None = 2.0

    # Risk scoring increments
    failed_login_window_minutes: int = 15
    failed_login_increment: int = 5
    failed_login_cap: int = 30
    geo_history_size: int = 5
    geo_anomaly_increment: int = 20
    velocity_window_seconds: int = 60
    velocity_threshold: int = 100
    velocity_increment: int = 15
    high_risk_countries: list[str] = field(
        default_factory=lambda: ["CN", "RU", "KP", "IR", "SY", "AF"]
    )
    high_risk_country_increment: int = 20

    # Request time, network and content signals (an increment of 0 disables one)
    business_hours_start: int = 6  # UTC hour; earlier counts as off-hours
    business_hours_end: int = 22  # UTC hour; later counts as off-hours
    off_hours_increment: int = 20
    weekend_increment: int = 15
    private_networks: list[str] = field(
        default_factory=lambda: ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]
    )
    private_network_increment: int = 15
    missing_accept_language_increment: int = 10
    missing_accept_encoding_increment: int = 15
    bot_user_agent_markers: list[str] = field(
        default_factory=lambda: ["bot", "crawler", "spider", "scraper"]
    )
    bot_user_agent_increment: int = 60
    malicious_payload_increment: int = 50
    max_payload_scan_chars: int = 65536

    # Device trust model
    trust_base_unverified: int = 50
    trust_base_verified: int = 80
    trust_history_size: int = 20
    trust_history_weight: float = 0.5
    shared_device_user_threshold: int = 2
    shared_device_penalty: int = 10

    # Authentication flows
    brute_force_threshold: int = 5
    failed_login_risk: int = 40
    brute_force_risk: int = 90

    # Analytics windows
    dashboard_window_hours: int = 24
    geo_window_days: int = 7
    threat_summary_window_hours: int = 24
    profile_window_days: int = 30
    default_trend_days: int = 7

    # API
    operator_roles: list[str] = field(default_factory=lambda: ["admin", "security"])
    default_page_size: int = 50
    max_page_size: int = 500

    def __post_init__(self):
        self.validate()

    def _check_types(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            default = f.default if f.default is not MISSING else f.default_factory()
            if value is None and f.name in _NULLABLE:
                continue
            expected = _ACCEPTED_TYPES.get(type(default), (type(default),))
            if isinstance(value, bool) or not isinstance(value, expected):
                raise ValidationError(
                    f"{f.name} must be {type(default).__name__}, got {value!r}"
                )
            if isinstance(value, list) and not all(isinstance(v, str) for v in value):
                raise ValidationError(f"{f.name} must be a list of strings, got {value!r}")

    def validate(self) -> None:
        self._check_types()
        for name in ("challenge_threshold", "high_risk_threshold",
                     "failed_login_risk", "brute_force_risk"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValidationError(f"{name} must be within [0, 100], got {value}")
        if self.fail_mode not in (FAIL_CLOSED, FAIL_OPEN):
            raise ValidationError(f"fail_mode must be 'closed' or 'open', got {self.fail_mode!r}")
        if self.gate_timeout_seconds is not None and self.gate_timeout_seconds <= 0:
            raise ValidationError("gate_timeout_seconds must be positive or null")
        for name in ("failed_login_window_minutes", "velocity_window_seconds",
                     "trust_history_size", "geo_history_size", "dashboard_window_hours",
                     "geo_window_days", "threat_summary_window_hours",
                     "profile_window_days", "default_trend_days",
                     "default_page_size", "max_page_size"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive")
        if self.default_page_size > self.max_page_size:
            raise ValidationError("default_page_size exceeds max_page_size")
        for f in fields(self):
            if f.name.endswith("_increment") and not 0 <= getattr(self, f.name) <= 100:
                raise ValidationError(f"{f.name} must be within [0, 100]")
        for name in ("business_hours_start", "business_hours_end"):
            if not 0 <= getattr(self, name) <= 23:
                raise ValidationError(f"{name} must be an hour within [0, 23]")
        if self.max_payload_scan_chars <= 0:
            raise ValidationError("max_payload_scan_chars must be positive")
        for network in self.private_networks:
            try:
                ipaddress.ip_network(network)
            except ValueError:
                raise ValidationError(f"private_networks entry {network!r} is not a network") from None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def load_yaml(cls, yaml_str: str) -> "Settings":
        data = yaml.safe_load(yaml_str) or {}
        if not isinstance(data, dict):
            raise ValidationError("Settings YAML must be a mapping")
        return cls.from_dict(data.get("trustgate", data))

    def to_yaml(self) -> str:
        return yaml.dump({"trustgate": self.to_dict()}, default_flow_style=False, sort_keys=False)


def load_settings(path: str | None = None) -> Settings:
    """Load settings from ``path`` or ``$TRUSTGATE_CONFIG``; defaults otherwise."""
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return Settings()
    with open(path) as f:
        return Settings.load_yaml(f.read())
