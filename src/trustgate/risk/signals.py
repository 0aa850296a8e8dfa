"""
Request signal detectors.

Small pure checks the risk engine combines: where the request comes
from on the network, what kind of client sent it, and whether its
content looks like an injection attempt.
"""

from __future__ import annotations

import ipaddress
import re
from functools import lru_cache

# (pattern, threat type); matched against lowercased request text
MALICIOUS_PATTERNS = [
    (re.compile(r"sql.*injection"), "SQL Injection"),
    (re.compile(r"union.*select"), "SQL Injection"),
    (re.compile(r"script.*alert"), "XSS"),
    (re.compile(r"<script"), "XSS"),
    (re.compile(r"javascript:"), "XSS"),
    (re.compile(r"vbscript:"), "XSS"),
    (re.compile(r"onload="), "XSS"),
    (re.compile(r"onerror="), "XSS"),
    (re.compile(r"\.\./\.\./"), "Path Traversal"),
    (re.compile(r"etc/passwd"), "File Access"),
    (re.compile(r"cmd\.exe"), "Command Injection"),
    (re.compile(r"powershell"), "Command Injection"),
]


@lru_cache(maxsize=32)
def _networks(cidrs: tuple[str, ...]):
    return tuple(ipaddress.ip_network(c) for c in cidrs)


def is_private_address(ip_address: str, networks: list[str]) -> bool:
    """True if ``ip_address`` falls inside one of ``networks``; unparseable input is not private."""
    try:
        ip = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in _networks(tuple(networks)))


def is_bot_user_agent(user_agent: str, markers: list[str]) -> bool:
    ua = user_agent.lower()
    return any(marker.lower() in ua for marker in markers)


def detect_malicious_payload(text: str, limit: int | None = None) -> list[str]:
    """Threat types whose patterns match ``text``, in first-seen order."""
    if not text:
        return []
    sample = (text if limit is None else text[:limit]).lower()
    found: list[str] = []
    for pattern, threat in MALICIOUS_PATTERNS:
        if threat not in found and pattern.search(sample):
            found.append(threat)
    return found
