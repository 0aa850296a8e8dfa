"""Append-only security event ledger."""

from .models import (
    EventFilter,
    EventType,
    GeoLocation,
    NewEvent,
    Page,
    PageRequest,
    SecurityDecision,
    SecurityEvent,
)
from .store import SecurityLedger

__all__ = [
    "SecurityLedger",
    "SecurityEvent",
    "NewEvent",
    "EventType",
    "EventFilter",
    "GeoLocation",
    "Page",
    "PageRequest",
    "SecurityDecision",
]
