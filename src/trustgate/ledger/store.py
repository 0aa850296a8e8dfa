"""
Append-only security event ledger.

Events are written once and never updated or deleted. Reads return
newest first; ordering is by ``created_at`` at read time, not by write
sequence, so concurrent appends need no coordination beyond the list
append itself.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable

from ..clock import Clock, utcnow
from .models import (
    EventFilter,
    EventType,
    NewEvent,
    Page,
    PageRequest,
    SecurityEvent,
)

logger = logging.getLogger(__name__)


class SecurityLedger:
    """In-process event ledger with filtered, paginated reads."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or utcnow
        self._events: list[SecurityEvent] = []
        self._lock = threading.Lock()

    # --- Writes ---

    def append(self, event: NewEvent) -> str:
        """Validate and store ``event``; returns the assigned event id."""
        event.validated()
        record = SecurityEvent.from_new(uuid.uuid4().hex, event, self.clock())
        with self._lock:
            self._events.append(record)
        logger.debug(
            "ledger append %s risk=%d user=%s device=%s",
            record.event_type.value, record.risk_score,
            record.user_id, record.device_fingerprint_id,
        )
        return record.id

    # --- Reads ---

    def _snapshot(self) -> list[SecurityEvent]:
        with self._lock:
            return list(self._events)

    def get(self, event_id: str) -> SecurityEvent | None:
        for event in self._snapshot():
            if event.id == event_id:
                return event
        return None

    def select(
        self,
        predicate: Callable[[SecurityEvent], bool] | None = None,
        since: datetime | None = None,
    ) -> list[SecurityEvent]:
        """All matching events, newest first."""
        events = [
            e for e in reversed(self._snapshot())
            if (since is None or e.created_at >= since)
            and (predicate is None or predicate(e))
        ]
        events.sort(key=lambda e: e.created_at, reverse=True)
        return events

    def query(self, filter: EventFilter | None = None, page: PageRequest | None = None) -> Page:
        filter = filter or EventFilter()
        page = page or PageRequest()
        matched = self.select(filter.matches)
        return Page(
            items=matched[page.offset:page.offset + page.limit],
            page=page.page,
            limit=page.limit,
            total=len(matched),
        )

    def window(self, hours: float = 0, days: float = 0) -> list[SecurityEvent]:
        since = self.clock() - timedelta(hours=hours, days=days)
        return self.select(since=since)

    def count(
        self,
        event_types: Iterable[EventType] | None = None,
        since: datetime | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
    ) -> int:
        types = set(event_types) if event_types is not None else None

        def match(e: SecurityEvent) -> bool:
            if types is not None and e.event_type not in types:
                return False
            if user_id is not None and e.user_id != user_id:
                return False
            if ip_address is not None and e.ip_address != ip_address:
                return False
            return True

        return len(self.select(match, since=since))

    def device_history(self, device_id: str, limit: int) -> list[SecurityEvent]:
        """Most recent ``limit`` events tagged with ``device_id``."""
        return self.select(lambda e: e.device_fingerprint_id == device_id)[:limit]

    def recent_login_countries(self, user_id: str, limit: int) -> list[str]:
        """Countries of the user's last ``limit`` successful logins with geo data."""
        logins = self.select(
            lambda e: e.user_id == user_id
            and e.event_type == EventType.LOGIN_SUCCESS
            and e.geo_location is not None
        )
        return [e.country for e in logins[:limit]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
