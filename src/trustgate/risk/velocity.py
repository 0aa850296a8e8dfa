"""Sliding-window request counter per identity or source IP."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class VelocityTracker:
    """Counts hits per key inside a trailing window of ``window_seconds``.

    Keys whose window has emptied are dropped, so memory tracks the set of
    recently active keys rather than every key ever seen.
    """

    def __init__(self, window_seconds: float = 60.0, now: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._now = now
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = now()

    def __len__(self) -> int:
        return len(self._hits)

    def _prune(self, key: str, now: float) -> int:
        q = self._hits.get(key)
        if q is None:
            return 0
        cutoff = now - self.window_seconds
        while q and q[0] <= cutoff:
            q.popleft()
        if not q:
            del self._hits[key]
            return 0
        return len(q)

    def _sweep(self, now: float) -> None:
        # At most once per window; evicts keys that are never asked about again.
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._prune(key, now)

    def hit(self, key: str) -> int:
        """Record one request for ``key``; returns the count inside the window."""
        now = self._now()
        with self._lock:
            self._sweep(now)
            self._hits.setdefault(key, deque()).append(now)
            return self._prune(key, now)

    def count(self, key: str) -> int:
        now = self._now()
        with self._lock:
            return self._prune(key, now)

    @staticmethod
    def key_for(user_id: str | None, ip_address: str) -> str:
        return f"user:{user_id}" if user_id else f"ip:{ip_address}"
