"""Fixed-window attempt limiter keyed by network source"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from donation_gateway.domain.models import RateLimitDecision


@dataclass
class _Window:
    attempt_count: int
    window_started_at: float


class RateLimiter:
    """
    Bounds how many payment/email operations one source may trigger per window.

    Requirements:
    - First attempt from a source opens a window with count=1
    - Attempts after the window length has elapsed reset the window
    - Within a window, allow while count < max_attempts, else deny
    - Safe under concurrent calls: check-and-increment happens under one lock
    - Expired windows are swept at most once per window length

    State is process-local and lost on restart.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] | None = None,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock or time.monotonic
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_pruned_at = self.clock()

    def allow(self, source_id: str) -> RateLimitDecision:
        """Record one attempt from source_id and report whether it may proceed"""
        with self._lock:
            now = self.clock()
            if now - self._last_pruned_at >= self.window_seconds:
                self._drop_expired(now)

            window = self._windows.get(source_id)

            if window is None or now - window.window_started_at > self.window_seconds:
                self._windows[source_id] = _Window(attempt_count=1, window_started_at=now)
                return RateLimitDecision(allowed=True, remaining=self.max_attempts - 1)

            if window.attempt_count >= self.max_attempts:
                return RateLimitDecision(allowed=False, remaining=0)

            window.attempt_count += 1
            return RateLimitDecision(allowed=True, remaining=self.max_attempts - window.attempt_count)

    def prune(self) -> int:
        """Drop expired windows; returns how many were removed"""
        with self._lock:
            return self._drop_expired(self.clock())

    def _drop_expired(self, now: float) -> int:
        # Caller holds the lock
        expired = [
            source_id
            for source_id, window in self._windows.items()
            if now - window.window_started_at > self.window_seconds
        ]
        for source_id in expired:
            del self._windows[source_id]
        self._last_pruned_at = now
        return len(expired)
