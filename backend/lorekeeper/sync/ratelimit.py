"""Token-bucket pacing for upstream API calls."""

from __future__ import annotations

import threading
import time

from lorekeeper.sync.context import SyncContext


class RateLimiter:
    """Token bucket refilled at one token per ``interval`` seconds.

    Safe for concurrent use by every worker of a connector.
    """

    def __init__(self, interval: float, burst: int = 1) -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.interval = interval
        self.burst = burst
        self._tokens = float(burst)
        self._updated = time.monotonic()
        self._lock = threading.Lock()

    @classmethod
    def per_period(cls, calls: int, period: float, burst: int = 1) -> "RateLimiter":
        """Limiter matching a documented quota such as 200 calls per 60s."""
        return cls(interval=period / calls, burst=burst)

    def acquire(self, ctx: SyncContext) -> None:
        """Block until a token is available; raise if ``ctx`` is cancelled first."""
        while True:
            ctx.check()
            with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait_for = (1.0 - self._tokens) * self.interval
            ctx.sleep(wait_for)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._updated
        self._updated = now
        if self.interval == 0:
            self._tokens = float(self.burst)
            return
        self._tokens = min(float(self.burst), self._tokens + elapsed / self.interval)


__all__ = ["RateLimiter"]
