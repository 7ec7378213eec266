"""Cancellation token shared by every suspension point of a sync run."""

from __future__ import annotations

import threading
import time

from lorekeeper.core.errors import SyncCancelledError

# Longest single sleep while waiting; bounds how late a parent cancellation
# or deadline is noticed by a child context.
_POLL_INTERVAL = 0.05


class SyncContext:
    """Cancellable, optionally deadline-bound context.

    Cancelling a context cancels all of its children; cancelling a child
    leaves the parent untouched.
    """

    def __init__(
        self,
        parent: "SyncContext | None" = None,
        timeout: float | None = None,
    ) -> None:
        self._parent = parent
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason: str | None = None

    def child(self, timeout: float | None = None) -> "SyncContext":
        return SyncContext(parent=self, timeout=timeout)

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        if self._parent is not None and self._parent.cancelled:
            self.cancel(self._parent.reason or "cancelled")
            return True
        return False

    @property
    def reason(self) -> str | None:
        return self._reason

    def check(self) -> None:
        """Raise SyncCancelledError if the context is no longer live."""
        if self.cancelled:
            raise SyncCancelledError(f"sync context {self._reason or 'cancelled'}")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        end = time.monotonic() + max(0.0, seconds)
        while True:
            if self.cancelled:
                return True
            remaining = end - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(remaining, _POLL_INTERVAL))

    def sleep(self, seconds: float) -> None:
        """Like ``wait`` but raises SyncCancelledError on cancellation."""
        if self.wait(seconds):
            self.check()


def background() -> SyncContext:
    """A fresh root context with no deadline."""
    return SyncContext()


__all__ = ["SyncContext", "background"]
