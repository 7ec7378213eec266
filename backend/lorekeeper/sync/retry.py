"""Bounded retry with quadratic backoff."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests

from lorekeeper.core.errors import RetryExhaustedError, TransientUpstreamError
from lorekeeper.core.logging import log_context
from lorekeeper.sync.context import SyncContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    TransientUpstreamError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    TimeoutError,
    ConnectionResetError,
)


def is_retryable(exc: BaseException) -> bool:
    """Classify an error as transient (408, 429, 5xx, timeouts, resets) or fatal."""
    if isinstance(exc, _RETRYABLE_TYPES):
        return True
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status in (408, 429) or 500 <= status <= 599
    return False


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry configuration; immutable and safe to share between threads."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def backoff(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * attempt * attempt)

    def run(self, ctx: SyncContext, operation: Callable[[], T], label: str = "operation") -> T:
        """Invoke ``operation`` up to ``max_retries + 1`` times.

        Fatal errors propagate unchanged on first sight. Retryable errors are
        retried after ``attempt**2`` seconds (capped); once attempts run out a
        RetryExhaustedError chained to the last failure is raised. Cancellation
        interrupts the backoff sleep.
        """
        attempts = max(1, self.max_retries + 1)
        attempt = 0
        while True:
            ctx.check()
            try:
                return operation()
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                if attempt + 1 >= attempts:
                    raise RetryExhaustedError(attempts, exc) from exc
                delay = self.backoff(attempt)
                logger.warning(
                    "Retryable failure in %s (attempt %s/%s), backing off %.1fs: %s",
                    label,
                    attempt + 1,
                    attempts,
                    delay,
                    exc,
                    extra=log_context(attempt=attempt + 1, label=label),
                )
                ctx.sleep(delay)
                attempt += 1


__all__ = ["RetryPolicy", "is_retryable"]
