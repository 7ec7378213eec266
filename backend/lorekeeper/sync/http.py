"""Rate-limited, retrying JSON client for upstream source APIs."""

from __future__ import annotations

from typing import Any, Callable, Mapping

import requests

from lorekeeper.core.errors import TransientUpstreamError, UpstreamAuthError, UpstreamError
from lorekeeper.sync.context import SyncContext
from lorekeeper.sync.ratelimit import RateLimiter
from lorekeeper.sync.retry import RetryPolicy

DEFAULT_TIMEOUT = 30.0
_USER_AGENT = "lorekeeper/0.1"


class ApiClient:
    """``requests.Session`` wrapper that paces and retries every call.

    Each attempt first takes a token from the limiter, so retries are paced
    like any other request.
    """

    def __init__(
        self,
        base_url: str,
        limiter: RateLimiter,
        retry: RetryPolicy,
        headers: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter
        self.retry = retry
        self.timeout = timeout
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": _USER_AGENT})
        if headers:
            self.session.headers.update(headers)
        if auth is not None:
            self.session.auth = auth

    def get_json(
        self,
        ctx: SyncContext,
        path: str,
        params: Mapping[str, Any] | None = None,
        validate: Callable[[Any], None] | None = None,
    ) -> Any:
        return self.request_json(ctx, "GET", path, validate=validate, params=params)

    def post_json(
        self,
        ctx: SyncContext,
        path: str,
        body: Mapping[str, Any] | None = None,
        validate: Callable[[Any], None] | None = None,
    ) -> Any:
        return self.request_json(ctx, "POST", path, validate=validate, json=body or {})

    def request_json(
        self,
        ctx: SyncContext,
        method: str,
        path: str,
        validate: Callable[[Any], None] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send one request under the limiter and retry policy.

        ``validate`` runs inside each attempt, so a payload-level error it
        raises is retried like an HTTP one when it is retryable.
        """
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}/{path.lstrip('/')}"

        def attempt() -> Any:
            self.limiter.acquire(ctx)
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            raise_for_status(response, f"{method} {url}")
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamError(f"{method} {url} returned invalid JSON", response.status_code) from exc
            if validate is not None:
                validate(payload)
            return payload

        return self.retry.run(ctx, attempt, label=f"{method} {path}")

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


def raise_for_status(response: requests.Response, label: str) -> None:
    """Map a non-2xx response onto the upstream error taxonomy."""
    status = response.status_code
    if 200 <= status < 300:
        return
    body = (response.text or "")[:500]
    message = f"{label} failed: status {status}: {body}"
    if status == 429 or status >= 500:
        raise TransientUpstreamError(message, status)
    if status in (401, 403):
        raise UpstreamAuthError(message, status)
    raise UpstreamError(message, status)


__all__ = ["ApiClient", "raise_for_status", "DEFAULT_TIMEOUT"]
