"""httpx wrapper.

Why a wrapper:
- Standardizes timeouts and headers for every control-plane call.
- Eases testing: callers accept a client factory, tests pass one backed by
  `httpx.MockTransport`.
"""

from __future__ import annotations

import httpx

from core.config import AppSettings


def build_async_client(
    settings: AppSettings | None = None,
    *,
    timeout_seconds: float | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Create an `httpx.AsyncClient` with the configured defaults.

    Why a builder:
    - Centralizes timeouts/headers so every component behaves the same.
    - `timeout_seconds` lets liveness probes use a shorter budget.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds or settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
    )


def describe_transport_error(exc: httpx.HTTPError) -> str:
    """Short, user-facing description of an httpx failure."""

    try:
        request = exc.request
    except RuntimeError:
        # Raised by httpx when the error was not bound to a request.
        return f"{exc.__class__.__name__}: {exc}"
    return f"{exc.__class__.__name__} ({request.method} {request.url}): {exc}"
