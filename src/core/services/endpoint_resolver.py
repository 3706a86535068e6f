"""Control-plane endpoint discovery.

The client talks to whichever control plane answers first: a local one (dev
clusters) is preferred, the shared remote one is the fallback. Resolution is
single-flight: the first caller probes while concurrent callers wait on the same
lock, and every caller then reads the memoized result. A failed resolution is
memoized too, so a command never probes twice.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Sequence

import httpx

from core.errors import NetworkError

log = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]


class EndpointResolver:
    """Resolves and caches the reachable control-plane base URL."""

    def __init__(self, candidates: Sequence[str], *, client_factory: ClientFactory) -> None:
        if not candidates:
            raise ValueError("EndpointResolver needs at least one candidate URL")
        self._candidates = [c.rstrip("/") for c in candidates]
        self._client_factory = client_factory
        self._lock = asyncio.Lock()
        self._url: str | None = None
        self._error: NetworkError | None = None
        self.probe_rounds = 0

    @property
    def resolved(self) -> str | None:
        return self._url

    def reset(self) -> None:
        """Forget the resolved URL. Intended for tests only."""

        self._url = None
        self._error = None
        self.probe_rounds = 0

    async def resolve(self) -> str:
        if self._url is not None:
            return self._url
        async with self._lock:
            if self._url is not None:
                return self._url
            if self._error is not None:
                raise self._error
            try:
                self._url = await self._probe_candidates()
            except NetworkError as exc:
                self._error = exc
                raise
            return self._url

    async def _probe_candidates(self) -> str:
        self.probe_rounds += 1
        async with self._client_factory() as client:
            for url in self._candidates:
                if await self._is_available(client, url):
                    log.info("Connected to control plane: %s", url)
                    return url
                log.debug("Control plane not available at %s", url)
        raise NetworkError(
            "No control plane available: could not connect to any of " + ", ".join(self._candidates)
        )

    @staticmethod
    async def _is_available(client: httpx.AsyncClient, url: str) -> bool:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            log.debug("Probe of %s failed: %s", url, exc)
            return False
        return response.is_success
