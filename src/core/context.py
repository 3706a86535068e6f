"""Application context.

One `AppContext` is built per CLI command. It owns the endpoint resolver (the
only shared mutable state) and the factories for every external collaborator,
so tests can swap any of them for fakes without touching module globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import httpx

from adapters.container_engine import build_engine
from adapters.control_plane import ControlPlaneClient
from adapters.http_client import build_async_client
from adapters.message_queue import build_publisher
from adapters.service_process import SubprocessLauncher
from core.config import AppSettings
from core.interfaces.engine import ContainerEngine
from core.interfaces.messaging import MessagePublisher
from core.interfaces.process import ServiceLauncher
from core.services.endpoint_resolver import EndpointResolver


@dataclass
class AppContext:
    settings: AppSettings
    resolver: EndpointResolver
    engine: ContainerEngine
    launcher: ServiceLauncher
    http_client_factory: Callable[[], httpx.AsyncClient]
    publisher_factory: Callable[[], MessagePublisher]

    @classmethod
    def from_settings(cls, settings: AppSettings | None = None) -> "AppContext":
        settings = settings or AppSettings()
        return cls(
            settings=settings,
            resolver=EndpointResolver(
                settings.server_candidates,
                client_factory=lambda: build_async_client(
                    settings, timeout_seconds=settings.probe_timeout_seconds
                ),
            ),
            engine=build_engine(settings),
            launcher=SubprocessLauncher(),
            http_client_factory=lambda: build_async_client(settings),
            publisher_factory=lambda: build_publisher(settings),
        )

    async def control_plane(self, client: httpx.AsyncClient) -> ControlPlaneClient:
        """Resolve the endpoint (once per context) and bind a client to it."""

        return ControlPlaneClient(await self.resolver.resolve(), client)
