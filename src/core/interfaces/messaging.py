"""Publish/subscribe contract for the local test channel."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MessagePublisher(Protocol):
    """Publishes string payloads to a named channel.

    Implementations raise `core.errors.NetworkError` when the broker is unreachable.
    """

    async def publish(self, channel: str, message: str) -> int:
        """Publish `message` and return the number of receivers."""

        ...

    async def aclose(self) -> None: ...
