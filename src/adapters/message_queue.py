"""Redis pub/sub publisher for the local test channel."""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.config import AppSettings
from core.errors import ConfigError, NetworkError
from core.interfaces.messaging import MessagePublisher

log = logging.getLogger(__name__)


class RedisPublisher(MessagePublisher):
    """Publishes test envelopes; connection errors surface as `NetworkError`."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 5.0) -> "RedisPublisher":
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                health_check_interval=30,
                socket_timeout=timeout_seconds,
                socket_connect_timeout=timeout_seconds,
                retry_on_timeout=True,
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid redis URL {url!r}: {exc}") from exc
        return cls(client)

    async def publish(self, channel: str, message: str) -> int:
        try:
            receivers = await self._client.publish(channel, message)
        except (RedisError, OSError) as exc:
            raise NetworkError(f"Publish to '{channel}' failed: {exc}") from exc
        log.debug("Published %d bytes to %s (%d receiver(s))", len(message), channel, receivers)
        return int(receivers)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            raise NetworkError(f"Redis is not reachable: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def build_publisher(settings: AppSettings | None = None) -> RedisPublisher:
    settings = settings or AppSettings()
    return RedisPublisher.from_url(settings.redis_url, timeout_seconds=settings.redis_timeout_seconds)
