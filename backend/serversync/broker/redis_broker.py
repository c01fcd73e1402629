"""Redis pub/sub transport."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from serversync.broker.protocol import BrokerTransport, ConnectionResult

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

    from serversync.broker.protocol import MessageHandler
    from serversync.server.settings import RedisSettings

logger = structlog.get_logger()


class RedisBroker(BrokerTransport):
    """Broker transport over Redis PUBLISH/SUBSCRIBE.

    One pooled client serves publishes. Subscriptions share a single PubSub
    connection read by one listener task, so messages reach the handlers one
    at a time in the order Redis delivers them.
    """

    def __init__(self, settings: RedisSettings) -> None:
        self._settings = settings
        self._client: aioredis.Redis | None = None
        self._pubsub: PubSub | None = None
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._listener_task: asyncio.Task[None] | None = None

    async def connect(self) -> ConnectionResult:
        start = time.monotonic()
        client = aioredis.Redis(
            host=self._settings.host,
            port=self._settings.port,
            password=self._settings.password,
            socket_timeout=self._settings.timeout,
            socket_connect_timeout=self._settings.timeout,
            max_connections=self._settings.max_connections,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.error(
                "failed to connect to redis, check credentials",
                host=self._settings.host,
                port=self._settings.port,
                error=str(e),
            )
            await client.aclose()
            return ConnectionResult.FAILURE

        self._client = client
        elapsed_ms = round((time.monotonic() - start) * 1000)
        logger.info("connected to redis", host=self._settings.host, port=self._settings.port, elapsed_ms=elapsed_ms)
        return ConnectionResult.SUCCESS

    async def close(self) -> None:
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._handlers.clear()

    async def publish(self, channel: str, data: bytes) -> None:
        if self._client is None:
            raise ConnectionError("redis broker is not connected")
        await self._client.publish(channel, data)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        if self._client is None:
            raise ConnectionError("redis broker is not connected")
        if self._pubsub is None:
            self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        if channel not in self._handlers:
            await self._pubsub.subscribe(channel)
        self._handlers.setdefault(channel, []).append(handler)
        if self._listener_task is None:
            self._listener_task = asyncio.create_task(self._listen(self._pubsub))
        logger.info("subscribed to channel", channel=channel)

    async def _listen(self, pubsub: PubSub) -> None:
        """Read messages until cancelled; a failing handler never stops the loop."""
        try:
            await self._dispatch_all(pubsub)
        except (RedisError, OSError):
            logger.exception("redis listener stopped")

    async def _dispatch_all(self, pubsub: PubSub) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            channel = message["channel"]
            if isinstance(channel, bytes):
                channel = channel.decode()
            data = message["data"]
            if isinstance(data, str):
                data = data.encode()
            for handler in list(self._handlers.get(channel, ())):
                try:
                    await handler(data)
                except Exception:
                    logger.exception("message handler failed", channel=channel)
