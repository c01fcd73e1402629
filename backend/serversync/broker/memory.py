"""In-process broker transport for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from serversync.broker.protocol import BrokerTransport, ConnectionResult

if TYPE_CHECKING:
    from serversync.broker.protocol import MessageHandler

logger = structlog.get_logger()


class InMemoryHub:
    """Shared medium connecting every InMemoryBroker attached to it.

    Set ``available`` to False to make new connections fail.
    """

    def __init__(self, *, available: bool = True) -> None:
        self.available = available
        self._subscribers: dict[str, list[InMemoryBroker]] = defaultdict(list)
        self.published: list[tuple[str, bytes]] = []

    def attach(self, channel: str, broker: InMemoryBroker) -> None:
        if broker not in self._subscribers[channel]:
            self._subscribers[channel].append(broker)

    def detach(self, broker: InMemoryBroker) -> None:
        for subscribers in self._subscribers.values():
            if broker in subscribers:
                subscribers.remove(broker)

    async def deliver(self, channel: str, data: bytes) -> None:
        self.published.append((channel, data))
        for broker in list(self._subscribers.get(channel, ())):
            await broker.receive(channel, data)


class InMemoryBroker(BrokerTransport):
    """Broker node on an InMemoryHub.

    A publication reaches every subscribed broker on the hub, the publisher
    included, before publish() returns. Each broker hands messages to its
    handlers one at a time.
    """

    def __init__(self, hub: InMemoryHub | None = None) -> None:
        self._hub = hub or InMemoryHub()
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._delivery_lock = asyncio.Lock()
        self._connected = False

    @property
    def hub(self) -> InMemoryHub:
        return self._hub

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> ConnectionResult:
        if not self._hub.available:
            return ConnectionResult.FAILURE
        self._connected = True
        return ConnectionResult.SUCCESS

    async def close(self) -> None:
        self._hub.detach(self)
        self._handlers.clear()
        self._connected = False

    async def publish(self, channel: str, data: bytes) -> None:
        if not self._connected:
            raise ConnectionError("broker is not connected")
        await self._hub.deliver(channel, data)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        if not self._connected:
            raise ConnectionError("broker is not connected")
        self._handlers[channel].append(handler)
        self._hub.attach(channel, self)

    async def receive(self, channel: str, data: bytes) -> None:
        async with self._delivery_lock:
            for handler in list(self._handlers.get(channel, ())):
                try:
                    await handler(data)
                except Exception:
                    logger.exception("message handler failed", channel=channel)
