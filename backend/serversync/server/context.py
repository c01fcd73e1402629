"""Runtime context of the sync subsystem, built once at startup."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from serversync.broker.memory import InMemoryBroker
from serversync.broker.protocol import ConnectionResult
from serversync.broker.redis_broker import RedisBroker
from serversync.messaging.publisher import ServerSyncPublisher
from serversync.messaging.reducer import EventReducer
from serversync.messaging.types import SERVERS_CHANNEL
from serversync.registry.manager import ServerRegistry
from serversync.server.agent import LocalServerAgent
from serversync.server.settings import BrokerType, RedisSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    from serversync.broker.protocol import BrokerTransport
    from serversync.registry.host import HostAdapter
    from serversync.server.settings import SyncSettings

logger = structlog.get_logger()


@dataclass
class SyncContext:
    """Everything a running sync subsystem consists of.

    Only start_sync() builds one, and only after the broker connected, so a
    context in hand is always a started subsystem.
    """

    settings: SyncSettings
    registry: ServerRegistry
    broker: BrokerTransport
    publisher: ServerSyncPublisher
    reducer: EventReducer
    agent: LocalServerAgent | None = None
    stopped: bool = False

    async def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        if self.agent is not None:
            await self.agent.stop()
        await self.registry.stop_sweeper()
        await self.broker.close()
        logger.info("sync subsystem stopped")


def create_broker(settings: SyncSettings) -> BrokerTransport:
    """Build the transport named by the settings.

    Redis credentials are read here, so a missing REDIS_HOST fails with a
    ValidationError before anything connects.
    """
    if settings.broker == BrokerType.MEMORY:
        return InMemoryBroker()
    return RedisBroker(RedisSettings())  # ty: ignore[missing-argument]


async def start_sync(
    settings: SyncSettings,
    host_adapter: HostAdapter,
    *,
    broker: BrokerTransport | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> SyncContext | None:
    """Connect, subscribe and start the sweeper.

    Returns None when the broker cannot connect; the failure is logged and the
    host process carries on without sync.
    """
    start = time.monotonic()
    if broker is None:
        broker = create_broker(settings)

    if await broker.connect() == ConnectionResult.FAILURE:
        logger.error("sync subsystem not started, broker connection failed", broker=settings.broker)
        return None

    registry = ServerRegistry(
        host_adapter,
        heartbeat_scheduler_delay=settings.heartbeat_scheduler_delay,
        max_alive_time=settings.max_alive_time,
        clock=clock,
    )
    reducer = EventReducer(registry)
    publisher = ServerSyncPublisher(broker)
    agent: LocalServerAgent | None = None
    try:
        await broker.subscribe(SERVERS_CHANNEL, reducer.on_message)
        registry.start_sweeper()

        if settings.hosts_local_server:
            agent = LocalServerAgent(
                publisher,
                name=settings.server_name,
                ip=settings.server_ip,
                port=settings.server_port,
                max_players=settings.max_players,
                heartbeat_interval=settings.heartbeat_interval,
            )
            await agent.start()
    except BaseException:
        # The broker is connected; release it before the error propagates.
        if agent is not None:
            await agent.stop()
        await registry.stop_sweeper()
        await broker.close()
        raise

    elapsed_ms = round((time.monotonic() - start) * 1000)
    logger.info("sync subsystem started", elapsed_ms=elapsed_ms, local_server=settings.server_name)
    return SyncContext(
        settings=settings,
        registry=registry,
        broker=broker,
        publisher=publisher,
        reducer=reducer,
        agent=agent,
    )
