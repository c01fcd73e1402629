"""Outbound side of the protocol: encode local state changes and publish them."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from serversync.messaging.codec import encode
from serversync.messaging.types import (
    SERVERS_CHANNEL,
    CreateMessage,
    HeartbeatMessage,
    PlayerUpdateState,
    RemoveMessage,
    UpdateMessage,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from serversync.broker.protocol import BrokerTransport
    from serversync.registry.types import Player

logger = structlog.get_logger()


class ServerSyncPublisher:
    """Publish server messages on the shared channel.

    Publishing is best effort: nothing is acknowledged or retried, and a
    transport failure is logged here instead of reaching the caller.
    """

    def __init__(self, broker: BrokerTransport, channel: str = SERVERS_CHANNEL) -> None:
        self._broker = broker
        self._channel = channel

    async def publish_create(self, name: str, ip: str, port: int, max_players: int) -> None:
        await self._publish(CreateMessage(name=name, ip=ip, port=port, max_players=max_players))

    async def publish_heartbeat(
        self,
        name: str,
        ip: str,
        port: int,
        max_players: int,
        players: Iterable[Player],
    ) -> None:
        await self._publish(
            HeartbeatMessage(name=name, ip=ip, port=port, max_players=max_players, players=list(players)),
        )

    async def publish_player_update(self, name: str, player: Player, update: PlayerUpdateState) -> None:
        await self._publish(UpdateMessage(name=name, player_update=update, player_to_update=player))

    async def publish_max_players_update(self, name: str, max_players: int) -> None:
        await self._publish(UpdateMessage(name=name, max_players=max_players))

    async def publish_remove(self, name: str) -> None:
        await self._publish(RemoveMessage(name=name))

    async def _publish(self, message: CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage) -> None:
        try:
            await self._broker.publish(self._channel, encode(message))
        except Exception:
            logger.exception("failed to publish server message", message_type=message.type, server=message.name)
