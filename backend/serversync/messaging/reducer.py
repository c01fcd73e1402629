from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from serversync.messaging.codec import MalformedMessageError, UnknownMessageTypeError, decode_message
from serversync.messaging.types import (
    CreateMessage,
    HeartbeatMessage,
    PlayerUpdateState,
    RemoveMessage,
    UpdateMessage,
)
from serversync.registry.types import Server

if TYPE_CHECKING:
    from serversync.registry.manager import ServerRegistry

logger = structlog.get_logger()


class HandleResult(StrEnum):
    APPLIED = "applied"
    IGNORED = "ignored"
    MALFORMED = "malformed"
    UNKNOWN_TYPE = "unknown_type"
    FAILED = "failed"


class EventReducer:
    """
    Applies server messages to the local registry.

    Every node, including the publisher of a message, runs the same reducer
    over everything it observes on the channel. Each message is applied under
    the registry lock, and a failure is contained to that one message.
    """

    def __init__(self, registry: ServerRegistry) -> None:
        self._registry = registry

    async def on_message(self, data: bytes) -> None:
        """Broker subscription handler."""
        self.handle(data)

    def handle(self, data: bytes | str) -> HandleResult:
        """Decode and apply one raw payload. Never raises."""
        try:
            message = decode_message(data)
        except UnknownMessageTypeError as e:
            logger.warning("dropped server message of unknown type", message_type=e.message_type)
            return HandleResult.UNKNOWN_TYPE
        except MalformedMessageError as e:
            logger.warning("dropped malformed server message", error=str(e))
            return HandleResult.MALFORMED

        try:
            return self.apply(message)
        except Exception:
            logger.exception("failed to apply server message", message_type=message.type, server=message.name)
            return HandleResult.FAILED

    def apply(self, message: CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage) -> HandleResult:
        with self._registry.transaction():
            if isinstance(message, CreateMessage):
                return self._apply_create(message)
            if isinstance(message, HeartbeatMessage):
                return self._apply_heartbeat(message)
            if isinstance(message, UpdateMessage):
                return self._apply_update(message)
            return self._apply_remove(message)

    def _apply_create(self, message: CreateMessage) -> HandleResult:
        server = Server(
            name=message.name,
            ip=message.ip,
            port=message.port,
            max_players=message.max_players,
            last_heartbeat=self._registry.clock(),
        )
        self._registry.upsert(server)
        return HandleResult.APPLIED

    def _apply_heartbeat(self, message: HeartbeatMessage) -> HandleResult:
        now = self._registry.clock()
        server = self._registry.get(message.name)
        if server is not None:
            # Known server: liveness ping only, the payload is not merged.
            server.heartbeat(now)
            return HandleResult.APPLIED

        # Unknown server: full resync from the heartbeat's own state.
        server = Server(
            name=message.name,
            ip=message.ip,
            port=message.port,
            max_players=message.max_players,
            last_heartbeat=now,
        )
        for player in message.players:
            server.add_player(player)
        self._registry.upsert(server)
        logger.info("server resynced from heartbeat", server=message.name, players=server.player_count)
        return HandleResult.APPLIED

    def _apply_update(self, message: UpdateMessage) -> HandleResult:
        server = self._registry.get(message.name)
        if server is None:
            # Updates only make sense against an established server; a CREATE
            # or HEARTBEAT will bring it in.
            return HandleResult.IGNORED

        if message.is_roster_patch:
            player = message.player_to_update
            if message.player_update == PlayerUpdateState.ADD:
                if not server.contains_player(player.id):
                    server.add_player(player)
            else:
                server.remove_player(player.id)
            return HandleResult.APPLIED

        if message.max_players is not None:
            server.max_players = message.max_players
            return HandleResult.APPLIED

        return HandleResult.IGNORED

    def _apply_remove(self, message: RemoveMessage) -> HandleResult:
        if self._registry.remove(message.name) is None:
            return HandleResult.IGNORED
        return HandleResult.APPLIED
