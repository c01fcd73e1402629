"""Announce the backend server hosted on this node to the rest of the fleet."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from serversync.messaging.types import PlayerUpdateState
from serversync.registry.types import Server

if TYPE_CHECKING:
    from uuid import UUID

    from serversync.messaging.publisher import ServerSyncPublisher
    from serversync.registry.types import Player

logger = structlog.get_logger()


class LocalServerAgent:
    """Publish lifecycle, roster and liveness messages for one local server.

    The agent owns the authoritative roster of its own server: host-side
    events (a player joining or leaving, a capacity change) are applied here
    and then published as single-field UPDATE messages. A periodic HEARTBEAT
    carries the full state so late-joining nodes can resync.
    """

    def __init__(
        self,
        publisher: ServerSyncPublisher,
        *,
        name: str,
        ip: str,
        port: int,
        max_players: int = 0,
        heartbeat_interval: float = 5.0,
    ) -> None:
        if heartbeat_interval <= 0:
            raise ValueError(f"heartbeat_interval must be positive, got {heartbeat_interval}")
        self._publisher = publisher
        self._server = Server(name=name, ip=ip, port=port, max_players=max_players)
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def server(self) -> Server:
        return self._server

    @property
    def running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    async def start(self) -> None:
        """Announce the server and start the heartbeat loop."""
        if self.running:
            return
        server = self._server
        await self._publisher.publish_create(server.name, server.ip, server.port, server.max_players)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("local server announced", server=server.name, heartbeat_interval=self._heartbeat_interval)

    async def stop(self) -> None:
        """Stop heartbeating and tell the fleet the server is gone."""
        task = self._heartbeat_task
        if task is None:
            return
        self._heartbeat_task = None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        await self._publisher.publish_remove(self._server.name)
        logger.info("local server withdrawn", server=self._server.name)

    async def player_joined(self, player: Player) -> None:
        self._server.add_player(player)
        await self._publisher.publish_player_update(self._server.name, player, PlayerUpdateState.ADD)

    async def player_left(self, player_id: UUID) -> None:
        player = self._server.remove_player(player_id)
        if player is None:
            return
        await self._publisher.publish_player_update(self._server.name, player, PlayerUpdateState.REMOVE)

    async def set_max_players(self, max_players: int) -> None:
        if max_players < 0:
            raise ValueError(f"max_players must not be negative, got {max_players}")
        self._server.max_players = max_players
        await self._publisher.publish_max_players_update(self._server.name, max_players)

    async def send_heartbeat(self) -> None:
        server = self._server
        await self._publisher.publish_heartbeat(
            server.name,
            server.ip,
            server.port,
            server.max_players,
            list(server.players.values()),
        )

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await self.send_heartbeat()
