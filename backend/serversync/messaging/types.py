"""Wire messages exchanged over the servers channel.

One JSON object per broker message, discriminated by ``type``. Field names
on the wire are camelCase (``maxPlayers``, ``playerUpdate``); Python code
uses the snake_case attribute names. Roster entries travel as packed
``"<uuid>;<name>"`` tokens and are decoded into ``Player`` at this boundary.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator, TypeAdapter, model_validator

from serversync.registry.types import Player

SERVERS_CHANNEL = "serversync:servers"


class ServerMessageType(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    HEARTBEAT = "HEARTBEAT"
    REMOVE = "REMOVE"


class PlayerUpdateState(StrEnum):
    ADD = "ADD"
    REMOVE = "REMOVE"


def _validate_player_token(value: Any) -> Player:
    if isinstance(value, Player):
        return value
    if not isinstance(value, str):
        raise ValueError(f"player token must be a string, got {type(value).__name__}")
    return Player.unpack(value)


def _serialize_player(player: Player) -> str:
    return player.pack()


PackedPlayer = Annotated[
    Player,
    PlainValidator(_validate_player_token),
    PlainSerializer(_serialize_player, return_type=str),
]

_PORT_FIELD = Field(ge=0, le=65535)


class _WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)


class CreateMessage(_WireMessage):
    type: Literal[ServerMessageType.CREATE] = ServerMessageType.CREATE
    ip: str = Field(min_length=1)
    port: int = _PORT_FIELD
    max_players: int = Field(alias="maxPlayers", ge=0)


class HeartbeatMessage(_WireMessage):
    type: Literal[ServerMessageType.HEARTBEAT] = ServerMessageType.HEARTBEAT
    ip: str = Field(min_length=1)
    port: int = _PORT_FIELD
    max_players: int = Field(alias="maxPlayers", ge=0)
    players: list[PackedPlayer]


class UpdateMessage(_WireMessage):
    """Patch for an established server: a roster change or a new max-players value.

    When both are present only the roster change is applied.
    """

    type: Literal[ServerMessageType.UPDATE] = ServerMessageType.UPDATE
    player_update: PlayerUpdateState | None = Field(default=None, alias="playerUpdate")
    player_to_update: PackedPlayer | None = Field(default=None, alias="playerToUpdate")
    max_players: int | None = Field(default=None, alias="maxPlayers", ge=0)

    @model_validator(mode="after")
    def _check_roster_patch(self) -> UpdateMessage:
        if (self.player_update is None) != (self.player_to_update is None):
            raise ValueError("playerUpdate and playerToUpdate must be sent together")
        return self

    @property
    def is_roster_patch(self) -> bool:
        return self.player_update is not None


class RemoveMessage(_WireMessage):
    type: Literal[ServerMessageType.REMOVE] = ServerMessageType.REMOVE


ServerMessage = Annotated[
    CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage,
    Field(discriminator="type"),
]

server_message_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def parse_server_message(data: dict[str, Any]) -> CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage:
    """Validate a raw dict into a typed server message."""
    return server_message_adapter.validate_python(data)


def dump_server_message(message: CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage) -> dict[str, Any]:
    """Dump a message to its wire dict: camelCase keys, unset optional fields omitted."""
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)
