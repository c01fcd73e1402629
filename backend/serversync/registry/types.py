"""Entity model for servers known to the fleet and the players connected to them."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from uuid import UUID

PLAYER_TOKEN_SEPARATOR = ";"


@dataclass(frozen=True)
class Player:
    """A connected client attributed to a server's roster.

    Identity is the player id; the display name is informational only.
    """

    id: UUID
    display_name: str = field(compare=False)

    def pack(self) -> str:
        """Return the ``"<uuid>;<name>"`` wire token for this player."""
        return f"{self.id}{PLAYER_TOKEN_SEPARATOR}{self.display_name}"

    @classmethod
    def unpack(cls, token: str) -> Player:
        """Parse a ``"<uuid>;<name>"`` wire token.

        Raises ValueError when the separator is missing or the id is not a UUID.
        """
        player_id, sep, display_name = token.partition(PLAYER_TOKEN_SEPARATOR)
        if not sep:
            raise ValueError(f"player token must look like '<uuid>;<name>', got {token!r}")
        return cls(id=UUID(player_id), display_name=display_name)


@dataclass
class Server:
    """One backend process known to the fleet.

    ``name`` is the identity within a registry. ``ip`` and ``port`` are fixed
    at creation; the roster, ``max_players`` and ``last_heartbeat`` are mutated
    in place while the registry holds its lock.
    """

    name: str
    ip: str
    port: int
    max_players: int = 0
    players: dict[UUID, Player] = field(default_factory=dict)  # player id -> Player
    last_heartbeat: float = field(default_factory=time.monotonic)

    @property
    def player_count(self) -> int:
        return len(self.players)

    def contains_player(self, player_id: UUID) -> bool:
        return player_id in self.players

    def get_player(self, player_id: UUID) -> Player | None:
        return self.players.get(player_id)

    def add_player(self, player: Player) -> None:
        """Add a player, replacing any roster entry with the same id."""
        self.players[player.id] = player

    def remove_player(self, player_id: UUID) -> Player | None:
        return self.players.pop(player_id, None)

    def heartbeat(self, now: float | None = None) -> None:
        self.last_heartbeat = time.monotonic() if now is None else now

    def since_last_heartbeat(self, now: float | None = None) -> float:
        if now is None:
            now = time.monotonic()
        return now - self.last_heartbeat
