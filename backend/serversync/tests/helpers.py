"""Test doubles shared by the sync tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from serversync.registry.types import Server

STEVE_ID = UUID("069a79f4-44e9-4726-a5be-fca90e38aaf5")
ALEX_ID = UUID("853c80ef-3c37-49fd-aa49-938b674adae6")


class FakeClock:
    """Controllable monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHostAdapter:
    """Host adapter that records every call as ("register"|"unregister", name)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def register_routable(self, server: Server) -> None:
        self.calls.append(("register", server.name))

    def unregister_routable(self, server: Server) -> None:
        self.calls.append(("unregister", server.name))

    def count(self, action: str, name: str) -> int:
        return self.calls.count((action, name))


def wire(**fields: Any) -> bytes:
    """Build a raw broker payload from keyword fields."""
    return json.dumps(fields).encode()
