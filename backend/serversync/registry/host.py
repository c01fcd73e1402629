"""Host adapter capability: make a server routable on the local proxy, or not."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from serversync.registry.types import Server

logger = structlog.get_logger()


class HostAdapter(Protocol):
    """Platform hook invoked by the registry on every add and remove.

    Implementations must be fast and non-blocking: the registry calls them
    while holding its lock. Registering a name that is already routable and
    unregistering a name that is not are both no-ops.
    """

    def register_routable(self, server: Server) -> None: ...

    def unregister_routable(self, server: Server) -> None: ...


class InMemoryRoutingTable:
    """Routing table of a Python proxy: server name -> (ip, port)."""

    def __init__(self) -> None:
        self._routes: dict[str, tuple[str, int]] = {}

    def register_routable(self, server: Server) -> None:
        if server.name in self._routes:
            return
        self._routes[server.name] = (server.ip, server.port)
        logger.info("server routable", server=server.name, address=f"{server.ip}:{server.port}")

    def unregister_routable(self, server: Server) -> None:
        if self._routes.pop(server.name, None) is not None:
            logger.info("server unroutable", server=server.name)

    def resolve(self, name: str) -> tuple[str, int] | None:
        return self._routes.get(name)

    def names(self) -> list[str]:
        return sorted(self._routes)

    def __contains__(self, name: object) -> bool:
        return name in self._routes

    def __len__(self) -> int:
        return len(self._routes)
