from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import structlog
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

from serversync.registry.host import InMemoryRoutingTable
from serversync.server.context import start_sync
from serversync.server.settings import SyncSettings
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from serversync.broker.protocol import BrokerTransport
    from serversync.registry.host import HostAdapter
    from serversync.registry.manager import ServerRegistry
    from serversync.registry.types import Server
    from serversync.server.context import SyncContext


def _server_payload(server: Server, now: float) -> dict[str, Any]:
    return {
        "name": server.name,
        "ip": server.ip,
        "port": server.port,
        "maxPlayers": server.max_players,
        "players": [{"id": str(p.id), "name": p.display_name} for p in server.players.values()],
        "sinceLastHeartbeat": round(server.since_last_heartbeat(now), 3),
    }


def _registry(request: Request) -> ServerRegistry | None:
    context: SyncContext | None = request.app.state.sync
    return context.registry if context is not None else None


async def health(request: Request) -> JSONResponse:
    sync_state = "running" if request.app.state.sync is not None else "disabled"
    return JSONResponse({"status": "ok", "sync": sync_state})


async def list_servers(request: Request) -> JSONResponse:
    registry = _registry(request)
    if registry is None:
        return JSONResponse({"error": "Sync is not running"}, status_code=503)
    with registry.transaction():
        now = registry.clock()
        servers = [_server_payload(s, now) for s in sorted(registry.servers(), key=lambda s: s.name)]
    return JSONResponse({"servers": servers})


async def get_server(request: Request) -> JSONResponse:
    registry = _registry(request)
    if registry is None:
        return JSONResponse({"error": "Sync is not running"}, status_code=503)
    name = request.path_params["name"]
    with registry.transaction():
        server = registry.get(name)
        if server is None:
            return JSONResponse({"error": "Server not found"}, status_code=404)
        payload = _server_payload(server, registry.clock())
    return JSONResponse(payload)


def create_app(
    settings: SyncSettings | None = None,
    host_adapter: HostAdapter | None = None,
    broker: BrokerTransport | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = SyncSettings()

    if host_adapter is None:
        host_adapter = InMemoryRoutingTable()

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/servers", list_servers, methods=["GET"]),
        Route("/servers/{name}", get_server, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None]:
        app.state.sync = await start_sync(settings, host_adapter, broker=broker)
        yield
        if app.state.sync is not None:
            await app.state.sync.stop()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.settings = settings
    app.state.host_adapter = host_adapter
    app.state.sync = None
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = SyncSettings()
    setup_logging(log_dir=_settings.log_dir, node_name=_settings.server_name)
    return create_app(settings=_settings)
