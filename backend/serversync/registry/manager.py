"""Local registry of live servers and the liveness sweep that evicts stale ones."""

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from serversync.registry.host import HostAdapter
    from serversync.registry.types import Server

logger = structlog.get_logger()


class ServerRegistry:
    """Authoritative local mapping of server name -> Server.

    A server is present if and only if it is routable: every insert goes
    through ``HostAdapter.register_routable`` and every delete through
    ``HostAdapter.unregister_routable``, exactly once each.

    All access is serialized by one re-entrant lock. The inbound message
    handler, the sweep task and local callers may run on different threads;
    ``transaction()`` lets a caller group several operations atomically.
    """

    def __init__(
        self,
        host_adapter: HostAdapter,
        *,
        heartbeat_scheduler_delay: float,
        max_alive_time: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if heartbeat_scheduler_delay <= 0:
            raise ValueError(f"heartbeat_scheduler_delay must be positive, got {heartbeat_scheduler_delay}")
        if max_alive_time <= 0:
            raise ValueError(f"max_alive_time must be positive, got {max_alive_time}")
        self._host_adapter = host_adapter
        self._heartbeat_scheduler_delay = heartbeat_scheduler_delay
        self._max_alive_time = max_alive_time
        self._clock = clock
        self._servers: dict[str, Server] = {}
        self._lock = threading.RLock()
        self._sweeper_task: asyncio.Task[None] | None = None

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def max_alive_time(self) -> float:
        return self._max_alive_time

    @property
    def heartbeat_scheduler_delay(self) -> float:
        return self._heartbeat_scheduler_delay

    @contextlib.contextmanager
    def transaction(self) -> Iterator[ServerRegistry]:
        """Hold the registry lock for the duration of the block."""
        with self._lock:
            yield self

    # --- Map operations ---

    def get(self, name: str) -> Server | None:
        with self._lock:
            return self._servers.get(name)

    def servers(self) -> list[Server]:
        """Return a snapshot of all known servers."""
        with self._lock:
            return list(self._servers.values())

    def upsert(self, server: Server) -> None:
        """Insert a server, fully removing any previous one with the same name first.

        The server is stored only once the host adapter accepted it; if
        register_routable raises, the registry is left without that name.
        """
        with self._lock:
            if server.name in self._servers:
                self.remove(server.name)
            self._host_adapter.register_routable(server)
            self._servers[server.name] = server
        logger.info("server registered", server=server.name, address=f"{server.ip}:{server.port}")

    def remove(self, name: str) -> Server | None:
        """Unregister and delete a server. Return it, or None if it was not present."""
        with self._lock:
            server = self._servers.get(name)
            if server is None:
                return None
            self._host_adapter.unregister_routable(server)
            del self._servers[name]
        logger.info("server unregistered", server=name)
        return server

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._servers

    # --- Liveness sweep ---

    def sweep(self) -> list[str]:
        """Evict every server whose last heartbeat is older than max_alive_time.

        A server exactly at the threshold is kept. Returns the evicted names.
        """
        with self._lock:
            now = self._clock()
            stale = [
                server.name
                for server in list(self._servers.values())
                if server.since_last_heartbeat(now) > self._max_alive_time
            ]
            for name in stale:
                self.remove(name)
        for name in stale:
            logger.info("server evicted, heartbeat expired", server=name, max_alive_time=self._max_alive_time)
        return stale

    def start_sweeper(self) -> None:
        """Start the periodic sweep task. The first sweep runs immediately."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return
        self._sweeper_task = asyncio.create_task(self._sweep_loop())
        logger.info("sweeper started", period=self._heartbeat_scheduler_delay)

    async def stop_sweeper(self) -> None:
        """Cancel the sweep task. A sweep in progress always completes first."""
        task = self._sweeper_task
        self._sweeper_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("sweeper stopped")

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper_task is not None and not self._sweeper_task.done()

    async def _sweep_loop(self) -> None:
        """Run sweep() at a fixed rate.

        Deadlines advance by whole periods from the start time, so a slow sweep
        shortens the following sleep instead of shifting the schedule. Missed
        deadlines are skipped rather than replayed back to back.
        """
        loop = asyncio.get_running_loop()
        period = self._heartbeat_scheduler_delay
        next_run = loop.time()
        while True:
            try:
                self.sweep()
            except Exception:
                logger.exception("sweep failed")
            next_run += period
            now = loop.time()
            if next_run < now:
                next_run += ((now - next_run) // period + 1) * period
            await asyncio.sleep(next_run - now)
