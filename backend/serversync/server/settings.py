"""Sync subsystem configuration via environment variables."""

from enum import StrEnum
from typing import Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class BrokerType(StrEnum):
    REDIS = "redis"
    MEMORY = "memory"


class SyncSettings(BaseSettings):
    model_config = {"env_prefix": "SYNC_"}

    # Registry: sweep period and eviction threshold, both in seconds.
    heartbeat_scheduler_delay: float = Field(default=5.0, gt=0)
    max_alive_time: float = Field(default=30.0, gt=0)

    broker: BrokerType = BrokerType.REDIS
    log_dir: str | None = None

    # Identity of the backend server hosted by this node, if any. When set, the
    # node announces it with CREATE/HEARTBEAT/UPDATE/REMOVE.
    server_name: str | None = Field(default=None, min_length=1)
    server_ip: str | None = None
    server_port: int | None = Field(default=None, ge=1, le=65535)
    max_players: int = Field(default=0, ge=0)
    heartbeat_interval: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _require_local_server_address(self) -> Self:
        if self.server_name is not None and (self.server_ip is None or self.server_port is None):
            raise ValueError("server_ip and server_port are required when server_name is set")
        return self

    @property
    def hosts_local_server(self) -> bool:
        return self.server_name is not None


class RedisSettings(BaseSettings):
    model_config = {"env_prefix": "REDIS_"}

    # Required, no default: construction fails before any connection attempt
    # when REDIS_HOST is not set.
    host: str = Field(min_length=1)
    port: int = Field(default=6379, ge=1, le=65535)
    password: str | None = None
    timeout: float = Field(default=2.0, gt=0)  # seconds, connect and socket
    max_connections: int = Field(default=8, ge=1)
