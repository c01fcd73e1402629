"""Keep routing proxies eventually consistent about the live servers of a fleet."""

from serversync.broker.memory import InMemoryBroker, InMemoryHub
from serversync.broker.protocol import BrokerTransport, ConnectionResult
from serversync.broker.redis_broker import RedisBroker
from serversync.messaging.codec import DecodeError, MalformedMessageError, UnknownMessageTypeError, decode_message, encode
from serversync.messaging.publisher import ServerSyncPublisher
from serversync.messaging.reducer import EventReducer, HandleResult
from serversync.messaging.types import SERVERS_CHANNEL, PlayerUpdateState, ServerMessageType
from serversync.registry.host import HostAdapter, InMemoryRoutingTable
from serversync.registry.manager import ServerRegistry
from serversync.registry.types import Player, Server
from serversync.server.agent import LocalServerAgent
from serversync.server.context import SyncContext, start_sync
from serversync.server.settings import BrokerType, RedisSettings, SyncSettings

__all__ = [
    "SERVERS_CHANNEL",
    "BrokerTransport",
    "BrokerType",
    "ConnectionResult",
    "DecodeError",
    "EventReducer",
    "HandleResult",
    "HostAdapter",
    "InMemoryBroker",
    "InMemoryHub",
    "InMemoryRoutingTable",
    "LocalServerAgent",
    "MalformedMessageError",
    "Player",
    "PlayerUpdateState",
    "RedisBroker",
    "RedisSettings",
    "Server",
    "ServerMessageType",
    "ServerRegistry",
    "ServerSyncPublisher",
    "SyncContext",
    "SyncSettings",
    "UnknownMessageTypeError",
    "decode_message",
    "encode",
    "start_sync",
]
