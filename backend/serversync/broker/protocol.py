"""Abstract broker transport: one logical publish/subscribe channel between nodes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import StrEnum

# Receives one broker message's payload. Called serially per node.
MessageHandler = Callable[[bytes], Awaitable[None]]


class ConnectionResult(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


class BrokerTransport(ABC):
    """
    Abstract interface for the message broker.

    Delivery is at most once with no ordering across publishers. This
    abstraction allows the sync subsystem to be tested without a real broker.
    """

    @abstractmethod
    async def connect(self) -> ConnectionResult:
        """
        Open the connection. Reports failure instead of raising.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Stop delivering messages and release the connection.
        """
        ...

    @abstractmethod
    async def publish(self, channel: str, data: bytes) -> None:
        """
        Publish raw bytes to every subscriber of the channel.
        """
        ...

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """
        Deliver every message published on the channel to the handler.
        """
        ...
