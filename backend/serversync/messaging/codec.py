"""
JSON encoder/decoder for server messages.

Provides functions to encode typed server messages to UTF-8 JSON bytes and
decode broker payloads back into typed messages.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from serversync.messaging.types import ServerMessageType, dump_server_message, parse_server_message

if TYPE_CHECKING:
    from serversync.messaging.types import CreateMessage, HeartbeatMessage, RemoveMessage, UpdateMessage

# Size limit to prevent resource exhaustion from oversized payloads.
MAX_PAYLOAD_LEN = 256 * 1024  # 256KB

_KNOWN_TYPES = frozenset(t.value for t in ServerMessageType)


class DecodeError(Exception):
    """Error raised when a broker payload cannot be turned into a server message."""


class MalformedMessageError(DecodeError):
    """Payload is not JSON, not an object, or misses or mistypes a required field."""


class UnknownMessageTypeError(DecodeError):
    """Payload is well formed but its ``type`` is not a known message kind."""

    def __init__(self, message_type: object) -> None:
        super().__init__(f"unknown message type: {message_type!r}")
        self.message_type = message_type


def encode(message: CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage) -> bytes:
    """
    Encode a server message to compact JSON bytes.
    """
    return json.dumps(dump_server_message(message), separators=(",", ":")).encode()


def decode_json(data: bytes | str) -> dict[str, Any]:
    """
    Decode a payload to a JSON object.

    Raises MalformedMessageError if data is invalid, not an object, or too large.
    The size limit is in UTF-8 bytes for both bytes and str input.
    """
    if isinstance(data, str):
        try:
            data = data.encode()
        except UnicodeEncodeError as e:
            raise MalformedMessageError(f"payload is not valid UTF-8: {e}") from e
    if len(data) > MAX_PAYLOAD_LEN:
        raise MalformedMessageError(f"payload too large: {len(data)} bytes (max {MAX_PAYLOAD_LEN})")
    try:
        result = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessageError(f"failed to decode JSON data: {e}") from e
    except RecursionError as e:
        raise MalformedMessageError("failed to decode JSON data: nesting too deep") from e

    if not isinstance(result, dict):
        raise MalformedMessageError(f"expected object, got {type(result).__name__}")

    return result


def decode_message(data: bytes | str) -> CreateMessage | HeartbeatMessage | UpdateMessage | RemoveMessage:
    """
    Decode a payload into a typed server message.

    Raises UnknownMessageTypeError when ``type`` is not one of the four kinds,
    MalformedMessageError for anything else that fails validation.
    """
    raw = decode_json(data)

    if "type" not in raw:
        raise MalformedMessageError("missing required field: type")
    message_type = raw["type"]
    if not isinstance(message_type, str):
        raise MalformedMessageError(f"type must be a string, got {type(message_type).__name__}")
    if message_type not in _KNOWN_TYPES:
        raise UnknownMessageTypeError(message_type)

    try:
        return parse_server_message(raw)
    except ValidationError as e:
        raise MalformedMessageError(str(e)) from e
