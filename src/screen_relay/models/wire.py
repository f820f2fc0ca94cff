"""
Wire Schema
===========

This module defines the messages exchanged between the relay and its peers.

Connection Contract:
    ws://<host>:<port>/?role=producer|consumer&token=<opaque-string>

Producer -> Relay:
    Raw encoded image bytes (binary) or base64 text. No envelope.

Relay -> Consumer:
    {
        "type": "frame",
        "data": "<base64 JPEG>",
        "timestamp": 1707321234567,
        "frameId": 42
    }

Guarantees (from the relay):
    - frameId is 1-based and increases per session
    - frameId restarts at 1 when a new producer takes over the session
    - timestamp is the relay receive time in integer milliseconds

Consumers must ignore any ``type`` they do not recognise.
"""

from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, Field


FRAME_MESSAGE_TYPE = "frame"

# WebSocket close codes
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008


class Role(str, Enum):
    """Connection role declared in the ``role`` query parameter."""

    PRODUCER = "producer"
    CONSUMER = "consumer"
    PASSTHROUGH = "passthrough"

    @classmethod
    def parse(cls, value: str) -> "Role":
        """Map a query value onto a role; anything unknown is pass-through."""
        if value == cls.PRODUCER.value:
            return cls.PRODUCER
        if value == cls.CONSUMER.value:
            return cls.CONSUMER
        return cls.PASSTHROUGH


class FrameMessage(BaseModel):
    """
    Schema for frame messages sent by the relay to consumers.

    Attributes:
        type: Message discriminator (always "frame")
        data: Base64-encoded image payload
        timestamp: Relay receive time in milliseconds since the epoch
        frame_id: 1-based per-session sequence number (``frameId`` on the wire)
    """

    type: str = Field(
        default=FRAME_MESSAGE_TYPE,
        description="Message discriminator",
    )

    data: str = Field(
        ...,
        description="Base64-encoded image payload",
    )

    timestamp: int = Field(
        ...,
        ge=0,
        description="Relay receive time in integer milliseconds",
    )

    frame_id: int = Field(
        ...,
        ge=1,
        alias="frameId",
        description="Per-session frame sequence number",
    )

    class Config:
        """Pydantic model configuration."""

        populate_by_name = True
        json_schema_extra = {
            "example": {
                "type": "frame",
                "data": "/9j/4AAQSkZJRg...",
                "timestamp": 1707321234567,
                "frameId": 42,
            }
        }

    def to_wire(self) -> str:
        """Serialize with wire field names."""
        return self.model_dump_json(by_alias=True)


def connection_url(base_url: str, role: Role, token: str) -> str:
    """
    Build the relay URL for a role, keeping any existing query parameters.

    Example:
        connection_url("ws://10.0.0.5:3001", Role.CONSUMER, "abc")
        # -> "ws://10.0.0.5:3001?role=consumer&token=abc"
    """
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query))
    query["role"] = role.value
    query["token"] = token
    return urlunsplit(parts._replace(query=urlencode(query)))
