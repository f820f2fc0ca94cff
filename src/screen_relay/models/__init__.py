"""
Data Models
===========

Pydantic models and enums shared by the relay and its runtimes.

Models:
    - Role: Connection role (producer, consumer, pass-through)
    - FrameMessage: Relay -> consumer frame message
"""

from screen_relay.models.wire import (
    CLOSE_NORMAL,
    CLOSE_POLICY_VIOLATION,
    FRAME_MESSAGE_TYPE,
    FrameMessage,
    Role,
    connection_url,
)

__all__ = [
    "CLOSE_NORMAL",
    "CLOSE_POLICY_VIOLATION",
    "FRAME_MESSAGE_TYPE",
    "FrameMessage",
    "Role",
    "connection_url",
]
