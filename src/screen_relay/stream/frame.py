"""
Frame Data Model
=================

Internal frame representation on the consumer side.

Design Rules:
    - Immutable; a newer frame supersedes, never mutates, an older one
    - Does NOT decode image data
"""

from dataclasses import dataclass

from screen_relay.models.wire import FrameMessage


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Frame received from the relay.

    Attributes:
        frame_id: 1-based per-session sequence number
        timestamp: Relay receive time in milliseconds since the epoch
        data: Base64-encoded JPEG payload (NOT decoded)
    """

    frame_id: int
    timestamp: int
    data: str

    @classmethod
    def from_message(cls, message: FrameMessage) -> "Frame":
        return cls(
            frame_id=message.frame_id,
            timestamp=message.timestamp,
            data=message.data,
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp}, "
            f"size={len(self.data)})"
        )
