"""
Relay Module
============

Session-scoped frame relay between one producer and many consumers.

Components:
    - RelayHub: Connect/broadcast/disconnect operations
    - SessionStore / Session: Per-token state with per-session locks
    - Connection: Role-tagged connection handle
    - ProducerConflictError: Second producer for a live session
"""

from screen_relay.relay.session import (
    CachedFrame,
    Connection,
    Peer,
    ProducerConflictError,
    Session,
    SessionStore,
)
from screen_relay.relay.hub import RelayHub, RelayMetrics

__all__ = [
    "CachedFrame",
    "Connection",
    "Peer",
    "ProducerConflictError",
    "RelayHub",
    "RelayMetrics",
    "Session",
    "SessionStore",
]
