"""
Relay Sessions
==============

Session-scoped relay state keyed by the producer's opaque token.

Each Session holds:
    - at most one active producer connection
    - zero or more consumer connections
    - the latest broadcast frame and the frame counter

All mutation of a session happens while holding that session's lock,
acquired through SessionStore.locked(). Independent sessions never
contend with each other.

Lifecycle:
    - Created on first use of a token (producer or waiting consumer)
    - Cache and counter cleared when the producer disconnects
    - Dropped from the store once it has no producer and no consumers
"""

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterator, Optional, Protocol, Set

from screen_relay.models.wire import FrameMessage, Role


logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class Peer(Protocol):
    """
    Transport seen by the relay.

    Satisfied by starlette's WebSocket and by thin adapters over other
    WebSocket servers.
    """

    async def send_text(self, data: str) -> None:
        ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        ...


class ProducerConflictError(Exception):
    """Raised when a second producer connects to a session that has one."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Producer already active for session {token!r}")
        self.token = token


@dataclass(eq=False)
class Connection:
    """
    A role-tagged connection owned by the relay.

    Compared and hashed by identity.
    """

    peer: Peer
    role: Role
    token: str
    connection_id: int = field(default_factory=lambda: next(_connection_ids))

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id}, role={self.role.value}, "
            f"token={self.token!r})"
        )


@dataclass(frozen=True)
class CachedFrame:
    """Latest broadcast frame with its serialized wire form."""

    message: FrameMessage
    wire: str

    @property
    def frame_id(self) -> int:
        return self.message.frame_id


@dataclass(eq=False)
class Session:
    """Per-token relay state. Guard every access with ``lock``."""

    token: str
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    producer: Optional[Connection] = None
    consumers: Set[Connection] = field(default_factory=set)
    latest: Optional[CachedFrame] = None
    frame_counter: int = 0

    @property
    def is_idle(self) -> bool:
        """True when nothing references this session any more."""
        return self.producer is None and not self.consumers

    def next_frame_id(self) -> int:
        self.frame_counter += 1
        return self.frame_counter

    def clear_cache(self) -> None:
        """Forget the latest frame and restart numbering at 1."""
        self.latest = None
        self.frame_counter = 0


class SessionStore:
    """
    Mapping of token -> Session with per-session serialization.

    Example:
        store = SessionStore()

        async with store.locked("abc") as session:
            session.consumers.add(connection)
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, token: str) -> Optional[Session]:
        """Return the live session for a token, if any. Unlocked read."""
        return self._sessions.get(token)

    @asynccontextmanager
    async def locked(self, token: str) -> AsyncIterator[Session]:
        """
        Acquire the session for ``token``, creating it if needed.

        An idle session is removed from the store on exit. Waiters that
        acquire a removed session's lock retry against the current one.
        """
        while True:
            session = self._sessions.get(token)
            if session is None:
                session = Session(token=token)
                self._sessions[token] = session
            await session.lock.acquire()
            if self._sessions.get(token) is session:
                break
            session.lock.release()

        try:
            yield session
        finally:
            if session.is_idle and self._sessions.get(token) is session:
                del self._sessions[token]
                logger.debug(f"Session {token!r} released")
            session.lock.release()
