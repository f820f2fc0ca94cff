"""
Relay Hub
=========

Connection classification, latest-frame caching and broadcast fan-out.

The hub is transport agnostic: it talks to peers through the Peer
protocol, so the same logic serves the FastAPI endpoint and tests.

Design Rules:
    - One broadcast per session at a time (session lock held across fan-out)
    - Send failures are isolated per consumer; the consumer is dropped
    - No retries and no queuing; at most one cached frame per session
    - A second producer for a live session is rejected
"""

import asyncio
import base64
import logging
import time
from typing import List, Optional, Union

from screen_relay.models.wire import FrameMessage, Role
from screen_relay.relay.session import (
    CachedFrame,
    Connection,
    Peer,
    ProducerConflictError,
    SessionStore,
)


logger = logging.getLogger(__name__)

# Consumer close code used after a failed send (internal error)
CLOSE_SEND_FAILED = 1011


class RelayMetrics:
    """Counters for relay observability."""

    __slots__ = (
        "frames_broadcast",
        "frames_delivered",
        "send_failures",
        "rejected_producers",
    )

    def __init__(self) -> None:
        self.frames_broadcast: int = 0
        self.frames_delivered: int = 0
        self.send_failures: int = 0
        self.rejected_producers: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_broadcast": self.frames_broadcast,
            "frames_delivered": self.frames_delivered,
            "send_failures": self.send_failures,
            "rejected_producers": self.rejected_producers,
        }


class RelayHub:
    """
    Session-scoped frame relay.

    Attributes:
        sessions: Token -> Session store
        metrics: Operational counters
        send_timeout: Seconds a single consumer send may take
        log_every: Emit a broadcast diagnostic every N frames

    Example:
        hub = RelayHub(send_timeout=2.0)

        producer = await hub.connect(websocket, "producer", "abc")
        await hub.on_producer_message(producer, jpeg_bytes)
        await hub.on_disconnect(producer)
    """

    def __init__(self, send_timeout: float = 2.0, log_every: int = 25) -> None:
        if send_timeout <= 0:
            raise ValueError("send_timeout must be > 0")

        self.sessions = SessionStore()
        self.metrics = RelayMetrics()
        self.send_timeout = send_timeout
        self.log_every = log_every

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(
        self,
        peer: Peer,
        role: Union[str, Role],
        token: str,
    ) -> Connection:
        """
        Register a new connection.

        Args:
            peer: Transport for the connection
            role: "producer", "consumer" or anything else (pass-through)
            token: Opaque session token

        Returns:
            Connection handle to pass to the other hub operations

        Raises:
            ProducerConflictError: A producer is already active for token
        """
        if not isinstance(role, Role):
            role = Role.parse(role)

        connection = Connection(peer=peer, role=role, token=token)

        if role is Role.PRODUCER:
            async with self.sessions.locked(token) as session:
                if session.producer is not None:
                    self.metrics.rejected_producers += 1
                    logger.warning(
                        f"Rejected second producer for session {token!r} "
                        f"(active: {session.producer})"
                    )
                    raise ProducerConflictError(token)
                session.producer = connection
                session.clear_cache()
            logger.info(f"Producer connected (session={token!r})")

        elif role is Role.CONSUMER:
            await self.on_consumer_connect(connection)

        else:
            logger.info(f"Pass-through connection accepted (session={token!r})")

        return connection

    async def on_consumer_connect(self, connection: Connection) -> None:
        """
        Add a consumer and replay the cached frame to it.

        The replay happens under the session lock, so no broadcast can
        interleave and the consumer never sees a lower frame id later.
        """
        failed = False

        async with self.sessions.locked(connection.token) as session:
            session.consumers.add(connection)
            logger.info(
                f"Consumer connected (session={connection.token!r}), "
                f"total consumers: {self.consumer_count()}"
            )

            if session.latest is not None:
                if await self._send(connection, session.latest.wire):
                    logger.info(
                        f"Sent cached frame to consumer "
                        f"(frameId: {session.latest.frame_id})"
                    )
                else:
                    session.consumers.discard(connection)
                    failed = True
            else:
                logger.info("No frame available yet for consumer")

        if failed:
            await self._close_failed(connection)

    async def on_disconnect(self, connection: Connection) -> None:
        """
        Remove a connection from its session.

        When the session's producer leaves, the cached frame and the
        frame counter are cleared.
        """
        async with self.sessions.locked(connection.token) as session:
            if connection.role is Role.PRODUCER:
                if session.producer is connection:
                    session.producer = None
                    session.clear_cache()
                    logger.info(f"Producer disconnected (session={connection.token!r})")
            elif connection.role is Role.CONSUMER:
                session.consumers.discard(connection)
                logger.info(
                    f"Consumer disconnected (session={connection.token!r}), "
                    f"remaining: {len(session.consumers)}"
                )

    # -------------------------------------------------------------------------
    # Broadcast
    # -------------------------------------------------------------------------

    async def on_producer_message(
        self,
        connection: Connection,
        payload: Union[bytes, str, None],
    ) -> Optional[FrameMessage]:
        """
        Wrap a producer payload as the next frame and fan it out.

        Args:
            connection: Producer connection that received the payload
            payload: Raw encoded image bytes, or base64 text

        Returns:
            The broadcast FrameMessage, or None if the payload was ignored
        """
        if connection.role is not Role.PRODUCER or not payload:
            return None

        if isinstance(payload, (bytes, bytearray)):
            data = base64.b64encode(payload).decode("ascii")
        else:
            data = payload

        async with self.sessions.locked(connection.token) as session:
            if session.producer is not connection:
                logger.warning(f"Ignoring frame from inactive producer {connection}")
                return None

            message = FrameMessage(
                data=data,
                timestamp=int(time.time() * 1000),
                frame_id=session.next_frame_id(),
            )
            cached = CachedFrame(message=message, wire=message.to_wire())
            session.latest = cached

            recipients = [c for c in session.consumers if c is not connection]
            failed = await self._fan_out(recipients, cached.wire)
            for consumer in failed:
                session.consumers.discard(consumer)

            sent_count = len(recipients) - len(failed)
            self.metrics.frames_broadcast += 1
            self.metrics.frames_delivered += sent_count

            if self.log_every and message.frame_id % self.log_every == 0:
                logger.info(
                    f"Frame {message.frame_id} broadcasted to {sent_count} consumers "
                    f"(total consumers: {self.consumer_count()})"
                )

        for consumer in failed:
            await self._close_failed(consumer)

        return message

    async def _fan_out(self, recipients: List[Connection], wire: str) -> List[Connection]:
        """Send to every recipient concurrently; return those that failed."""
        if not recipients:
            return []

        results = await asyncio.gather(
            *(self._send(consumer, wire) for consumer in recipients)
        )
        return [c for c, ok in zip(recipients, results) if not ok]

    async def _send(self, connection: Connection, wire: str) -> bool:
        try:
            await asyncio.wait_for(
                connection.peer.send_text(wire),
                timeout=self.send_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send to {connection} timed out, dropping consumer")
        except Exception as e:
            logger.warning(f"Error sending frame to {connection}: {e}")
        self.metrics.send_failures += 1
        return False

    async def _close_failed(self, connection: Connection) -> None:
        try:
            await asyncio.wait_for(
                connection.peer.close(code=CLOSE_SEND_FAILED, reason="send failed"),
                timeout=self.send_timeout,
            )
        except Exception as e:
            logger.debug(f"Close of dropped consumer {connection} failed: {e}")

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def consumer_count(self) -> int:
        """Total consumers across all sessions."""
        return sum(len(s.consumers) for s in self.sessions)

    def has_producer(self, token: str) -> bool:
        session = self.sessions.get(token)
        return session is not None and session.producer is not None

    def latest_frame_id(self, token: str) -> Optional[int]:
        session = self.sessions.get(token)
        if session is None or session.latest is None:
            return None
        return session.latest.frame_id

    def snapshot(self) -> dict:
        """Relay-wide gauges plus counters."""
        sessions = list(self.sessions)
        return {
            "sessions": len(sessions),
            "producers": sum(1 for s in sessions if s.producer is not None),
            "consumers": sum(len(s.consumers) for s in sessions),
            **self.metrics.to_dict(),
        }
