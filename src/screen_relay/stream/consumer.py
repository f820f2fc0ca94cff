"""
Consumer Runtime
================

Receives frames from the relay and presents only the most recent one.

This module provides:
    - RenderPipeline: drop-latest decode/present loop over a PendingSlot
    - ConsumerRuntime: explicit connection state machine around it

State machine:
    IDLE -> CONNECTING -> CONNECTED <-> RENDERING
    CONNECTING | CONNECTED | RENDERING -> CLOSED
    CLOSED -> CONNECTING (caller-driven reconnect)

Design Rules:
    - At most one decode in flight and one frame pending
    - A newer frame overwrites the pending one (never queued)
    - Unknown message types are ignored
    - Decode failures are isolated; the connection stays up
    - No automatic reconnection
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedError, InvalidHandshake

from screen_relay.models.wire import (
    CLOSE_NORMAL,
    FRAME_MESSAGE_TYPE,
    FrameMessage,
    Role,
    connection_url,
)
from screen_relay.stream.frame import Frame
from screen_relay.stream.image_codec import ImageCodecError, decode_jpeg
from screen_relay.stream.slot import PendingSlot


logger = logging.getLogger(__name__)

Decoder = Callable[[str], Any]
Presenter = Callable[[Any, Frame], None]


class ConsumerState(str, Enum):
    """Lifecycle of a consumer runtime."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RENDERING = "rendering"
    CLOSED = "closed"


_TRANSITIONS: Dict[ConsumerState, frozenset] = {
    ConsumerState.IDLE: frozenset({ConsumerState.CONNECTING}),
    ConsumerState.CONNECTING: frozenset({ConsumerState.CONNECTED, ConsumerState.CLOSED}),
    ConsumerState.CONNECTED: frozenset({ConsumerState.RENDERING, ConsumerState.CLOSED}),
    ConsumerState.RENDERING: frozenset({ConsumerState.CONNECTED, ConsumerState.CLOSED}),
    ConsumerState.CLOSED: frozenset({ConsumerState.CONNECTING}),
}


class ConsumerMetrics:
    """Metrics for ConsumerRuntime observability."""

    __slots__ = (
        "frames_received",
        "frames_rendered",
        "frames_dropped",
        "decode_errors",
        "parse_errors",
        "ignored_messages",
        "last_frame_id",
        "last_rendered_id",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.frames_rendered: int = 0
        self.frames_dropped: int = 0
        self.decode_errors: int = 0
        self.parse_errors: int = 0
        self.ignored_messages: int = 0
        self.last_frame_id: int = 0
        self.last_rendered_id: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "frames_rendered": self.frames_rendered,
            "frames_dropped": self.frames_dropped,
            "decode_errors": self.decode_errors,
            "parse_errors": self.parse_errors,
            "ignored_messages": self.ignored_messages,
            "last_frame_id": self.last_frame_id,
            "last_rendered_id": self.last_rendered_id,
        }


class RenderPipeline:
    """
    Drop-latest decode and present loop.

    ``decode`` runs in a worker thread; ``present`` runs on the event loop
    with the decoded image and its Frame.

    Example:
        pipeline = RenderPipeline(present=lambda image, frame: show(image))
        pipeline.submit(frame)       # starts decoding
        pipeline.submit(newer)       # pending
        pipeline.submit(newest)      # replaces `newer`
        await pipeline.wait_idle()   # frame, then newest, were presented
    """

    def __init__(
        self,
        decode: Decoder = decode_jpeg,
        present: Optional[Presenter] = None,
        metrics: Optional[ConsumerMetrics] = None,
        on_busy: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._decode = decode
        self._present = present
        self._on_busy = on_busy
        self.metrics = metrics or ConsumerMetrics()
        self.slot: PendingSlot[Frame] = PendingSlot()
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def busy(self) -> bool:
        """True while a decode is in flight."""
        return self._task is not None and not self._task.done()

    def submit(self, frame: Frame) -> None:
        """Render frame now, or park it in the slot if a decode is in flight."""
        if self.busy:
            discarded = self.slot.put(frame)
            if discarded is not None:
                self.metrics.frames_dropped += 1
                logger.debug(f"Dropped pending {discarded} in favour of {frame}")
            return

        self._idle.clear()
        if self._on_busy:
            self._on_busy(True)
        self._task = asyncio.create_task(self._render_from(frame), name="consumer_render")

    async def _render_from(self, frame: Frame) -> None:
        current: Optional[Frame] = frame
        try:
            while current is not None:
                try:
                    image = await asyncio.to_thread(self._decode, current.data)
                except ImageCodecError as e:
                    self.metrics.decode_errors += 1
                    logger.warning(f"Error decoding frame {current.frame_id}: {e}")
                    self.slot.clear()
                    break

                self.metrics.frames_rendered += 1
                self.metrics.last_rendered_id = current.frame_id
                if self._present is not None:
                    try:
                        self._present(image, current)
                    except Exception:
                        logger.exception(f"Presenter failed for frame {current.frame_id}")

                current = self.slot.take()
        finally:
            self._idle.set()
            if self._on_busy:
                self._on_busy(False)

    async def wait_idle(self) -> None:
        """Wait until no decode is in flight and nothing is pending."""
        await self._idle.wait()

    async def close(self) -> None:
        """Abandon any in-flight decode and the pending frame."""
        self.slot.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


class ConsumerRuntime:
    """
    WebSocket consumer for one relay session.

    Attributes:
        url: Base WebSocket URL of the relay
        token: Session token
        state: Current ConsumerState
        error: Current error message, or None
        metrics: Operational metrics

    Example:
        def show(image, frame):
            cv2.imshow("relay", image)

        consumer = ConsumerRuntime("ws://localhost:3001", "abc", on_frame=show)
        task = asyncio.create_task(consumer.run())
        ...
        await consumer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        token: str,
        on_frame: Optional[Presenter] = None,
        decode: Decoder = decode_jpeg,
        max_message_bytes: int = 16 * 1024 * 1024,
        open_timeout: float = 10.0,
        close_timeout: float = 2.0,
    ) -> None:
        self.url = url
        self.token = token
        self.max_message_bytes = max_message_bytes
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout

        self._state = ConsumerState.IDLE
        self._error: Optional[str] = None
        self._websocket: Optional[websockets.ClientConnection] = None

        self.metrics = ConsumerMetrics()
        self._on_frame = on_frame
        self._decode = decode
        self._pipeline: Optional[RenderPipeline] = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def connected(self) -> bool:
        return self._state in (ConsumerState.CONNECTED, ConsumerState.RENDERING)

    def _transition(self, new_state: ConsumerState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid consumer transition {self._state.value} -> {new_state.value}"
            )
        logger.debug(f"Consumer state {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _set_rendering(self, busy: bool) -> None:
        if busy and self._state is ConsumerState.CONNECTED:
            self._transition(ConsumerState.RENDERING)
        elif not busy and self._state is ConsumerState.RENDERING:
            self._transition(ConsumerState.CONNECTED)

    async def run(self) -> None:
        """
        Connect and consume until the transport closes or stop() is called.

        Cancelling run() closes the connection normally and leaves the
        runtime CLOSED, so a later run() can reconnect.

        Raises:
            RuntimeError: If already connecting or connected
        """
        self._transition(ConsumerState.CONNECTING)
        target = connection_url(self.url, Role.CONSUMER, self.token)
        logger.info(f"Connecting to stream server: {self.url}")

        try:
            ws = await websockets.connect(
                target,
                open_timeout=self.open_timeout,
                max_size=self.max_message_bytes,
                compression=None,
            )
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            self._fail(f"Unable to connect to relay: {e}")
            return
        except asyncio.CancelledError:
            self._transition(ConsumerState.CLOSED)
            raise

        self._websocket = ws
        self._error = None
        self._pipeline = RenderPipeline(
            decode=self._decode,
            present=self._on_frame,
            metrics=self.metrics,
            on_busy=self._set_rendering,
        )
        self._transition(ConsumerState.CONNECTED)
        logger.info("Connected to stream")

        cancelled = False
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosedError as e:
            logger.warning(f"Connection closed with error: {e}")
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            self._websocket = None
            await self._pipeline.close()
            if cancelled:
                self._transition(ConsumerState.CLOSED)
                await self._close_cancelled(ws)

        self._on_closed(ws.close_code, ws.close_reason)

    async def stop(self) -> None:
        """Close the transport normally (code 1000); run() then returns."""
        ws = self._websocket
        if ws is not None:
            logger.info("Consumer stopping...")
            await ws.close(code=CLOSE_NORMAL)

    async def _close_cancelled(self, ws: websockets.ClientConnection) -> None:
        logger.info("Consumer cancelled, closing stream connection")
        try:
            await asyncio.wait_for(
                ws.close(code=CLOSE_NORMAL, reason="cancelled"),
                timeout=self.close_timeout,
            )
        except (asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Close after cancellation failed: {e!r}")

    async def wait_idle(self) -> None:
        """Wait for the render pipeline to drain."""
        if self._pipeline is not None:
            await self._pipeline.wait_idle()

    def _handle_message(self, raw: Any) -> None:
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.metrics.parse_errors += 1
            logger.error(f"Failed to parse message JSON: {e}")
            return

        if not isinstance(payload, dict):
            self.metrics.parse_errors += 1
            logger.error(f"Unexpected message shape: {type(payload).__name__}")
            return

        if payload.get("type") != FRAME_MESSAGE_TYPE:
            self.metrics.ignored_messages += 1
            logger.debug(f"Ignoring message of type {payload.get('type')!r}")
            return

        try:
            message = FrameMessage.model_validate(payload)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid frame structure: {e}")
            return

        frame = Frame.from_message(message)
        self._check_order(frame)

        self.metrics.frames_received += 1
        self.metrics.last_frame_id = frame.frame_id
        self._pipeline.submit(frame)

    def _check_order(self, frame: Frame) -> None:
        """Log frame id regressions. Frames are never rejected."""
        last = self.metrics.last_frame_id
        if last and frame.frame_id <= last:
            if frame.frame_id == 1:
                logger.info("Frame numbering restarted, new producer for session")
            else:
                logger.warning(
                    f"Frame ID went backwards: got {frame.frame_id}, previous was {last}"
                )

    def _on_closed(self, code: Optional[int], reason: str) -> None:
        logger.info(f"Stream disconnected {code} {reason}")
        self._transition(ConsumerState.CLOSED)
        if code != CLOSE_NORMAL:
            self._error = f"Connection closed by server (code {code}: {reason or 'no reason'})"

    def _fail(self, message: str) -> None:
        logger.error(message)
        self._error = message
        self._transition(ConsumerState.CLOSED)
