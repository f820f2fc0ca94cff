"""
Producer Runtime
================

Captures a visual surface on a fixed cadence and pushes JPEG frames to
the relay.

This module provides the ProducerRuntime class which:
    - Connects once to the relay declaring role=producer and a token
    - Captures, downscales and encodes a frame every tick (25/s default)
    - Sends raw JPEG bytes; the relay adds all frame metadata
    - Skips ticks while the transport is not open (no buffering)
    - Stops and exposes an error on abnormal close; never auto-reconnects

Design Rules:
    - Missed ticks are dropped, never caught up
    - Capture/encode failures are isolated to their tick
    - Reconnection is the caller's decision
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

import numpy as np
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake
from websockets.protocol import State

from screen_relay.models.wire import CLOSE_NORMAL, Role, connection_url
from screen_relay.stream.capture import CaptureError, FrameSource
from screen_relay.stream.image_codec import ImageCodecError, encode_jpeg


logger = logging.getLogger(__name__)


class ProducerState(str, Enum):
    """Lifecycle of a producer runtime."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


class ProducerMetrics:
    """Metrics for ProducerRuntime observability."""

    __slots__ = (
        "ticks",
        "frames_sent",
        "ticks_skipped",
        "capture_errors",
        "encode_errors",
        "bytes_sent",
    )

    def __init__(self) -> None:
        self.ticks: int = 0
        self.frames_sent: int = 0
        self.ticks_skipped: int = 0
        self.capture_errors: int = 0
        self.encode_errors: int = 0
        self.bytes_sent: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "ticks": self.ticks,
            "frames_sent": self.frames_sent,
            "ticks_skipped": self.ticks_skipped,
            "capture_errors": self.capture_errors,
            "encode_errors": self.encode_errors,
            "bytes_sent": self.bytes_sent,
        }


class ProducerRuntime:
    """
    Screen producer for one relay session.

    Attributes:
        url: Base WebSocket URL of the relay
        token: Session token
        source: Surface to capture
        state: Current ProducerState
        error: Current error message, or None
        metrics: Operational metrics

    Example:
        producer = ProducerRuntime(
            url="ws://localhost:3001",
            token=generate_token(),
            source=ScreenSource(),
        )

        task = asyncio.create_task(producer.run())
        ...
        await producer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        token: str,
        source: FrameSource,
        frame_rate: int = 25,
        max_width: int = 640,
        jpeg_quality: int = 60,
        open_timeout: float = 10.0,
        close_timeout: float = 2.0,
    ) -> None:
        if frame_rate < 1:
            raise ValueError("frame_rate must be >= 1")

        self.url = url
        self.token = token
        self.source = source
        self.frame_rate = frame_rate
        self.max_width = max_width
        self.jpeg_quality = jpeg_quality
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout

        self._state = ProducerState.IDLE
        self._error: Optional[str] = None
        self._websocket: Optional[websockets.ClientConnection] = None

        self.metrics = ProducerMetrics()

    @property
    def state(self) -> ProducerState:
        return self._state

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def connected(self) -> bool:
        return self._websocket is not None and self._websocket.state is State.OPEN

    @property
    def interval(self) -> float:
        """Seconds between capture ticks."""
        return 1.0 / self.frame_rate

    async def run(self) -> None:
        """
        Connect and stream until the transport closes or stop() is called.

        Returns once the connection is gone. Inspect ``error`` to tell a
        normal stop from a failure. Cancelling run() closes the connection
        normally and leaves the runtime CLOSED, ready for another run().
        """
        if self._state in (ProducerState.CONNECTING, ProducerState.STREAMING):
            raise RuntimeError("ProducerRuntime is already running")

        self._state = ProducerState.CONNECTING
        target = connection_url(self.url, Role.PRODUCER, self.token)
        logger.info(f"Producer connecting to {self.url}")

        try:
            ws = await websockets.connect(
                target,
                open_timeout=self.open_timeout,
                compression=None,
            )
        except (OSError, InvalidHandshake, asyncio.TimeoutError) as e:
            self._fail(f"Unable to connect to relay: {e}")
            return
        except asyncio.CancelledError:
            self._state = ProducerState.CLOSED
            raise

        self._websocket = ws
        self._error = None
        self._state = ProducerState.STREAMING
        logger.info("Stream connection established")

        capture_task = asyncio.create_task(self._capture_loop(ws), name="producer_capture")
        closed_task = asyncio.create_task(ws.wait_closed(), name="producer_closed")
        cancelled = False

        try:
            done, _ = await asyncio.wait(
                {capture_task, closed_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if capture_task in done and capture_task.exception() is not None:
                error = capture_task.exception()
                logger.error(f"Capture loop failed: {error!r}")
                await ws.close(code=1011, reason="capture failed")
                self._fail(f"Capture loop failed: {error}")
                return
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            self._websocket = None
            if cancelled:
                self._state = ProducerState.CLOSED
            for task in (capture_task, closed_task):
                task.cancel()
            await asyncio.gather(capture_task, closed_task, return_exceptions=True)
            if cancelled:
                await self._close_cancelled(ws)

        self._on_closed(ws.close_code, ws.close_reason)

    async def stop(self) -> None:
        """Close the transport normally (code 1000); run() then returns."""
        ws = self._websocket
        if ws is not None:
            logger.info("Producer stopping...")
            await ws.close(code=CLOSE_NORMAL)

    async def _close_cancelled(self, ws: websockets.ClientConnection) -> None:
        logger.info("Producer cancelled, closing stream connection")
        try:
            await asyncio.wait_for(
                ws.close(code=CLOSE_NORMAL, reason="cancelled"),
                timeout=self.close_timeout,
            )
        except (asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Close after cancellation failed: {e!r}")

    async def _capture_loop(self, ws: websockets.ClientConnection) -> None:
        """Fixed-interval tick loop. Overrunning ticks drop missed ticks."""
        loop = asyncio.get_running_loop()
        interval = self.interval
        next_tick = loop.time()

        while True:
            await self._tick(ws)

            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) / interval)
                if missed:
                    self.metrics.ticks_skipped += missed
                    next_tick += missed * interval
            await asyncio.sleep(max(0.0, next_tick - now))

    async def _tick(self, ws: websockets.ClientConnection) -> None:
        self.metrics.ticks += 1

        if ws.state is not State.OPEN:
            self.metrics.ticks_skipped += 1
            return

        try:
            payload = await asyncio.to_thread(self._capture_and_encode)
        except CaptureError as e:
            self.metrics.capture_errors += 1
            logger.warning(f"Error capturing frame: {e}")
            return
        except ImageCodecError as e:
            self.metrics.encode_errors += 1
            logger.error(f"Error encoding frame: {e}")
            return

        if ws.state is not State.OPEN:
            self.metrics.ticks_skipped += 1
            return

        try:
            await ws.send(payload)
        except ConnectionClosed:
            return

        self.metrics.frames_sent += 1
        self.metrics.bytes_sent += len(payload)

    def _capture_and_encode(self) -> bytes:
        image: np.ndarray = self.source.grab()
        return encode_jpeg(image, quality=self.jpeg_quality, max_width=self.max_width)

    def _on_closed(self, code: Optional[int], reason: str) -> None:
        logger.info(f"Stream connection closed {code} {reason}")
        self._state = ProducerState.CLOSED
        if code != CLOSE_NORMAL:
            self._error = f"Connection closed (code {code}: {reason or 'no reason'})"

    def _fail(self, message: str) -> None:
        logger.error(message)
        self._error = message
        self._state = ProducerState.CLOSED
