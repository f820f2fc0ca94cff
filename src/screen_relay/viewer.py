"""
Screen Relay Viewer
===================

OpenCV window presenting the frames of one relay session.

Architecture:
    Thread 1 (daemon) : ConsumerRuntime on its own event loop
    Main thread       : cv2.imshow render loop

The consumer's render pipeline hands decoded images to the window
through a lock-guarded slot; the window always shows the newest one.

Controls: q/ESC quit, r reconnect after a disconnect, s print stats
"""

import asyncio
import logging
import threading
from typing import Optional

import cv2
import numpy as np

from screen_relay.stream.consumer import ConsumerRuntime, ConsumerState
from screen_relay.stream.frame import Frame


logger = logging.getLogger(__name__)

WINDOW_NAME = "Screen Relay"


class MirrorViewer:
    """
    Desktop viewer for a relay session.

    Example:
        MirrorViewer("ws://192.168.1.20:3001", token).run()
    """

    def __init__(self, url: str, token: str, refresh_ms: int = 15) -> None:
        self.url = url
        self.token = token
        self.refresh_ms = refresh_ms

        self._lock = threading.Lock()
        self._image: Optional[np.ndarray] = None
        self._frame_id: int = 0

        self.consumer = ConsumerRuntime(url, token, on_frame=self._on_frame)
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # -------------------------------------------------------------------------
    # Consumer thread
    # -------------------------------------------------------------------------

    def _on_frame(self, image: np.ndarray, frame: Frame) -> None:
        with self._lock:
            self._image = image
            self._frame_id = frame.frame_id

    def _consumer_thread(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        try:
            loop.run_until_complete(self.consumer.run())
        finally:
            self._loop = None
            loop.close()

    def connect(self, join_timeout: float = 2.0) -> None:
        """Start (or restart) the consumer in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            if self.consumer.state is not ConsumerState.CLOSED:
                return
            # CLOSED is set before run() returns; let the old thread finish
            self._thread.join(timeout=join_timeout)
            if self._thread.is_alive():
                logger.warning("Previous consumer thread is still running, not reconnecting")
                return
        self._thread = threading.Thread(target=self._consumer_thread, daemon=True)
        self._thread.start()

    def disconnect(self, timeout: float = 5.0) -> None:
        loop = self._loop
        if loop is not None and self.consumer.connected:
            future = asyncio.run_coroutine_threadsafe(self.consumer.stop(), loop)
            future.result(timeout=timeout)
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    # -------------------------------------------------------------------------
    # Render loop
    # -------------------------------------------------------------------------

    def _status_canvas(self) -> np.ndarray:
        blank = np.full((480, 640, 3), 30, dtype=np.uint8)
        state = self.consumer.state
        if state is ConsumerState.CLOSED:
            text = "Disconnected - press r to reconnect"
        else:
            text = "Waiting for frames..."
        cv2.putText(blank, text, (40, 240),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.7, (160, 160, 160), 2)
        error = self.consumer.error
        if error:
            cv2.putText(blank, error[:70], (40, 280),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.45, (60, 60, 220), 1, cv2.LINE_AA)
        return blank

    def _draw_status(self, image: np.ndarray, frame_id: int) -> np.ndarray:
        canvas = image.copy()
        dot = (0, 180, 0) if self.consumer.connected else (0, 0, 180)
        cv2.circle(canvas, (12, 12), 5, dot, -1)
        cv2.putText(canvas, f"#{frame_id}", (24, 17),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.4, (255, 255, 255), 1, cv2.LINE_AA)
        return canvas

    def run(self) -> None:
        """Show the window until the user quits."""
        self.connect()

        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, 960, 640)

        try:
            while True:
                with self._lock:
                    image, frame_id = self._image, self._frame_id

                if image is not None and self.consumer.connected:
                    cv2.imshow(WINDOW_NAME, self._draw_status(image, frame_id))
                else:
                    cv2.imshow(WINDOW_NAME, self._status_canvas())

                key = cv2.waitKey(self.refresh_ms) & 0xFF
                if key == ord("q") or key == 27:
                    break
                elif key == ord("r"):
                    if self.consumer.state is ConsumerState.CLOSED:
                        logger.info("Reconnecting...")
                        with self._lock:
                            self._image = None
                        self.connect()
                elif key == ord("s"):
                    logger.info(f"Consumer stats: {self.consumer.metrics.to_dict()}")
        finally:
            self.disconnect()
            cv2.destroyAllWindows()
