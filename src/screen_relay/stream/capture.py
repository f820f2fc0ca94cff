"""
Frame Sources
=============

Visual surfaces the producer can capture.

Sources:
    - ScreenSource: a monitor grabbed with mss
    - TestPatternSource: synthetic moving pattern (no display needed)
    - StaticSource: a fixed image, mainly for tests

All sources return BGR uint8 arrays and may be called from a worker thread.
"""

import logging
import threading
from typing import Optional, Protocol

import cv2
import mss
import mss.exception
import numpy as np


logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when a source cannot produce an image."""
    pass


class FrameSource(Protocol):
    """
    Protocol for capturable surfaces.

    ``grab`` is called once per producer tick, possibly from a worker
    thread, and must not block for longer than a tick.
    """

    def grab(self) -> np.ndarray:
        """Return the current surface as a BGR uint8 array."""
        ...

    def close(self) -> None:
        ...


class ScreenSource:
    """
    Monitor capture via mss.

    mss handles are not shareable across threads, so one is opened per
    calling thread and reused on later grabs from that thread.

    Attributes:
        monitor: mss monitor index (0 = union of all monitors)
    """

    def __init__(self, monitor: int = 1) -> None:
        self.monitor = monitor
        self._local = threading.local()
        self._handles = []
        self._handles_lock = threading.Lock()

    def _handle(self) -> "mss.base.MSSBase":
        sct = getattr(self._local, "sct", None)
        if sct is None:
            sct = mss.mss()
            self._local.sct = sct
            with self._handles_lock:
                self._handles.append(sct)
        return sct

    def grab(self) -> np.ndarray:
        try:
            sct = self._handle()
            monitors = sct.monitors
            index = self.monitor if self.monitor < len(monitors) else 0
            shot = sct.grab(monitors[index])
        except mss.exception.ScreenShotError as e:
            raise CaptureError(f"mss.grab failed: {e}")

        arr = np.frombuffer(shot.bgra, dtype=np.uint8).reshape((shot.height, shot.width, 4))
        return np.ascontiguousarray(arr[..., :3])

    def close(self) -> None:
        with self._handles_lock:
            handles, self._handles = self._handles, []
        for sct in handles:
            sct.close()


class TestPatternSource:
    """Synthetic source: a sweeping bar and a tick counter."""

    __test__ = False  # not a pytest class

    def __init__(self, width: int = 1280, height: int = 720) -> None:
        self.width = width
        self.height = height
        self._tick = 0

    def grab(self) -> np.ndarray:
        self._tick += 1
        image = np.full((self.height, self.width, 3), 24, dtype=np.uint8)
        bar_x = (self._tick * 16) % self.width
        cv2.rectangle(image, (bar_x, 0), (min(self.width, bar_x + 40), self.height), (0, 160, 255), -1)
        cv2.putText(
            image, f"tick {self._tick}", (40, 80),
            cv2.FONT_HERSHEY_SIMPLEX, 2.0, (255, 255, 255), 3, cv2.LINE_AA,
        )
        return image

    def close(self) -> None:
        pass


class StaticSource:
    """Always returns a copy of the same image."""

    def __init__(self, image: np.ndarray) -> None:
        self._image = image
        self.grab_count = 0
        self.fail_next: Optional[Exception] = None

    def grab(self) -> np.ndarray:
        self.grab_count += 1
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        return self._image.copy()

    def close(self) -> None:
        pass
