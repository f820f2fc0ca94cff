"""
Frame Source Tests
==================
"""

import mss
import mss.exception
import numpy as np
import pytest

from screen_relay.stream.capture import CaptureError, ScreenSource, StaticSource, TestPatternSource


class TestScreenSource:

    def test_unavailable_display_raises_capture_error(self, monkeypatch):
        def no_display(*args, **kwargs):
            raise mss.exception.ScreenShotError("XOpenDisplay() failed")

        monkeypatch.setattr(mss, "mss", no_display)
        source = ScreenSource()

        with pytest.raises(CaptureError):
            source.grab()
        source.close()


class TestSyntheticSources:

    def test_test_pattern_changes_every_grab(self):
        source = TestPatternSource(width=320, height=240)
        first, second = source.grab(), source.grab()
        assert first.shape == (240, 320, 3)
        assert first.dtype == np.uint8
        assert not np.array_equal(first, second)

    def test_static_source_returns_copies(self, small_image):
        source = StaticSource(small_image)
        grabbed = source.grab()
        grabbed[:] = 0
        assert np.array_equal(source.grab(), small_image)
        assert source.grab_count == 2
