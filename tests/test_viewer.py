"""
Viewer Tests
============

Consumer thread management of the OpenCV viewer (no window is opened).
"""

import threading

from screen_relay.stream.consumer import ConsumerState
from screen_relay.viewer import MirrorViewer


class TestReconnect:

    def test_reconnect_waits_for_exiting_consumer_thread(self):
        viewer = MirrorViewer("ws://127.0.0.1:1", "abc")
        release = threading.Event()
        old_thread = threading.Thread(target=release.wait, args=(5,), daemon=True)
        old_thread.start()
        viewer._thread = old_thread
        viewer.consumer._state = ConsumerState.CLOSED

        started = threading.Event()
        viewer._consumer_thread = started.set
        threading.Timer(0.1, release.set).start()

        viewer.connect()

        assert not old_thread.is_alive()
        assert viewer._thread is not old_thread
        assert started.wait(timeout=2)

    def test_connect_is_noop_while_consumer_is_running(self):
        viewer = MirrorViewer("ws://127.0.0.1:1", "abc")
        release = threading.Event()
        running = threading.Thread(target=release.wait, args=(5,), daemon=True)
        running.start()
        viewer._thread = running
        viewer.consumer._state = ConsumerState.CONNECTED

        viewer.connect()

        assert viewer._thread is running
        release.set()
        running.join()
