"""
Test Configuration
==================

Pytest fixtures and helpers for the screen relay tests.
"""

import asyncio
import json
import time
from typing import Callable, List, Optional
from urllib.parse import parse_qs, urlsplit

import numpy as np
import pytest
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from screen_relay.relay import ProducerConflictError, RelayHub


class FakePeer:
    """In-memory Peer that records what the relay sends."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.sent: List[dict] = []
        self.closed: Optional[tuple] = None

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = (code, reason)

    @property
    def frame_ids(self) -> List[int]:
        return [m["frameId"] for m in self.sent]


class WebsocketsPeer:
    """Peer adapter over a websockets server connection."""

    def __init__(self, ws) -> None:
        self.ws = ws

    async def send_text(self, data: str) -> None:
        await self.ws.send(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        await self.ws.close(code, reason or "")


def relay_handler(hub: RelayHub):
    """websockets handler serving the hub like the FastAPI endpoint does."""

    async def handler(ws) -> None:
        query = parse_qs(urlsplit(ws.request.path).query)
        role = query.get("role", [""])[0]
        token = query.get("token", [""])[0]

        try:
            connection = await hub.connect(WebsocketsPeer(ws), role, token)
        except ProducerConflictError as e:
            await ws.close(1008, str(e))
            return

        try:
            async for message in ws:
                await hub.on_producer_message(connection, message)
        except ConnectionClosed:
            pass
        finally:
            await hub.on_disconnect(connection)

    return handler


class LocalRelay:
    """Async context manager running a hub on an ephemeral localhost port."""

    def __init__(self, handler=None, hub: Optional[RelayHub] = None) -> None:
        self.hub = hub or RelayHub(send_timeout=1.0)
        self._handler = handler or relay_handler(self.hub)
        self._server = None
        self.url = ""

    async def __aenter__(self) -> "LocalRelay":
        self._server = await serve(self._handler, "127.0.0.1", 0, compression=None)
        port = self._server.sockets[0].getsockname()[1]
        self.url = f"ws://127.0.0.1:{port}"
        return self

    async def __aexit__(self, *args) -> None:
        self._server.close()
        await self._server.wait_closed()


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll predicate on the event loop until true."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def wait_until_sync(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll predicate from a test thread until true."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.01)


@pytest.fixture
def sample_image():
    """A 1280x720 BGR gradient."""
    x = np.linspace(0, 255, 1280, dtype=np.uint8)
    y = np.linspace(0, 255, 720, dtype=np.uint8)
    image = np.zeros((720, 1280, 3), dtype=np.uint8)
    image[..., 0] = x[np.newaxis, :]
    image[..., 1] = y[:, np.newaxis]
    image[..., 2] = 128
    return image


@pytest.fixture
def small_image():
    """A 320x240 BGR image below the downscale ceiling."""
    image = np.full((240, 320, 3), 90, dtype=np.uint8)
    image[60:180, 80:240] = (20, 200, 40)
    return image
