"""
Stream Module
=============

Producer and consumer runtimes plus the image plumbing they share.

This module provides:
    - Frame: Immutable frame received from the relay
    - PendingSlot: Single-slot overwrite buffer (drop-latest)
    - RenderPipeline / ConsumerRuntime: Viewer side
    - ProducerRuntime: Capture side
    - Frame sources and the JPEG codec

Example:
    from screen_relay.stream import ConsumerRuntime

    consumer = ConsumerRuntime(
        url="ws://localhost:3001",
        token="abc",
        on_frame=lambda image, frame: show(image),
    )
    task = asyncio.create_task(consumer.run())
"""

from screen_relay.stream.frame import Frame
from screen_relay.stream.slot import PendingSlot
from screen_relay.stream.image_codec import (
    ImageCodecError,
    decode_jpeg,
    downscale,
    encode_jpeg,
)
from screen_relay.stream.capture import (
    CaptureError,
    FrameSource,
    ScreenSource,
    StaticSource,
    TestPatternSource,
)
from screen_relay.stream.consumer import (
    ConsumerMetrics,
    ConsumerRuntime,
    ConsumerState,
    RenderPipeline,
)
from screen_relay.stream.producer import (
    ProducerMetrics,
    ProducerRuntime,
    ProducerState,
)


__all__ = [
    "CaptureError",
    "ConsumerMetrics",
    "ConsumerRuntime",
    "ConsumerState",
    "Frame",
    "FrameSource",
    "ImageCodecError",
    "PendingSlot",
    "ProducerMetrics",
    "ProducerRuntime",
    "ProducerState",
    "RenderPipeline",
    "ScreenSource",
    "StaticSource",
    "TestPatternSource",
    "decode_jpeg",
    "downscale",
    "encode_jpeg",
]
