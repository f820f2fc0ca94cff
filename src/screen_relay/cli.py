"""
Command Line Interface
======================

Usage:
    screen-relay serve [--host HOST] [--port PORT]
    screen-relay produce [--url URL] [--token TOKEN] [--fps N] [--test-pattern]
    screen-relay view --token TOKEN [--url URL]
    screen-relay share-url --token TOKEN
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import List, Optional

from screen_relay.config import settings
from screen_relay.netaddr import build_share_url, discover_local_ip, generate_token
from screen_relay.stream.capture import ScreenSource, TestPatternSource
from screen_relay.stream.producer import ProducerRuntime


logger = logging.getLogger(__name__)


def _share_url(token: str) -> str:
    host = discover_local_ip(settings.share.local_ip)
    return build_share_url(
        token,
        scheme=settings.share.scheme,
        port=settings.share.port,
        host=host,
    )


async def _produce(producer: ProducerRuntime, report_interval: float) -> None:
    task = asyncio.create_task(producer.run(), name="producer")
    last_report = time.time()
    try:
        while not task.done():
            await asyncio.sleep(0.5)
            if report_interval and time.time() - last_report >= report_interval:
                logger.info(f"Producer stats: {producer.metrics.to_dict()}")
                last_report = time.time()
    finally:
        if not task.done():
            await producer.stop()
        await task


def cmd_serve(args: argparse.Namespace) -> int:
    from screen_relay.main import serve

    serve(host=args.host, port=args.port)
    return 0


def cmd_produce(args: argparse.Namespace) -> int:
    token = args.token or generate_token()
    source = TestPatternSource() if args.test_pattern else ScreenSource(monitor=args.monitor)

    producer = ProducerRuntime(
        url=args.url,
        token=token,
        source=source,
        frame_rate=args.fps,
        max_width=args.max_width,
        jpeg_quality=args.quality,
    )

    print(f"Session token: {token}")
    print(f"Share URL:     {_share_url(token)}")

    try:
        asyncio.run(_produce(producer, args.report_interval))
    except KeyboardInterrupt:
        logger.info("Producer interrupted by user")
    finally:
        source.close()

    if producer.error:
        print(f"Stream error: {producer.error}", file=sys.stderr)
        return 1
    return 0


def cmd_view(args: argparse.Namespace) -> int:
    from screen_relay.viewer import MirrorViewer

    viewer = MirrorViewer(args.url, args.token)
    viewer.run()
    return 1 if viewer.consumer.error else 0


def cmd_share_url(args: argparse.Namespace) -> int:
    print(_share_url(args.token))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screen-relay",
        description="Mirror a screen to LAN viewers through a frame relay",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the relay server")
    serve.add_argument("--host", type=str, default=None, help="Bind host")
    serve.add_argument("--port", type=int, default=None, help="Bind port")
    serve.set_defaults(func=cmd_serve)

    produce = sub.add_parser("produce", help="Stream this screen to the relay")
    produce.add_argument("--url", type=str, default=settings.producer.relay_url,
                         help="Relay WebSocket URL")
    produce.add_argument("--token", type=str, default=None,
                         help="Session token (random if omitted)")
    produce.add_argument("--fps", type=int, default=settings.producer.frame_rate,
                         help="Captures per second")
    produce.add_argument("--max-width", type=int, default=settings.producer.max_width,
                         help="Downscale frames wider than this")
    produce.add_argument("--quality", type=int, default=settings.producer.jpeg_quality,
                         help="JPEG quality 1-100")
    produce.add_argument("--monitor", type=int, default=settings.producer.monitor,
                         help="mss monitor index (0 = all)")
    produce.add_argument("--test-pattern", action="store_true",
                         help="Stream a synthetic pattern instead of the screen")
    produce.add_argument("--report-interval", type=float, default=10.0,
                         help="Seconds between stats log lines (0 = off)")
    produce.set_defaults(func=cmd_produce)

    view = sub.add_parser("view", help="Watch a session in an OpenCV window")
    view.add_argument("--url", type=str, default=settings.consumer.relay_url,
                      help="Relay WebSocket URL")
    view.add_argument("--token", type=str, required=True, help="Session token")
    view.set_defaults(func=cmd_view)

    share = sub.add_parser("share-url", help="Print the LAN share URL for a token")
    share.add_argument("--token", type=str, required=True, help="Session token")
    share.set_defaults(func=cmd_share_url)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
