#!/usr/bin/env python3
"""
Relay Soak Script
=================

Standalone script to watch a live relay session from the consumer side.

This script:
    1. Connects to a running relay as a consumer for one token
    2. Runs for a configurable duration
    3. Logs render stats every few seconds
    4. Reports a final summary

Prerequisites:
    - A relay must be running (screen-relay serve)
    - A producer should be streaming the same token (screen-relay produce)

Usage:
    python scripts/soak_relay.py --token abc --duration 60
    python scripts/soak_relay.py --url ws://192.168.1.20:3001 --token abc
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from screen_relay.stream import ConsumerRuntime


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_soak(url: str, token: str, duration: int, report_interval: int) -> dict:
    """
    Consume one session and collect render statistics.

    Args:
        url: WebSocket URL of the relay
        token: Session token to watch
        duration: Soak duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info(f"Relay URL: {url}  token: {token}  duration: {duration}s")

    consumer = ConsumerRuntime(url=url, token=token)
    consumer_task = asyncio.create_task(consumer.run())

    start_time = time.time()
    last_report_time = start_time
    last_rendered = 0

    try:
        while time.time() - start_time < duration and not consumer_task.done():
            await asyncio.sleep(0.5)

            since_report = time.time() - last_report_time
            if since_report < report_interval:
                continue

            metrics = consumer.metrics
            fps = (metrics.frames_rendered - last_rendered) / since_report
            logger.info(
                f"[{time.time() - start_time:.0f}s] state={consumer.state.value} "
                f"received={metrics.frames_received} rendered={metrics.frames_rendered} "
                f"dropped={metrics.frames_dropped} fps={fps:.1f} "
                f"last_id={metrics.last_frame_id}"
            )
            last_report_time = time.time()
            last_rendered = metrics.frames_rendered
    finally:
        await consumer.stop()
        try:
            await asyncio.wait_for(consumer_task, timeout=5.0)
        except asyncio.TimeoutError:
            consumer_task.cancel()
            await asyncio.gather(consumer_task, return_exceptions=True)

    total_time = time.time() - start_time
    summary = dict(consumer.metrics.to_dict())
    summary["duration"] = total_time
    summary["render_fps"] = consumer.metrics.frames_rendered / total_time if total_time > 0 else 0
    summary["error"] = consumer.error

    logger.info("FINAL SUMMARY")
    for key, value in summary.items():
        logger.info(f"  {key}: {value}")

    if consumer.metrics.frames_rendered > 0:
        logger.info("PASSED - frames rendered")
    else:
        logger.error("FAILED - no frames rendered")

    return summary


def main():
    parser = argparse.ArgumentParser(description="Soak a relay session as a consumer")
    parser.add_argument(
        "--url",
        default=os.environ.get("SCREEN_RELAY_URL", "ws://localhost:3001"),
        help="WebSocket URL of the relay",
    )
    parser.add_argument("--token", required=True, help="Session token")
    parser.add_argument("--duration", type=int, default=60, help="Seconds to run (default: 60)")
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )
    args = parser.parse_args()

    try:
        result = asyncio.run(run_soak(args.url, args.token, args.duration, args.report_interval))
    except KeyboardInterrupt:
        sys.exit(130)

    sys.exit(0 if result["frames_rendered"] > 0 else 1)


if __name__ == "__main__":
    main()
