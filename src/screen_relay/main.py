"""
Screen Relay Main Application
=============================

FastAPI entry point for the frame relay.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe
    GET  /metrics   - Relay gauges and counters
    WS   /          - Relay endpoint (?role=producer|consumer&token=...)
    WS   /ws        - Alias of the relay endpoint
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Query, WebSocket
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketDisconnect

from screen_relay.config import settings
from screen_relay.models.wire import CLOSE_POLICY_VIOLATION, Role
from screen_relay.relay import ProducerConflictError, RelayHub


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_hub: Optional[RelayHub] = None
_startup_time: float = 0.0


def get_hub() -> Optional[RelayHub]:
    return _hub


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create a fresh relay hub for the lifetime of the application."""
    global _hub, _startup_time

    _startup_time = time.time()
    _hub = RelayHub(send_timeout=settings.server.send_timeout_seconds)
    logger.info(f"Starting {settings.app.name} {settings.app.version}")
    logger.info(f"Stream server running on ws://{settings.server.host}:{settings.server.port}")

    yield

    logger.info(f"Shutting down, final metrics: {_hub.snapshot()}")
    _hub = None


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ScreenRelay",
    description="Near-real-time screen mirroring relay",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "ScreenRelay",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is alive."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Relay gauges and counters."""
    hub = get_hub()
    if hub is None:
        return JSONResponse({"error": "Relay not started"}, status_code=503)

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        **hub.snapshot(),
    })


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/")
@app.websocket("/ws")
async def relay_socket(
    websocket: WebSocket,
    role: str = Query(default=""),
    token: str = Query(default=""),
) -> None:
    """Relay endpoint for producers, consumers and pass-through clients."""
    hub = get_hub()
    await websocket.accept()

    try:
        connection = await hub.connect(websocket, role, token)
    except ProducerConflictError as e:
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=str(e))
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if connection.role is Role.PRODUCER:
                payload = message.get("bytes")
                if payload is None:
                    payload = message.get("text")
                await hub.on_producer_message(connection, payload)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"{connection.role.value.capitalize()} error: {e}")
    finally:
        await hub.on_disconnect(connection)


# =============================================================================
# Main Entry Point
# =============================================================================

def serve(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the relay under uvicorn."""
    import uvicorn

    uvicorn.run(
        "screen_relay.main:app",
        host=host or settings.server.host,
        port=port or settings.server.port,
        ws_per_message_deflate=False,
        reload=False,
    )


if __name__ == "__main__":
    serve()
