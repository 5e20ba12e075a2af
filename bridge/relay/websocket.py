"""Client WebSocket endpoint.

Mount it in FastAPI via::

    app.add_api_websocket_route("/", client_ws_handler)

The app must carry ``config``, ``registry`` and ``coordinator`` on
``app.state`` (see :func:`bridge.server.create_app`).
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect, status

from bridge.config import BridgeConfig
from bridge.relay import messages
from bridge.relay.registry import SessionRegistry
from bridge.relay.session import Session

logger = logging.getLogger(__name__)


def origin_allowed(origin: str | None, config: BridgeConfig) -> bool:
    """Browsers always send ``Origin``; native apps usually do not."""
    if not origin:
        return True
    allowed = config.allowed_origins
    return "*" in allowed or origin in allowed


async def _read_frames(websocket: WebSocket, frames: asyncio.Queue) -> None:
    """Queue client frames in arrival order until the client goes away."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is not None:
                frames.put_nowait(raw)
    except WebSocketDisconnect:
        return


async def _run_commands(session: Session, frames: asyncio.Queue) -> None:
    """Handle queued frames one at a time until the session closes."""
    while not session.closed:
        raw = await frames.get()
        await session.handle_frame(raw)


async def client_ws_handler(websocket: WebSocket) -> None:
    """Run one client session from handshake to teardown.

    Frames are read by one task and handled by another, so a disconnect is
    seen while a long command (a scan, a device handshake) is still running.
    The client leaving cancels that command.
    """
    state = websocket.app.state
    config: BridgeConfig = state.config
    registry: SessionRegistry = state.registry

    origin = websocket.headers.get("origin")
    if not origin_allowed(origin, config):
        logger.warning("Rejected client WebSocket from origin %s", origin)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = await registry.create(
        lambda session_id: Session(session_id, websocket, state.coordinator, config)
    )
    logger.info("New client connection: %s", session.id)

    frames: asyncio.Queue = asyncio.Queue()
    tasks: list[asyncio.Task] = []
    try:
        await session.send_to_client(messages.connection_established(session.id))
        tasks = [
            asyncio.create_task(_read_frames(websocket, frames), name=f"client-reader-{session.id}"),
            asyncio.create_task(_run_commands(session, frames), name=f"client-worker-{session.id}"),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.error("Error in client WebSocket %s", session.id, exc_info=exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        try:
            await session.close()
        finally:
            await registry.remove(session.id)
        logger.info("Client connection closed: %s", session.id)
