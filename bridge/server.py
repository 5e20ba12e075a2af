"""ESP32 WSS Bridge: FastAPI server.

Exposes:
  GET  /health    - liveness, active client count, socket targets
  GET  /discover  - one-shot scan of all configured candidates
  WS   /  and /ws - client relay sessions

Start with::

    python -m bridge
    # or
    uvicorn bridge.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bridge import __version__
from bridge.config import BridgeConfig
from bridge.discovery.coordinator import DiscoveryCoordinator, Prober
from bridge.relay.messages import utc_timestamp
from bridge.relay.registry import SessionRegistry
from bridge.relay.websocket import client_ws_handler

logger = logging.getLogger(__name__)

router = APIRouter()


# ──────────────────────────────────────────────────────────────────
# Response models
# ──────────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    connections: int
    targets: list[str]


class Device(BaseModel):
    type: str
    target: str
    status: str


class DiscoverResponse(BaseModel):
    success: bool
    devices: list[Device]
    timestamp: str


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    state = request.app.state
    return HealthResponse(
        status="ok",
        timestamp=utc_timestamp(),
        connections=len(state.registry),
        targets=[t.address for t in state.config.socket_targets],
    )


@router.get("/discover", response_model=DiscoverResponse)
async def discover(request: Request):
    coordinator: DiscoveryCoordinator = request.app.state.coordinator
    try:
        devices = await coordinator.discover()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Discovery endpoint failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
    return DiscoverResponse(
        success=True,
        devices=[Device(**d.to_dict()) for d in devices],
        timestamp=utc_timestamp(),
    )


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: BridgeConfig = app.state.config
    logger.info(
        "ESP32 bridge ready with %d websocket / %d http target(s)",
        len(config.socket_targets), len(config.http_targets),
    )
    yield
    sessions = app.state.registry.sessions()
    if sessions:
        logger.info("Shutting down, closing %d session(s)", len(sessions))
    for session in sessions:
        await session.close()


def create_app(config: BridgeConfig | None = None, prober: Prober | None = None) -> FastAPI:
    """Build the bridge app.  *prober* overrides the network prober (tests)."""
    config = config or BridgeConfig.from_env()

    app = FastAPI(title="ESP32 WSS Bridge", version=__version__, lifespan=_lifespan)
    app.state.config = config
    app.state.registry = SessionRegistry()
    app.state.coordinator = DiscoveryCoordinator(config, prober)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.add_api_websocket_route("/", client_ws_handler)
    app.add_api_websocket_route("/ws", client_ws_handler)
    return app


app = create_app()
