"""FastAPI application for the SFU signaling relay."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .core.config import Settings, settings
from .core.logging import setup_logging
from .routers import signaling as signaling_router
from .services.peers import PeerSessionStore
from .services.rooms import RoomDirectory
from .services.sfu import SfuGateway
from .services.signaling import SignalingCoordinator

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


def create_coordinator(config: Settings) -> SignalingCoordinator:
    """Wire a coordinator with fresh state and an SFU client for ``config``."""

    gateway = SfuGateway(config.sfu_server, timeout=config.sfu_timeout_seconds)
    return SignalingCoordinator(rooms=RoomDirectory(), gateway=gateway, sessions=PeerSessionStore())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Signaling server started port=%s sfu_server=%s", settings.port, settings.sfu_server)
    try:
        yield
    finally:
        await app.state.coordinator.gateway.aclose()


app = FastAPI(title="SFU Signaling Relay", version="0.1.0", lifespan=lifespan)
app.state.coordinator = create_coordinator(settings)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(signaling_router.router)


@app.get("/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok", "message": "Signaling server is running"}


@app.head("/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/api/health", tags=["meta"])
async def api_health() -> dict[str, object]:
    """Liveness plus the number of active rooms."""

    coordinator: SignalingCoordinator = app.state.coordinator
    return {"status": "ok", "rooms": len(coordinator.rooms)}


def run() -> None:
    import uvicorn

    uvicorn.run("sfu_signaling.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
