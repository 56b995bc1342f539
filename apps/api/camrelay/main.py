"""FastAPI application for the camera pairing signaling service."""
from __future__ import annotations

import base64
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from .core.config import settings
from .core.logging import configure_logging
from .routers import rooms as rooms_router
from .routers import signaling as signaling_router
from .services.connections import ConnectionHandler
from .services.rooms import RoomRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the room registry for the lifetime of the process."""

    configure_logging(settings.log_level)
    handler = ConnectionHandler(RoomRegistry(), notify_displaced=settings.notify_displaced_occupant)
    app.state.signaling = handler
    logger.info("signaling server ready (%s)", settings.app_env)
    try:
        yield
    finally:
        await handler.shutdown()
        logger.info("signaling server stopped")


app = FastAPI(title="Camera Relay Signaling API", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

app.include_router(rooms_router.router)
app.include_router(signaling_router.router, prefix="/api/rtc", tags=["rtc"])

FAVICON_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGMAAQAABQABDQottAAAAABJRU5ErkJggg=="
)


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/health", tags=["meta"])
async def legacy_health() -> dict[str, bool]:
    return {"ok": True}


@app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
async def robots() -> PlainTextResponse:
    """Serve a minimal robots.txt to avoid 404 noise."""

    return PlainTextResponse("User-agent: *\nDisallow:")


@app.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    """Return a tiny placeholder favicon."""

    return Response(content=FAVICON_BYTES, media_type="image/png")


def run() -> None:
    """Console entry point."""

    import uvicorn

    uvicorn.run("camrelay.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
