"""Websocket signaling transport and RTC configuration endpoints."""
from __future__ import annotations

import json
import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..core.config import settings
from ..schemas.rooms import IceServer, IceServersResponse
from ..schemas.signaling import SignalEnvelope
from ..services.connections import ConnectionHandler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ice-servers", response_model=IceServersResponse)
async def ice_servers() -> IceServersResponse:
    """Return the STUN/TURN servers endpoints should configure."""

    return IceServersResponse(ice_servers=[IceServer(urls=url) for url in settings.ice_servers])


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Pair two endpoints by room code and relay their negotiation frames."""

    handler: ConnectionHandler = websocket.app.state.signaling
    connection_id = uuid4().hex
    await websocket.accept()
    handler.connect(connection_id, websocket.send_json)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                continue
            try:
                frame = SignalEnvelope.model_validate(json.loads(raw))
            except (ValueError, ValidationError):
                logger.debug("ignoring malformed frame from %s", connection_id)
                continue
            await handler.dispatch(connection_id, frame.type, frame.payload)
    except WebSocketDisconnect:
        pass
    finally:
        await handler.disconnect(connection_id)
