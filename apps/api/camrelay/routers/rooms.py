"""Room-code allocation endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..schemas.rooms import RoomCreatedResponse
from ..services import room_codes

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/create-room", response_class=PlainTextResponse, tags=["rooms"])
async def create_room() -> PlainTextResponse:
    """Hand out a fresh room code as plain text for QR links."""

    code = room_codes.allocate()
    logger.info("allocated room %s", code)
    return PlainTextResponse(code, headers={"Cache-Control": "no-store"})


@router.post("/api/rooms", response_model=RoomCreatedResponse, status_code=201, tags=["rooms"])
async def create_room_json() -> RoomCreatedResponse:
    """JSON variant of ``/create-room``."""

    code = room_codes.allocate()
    logger.info("allocated room %s", code)
    return RoomCreatedResponse(room=code)
