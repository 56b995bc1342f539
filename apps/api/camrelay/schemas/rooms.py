"""Data contracts for room and RTC configuration endpoints."""
from __future__ import annotations

from pydantic import BaseModel, Field


class RoomCreatedResponse(BaseModel):
    room: str = Field(..., description="Uppercase room code to share with the other endpoint")


class IceServer(BaseModel):
    urls: str = Field(..., description="STUN or TURN URL")


class IceServersResponse(BaseModel):
    ice_servers: list[IceServer] = Field(default_factory=list)
