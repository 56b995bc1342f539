"""Wire contracts for the signaling transport."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


class Role(str, enum.Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"

    @property
    def other(self) -> "Role":
        return Role.RESPONDER if self is Role.INITIATOR else Role.INITIATOR


class MessageKind(str, enum.Enum):
    JOIN_INITIATOR = "join-initiator"
    JOIN_RESPONDER = "join-responder"
    PEER_READY = "peer-ready"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    FLIP_CAMERA = "flip-camera"
    CHANGE_QUALITY = "change-quality"
    PEER_DISCONNECTED = "peer-disconnected"


JOIN_KINDS = {
    MessageKind.JOIN_INITIATOR: Role.INITIATOR,
    MessageKind.JOIN_RESPONDER: Role.RESPONDER,
}
RELAY_KINDS = frozenset({MessageKind.OFFER, MessageKind.ANSWER, MessageKind.ICE_CANDIDATE})
CONTROL_KINDS = frozenset({MessageKind.FLIP_CAMERA, MessageKind.CHANGE_QUALITY})


class SignalEnvelope(BaseModel):
    """A single websocket frame in either direction."""

    type: MessageKind
    payload: Any = Field(default=None, description="Opaque body forwarded byte-for-byte")


def envelope(kind: MessageKind, payload: Any = None) -> dict[str, Any]:
    """Build the JSON-ready dict for a frame."""

    return {"type": kind.value, "payload": payload}
