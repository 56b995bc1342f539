"""Capture constraint helpers and the media collaborator interface."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Protocol


class Facing(str, enum.Enum):
    USER = "user"
    ENVIRONMENT = "environment"


class Quality(str, enum.Enum):
    LOW = "360p"
    STANDARD = "720p"
    HIGH = "1080p"


@dataclass(frozen=True, slots=True)
class CaptureConstraints:
    width: int
    height: int
    frame_rate: int = 30


_CONSTRAINTS = {
    Quality.LOW: CaptureConstraints(640, 360),
    Quality.STANDARD: CaptureConstraints(1280, 720),
    Quality.HIGH: CaptureConstraints(1920, 1080),
}


class CaptureError(RuntimeError):
    """Raised when a capture device is busy, missing or access was denied."""


class CaptureDevice(Protocol):
    """Acquire and release camera/microphone streams on the source endpoint."""

    async def acquire(self, facing: Facing, quality: Quality) -> Any:
        ...

    async def release(self, media: Any) -> None:
        ...


def constraints_for(quality: Quality | str) -> CaptureConstraints:
    return _CONSTRAINTS[parse_quality(quality)]


def parse_quality(value: object) -> Quality:
    """Accept ``{"quality": "360p"}``, a bare tag or an enum; unknown tags mean 720p."""

    if isinstance(value, dict):
        value = value.get("quality")
    if isinstance(value, Quality):
        return value
    if isinstance(value, str):
        try:
            return Quality(value.strip().lower())
        except ValueError:
            pass
    return Quality.STANDARD


def toggle_facing(facing: Facing) -> Facing:
    return Facing.ENVIRONMENT if facing is Facing.USER else Facing.USER
