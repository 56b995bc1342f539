"""In-memory room registry pairing one initiator with one responder."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional

from ..schemas.signaling import Role


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(slots=True)
class RoomState:
    """Slot occupancy for a single room."""

    initiator: Optional[str] = None
    responder: Optional[str] = None

    def get(self, role: Role) -> Optional[str]:
        return self.initiator if role is Role.INITIATOR else self.responder

    def set(self, role: Role, connection_id: Optional[str]) -> None:
        if role is Role.INITIATOR:
            self.initiator = connection_id
        else:
            self.responder = connection_id

    @property
    def empty(self) -> bool:
        return self.initiator is None and self.responder is None


class Occupant(NamedTuple):
    role: Role
    connection_id: str


class JoinResult(NamedTuple):
    counterpart: Optional[Occupant]
    displaced: Optional[str]


class RoomRegistry:
    """Own the room map; every mutation happens under a single lock.

    Occupying a taken role slot replaces the previous occupant (last writer
    wins). The displaced identifier is returned to the caller, which decides
    whether to notify it.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, RoomState] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_code(code) in self._rooms

    def occupant(self, code: str, role: Role) -> Optional[str]:
        room = self._rooms.get(normalize_code(code))
        return room.get(role) if room else None

    async def resolve(self, code: str) -> RoomState:
        """Return a snapshot of the room for ``code``; unknown codes yield an empty room.

        The empty room is not stored: rooms only exist while a slot is occupied.
        """

        async with self._lock:
            room = self._rooms.get(normalize_code(code))
            if room is None:
                return RoomState()
            return RoomState(initiator=room.initiator, responder=room.responder)

    async def occupy(self, code: str, role: Role, connection_id: str) -> Optional[str]:
        """Assign ``connection_id`` to ``role`` and return the displaced occupant, if any."""

        async with self._lock:
            return self._occupy(normalize_code(code), role, connection_id)

    async def release(self, code: str, connection_id: str) -> None:
        """Clear ``connection_id`` from the room and drop the room once it is empty."""

        async with self._lock:
            self._release(normalize_code(code), connection_id)

    async def counterpart(self, code: str, connection_id: str) -> Optional[Occupant]:
        async with self._lock:
            return self._counterpart(normalize_code(code), connection_id)

    async def join(self, code: str, role: Role, connection_id: str) -> JoinResult:
        """Occupy a slot and report the other occupant in one critical section."""

        normalized = normalize_code(code)
        async with self._lock:
            displaced = self._occupy(normalized, role, connection_id)
            return JoinResult(self._counterpart(normalized, connection_id), displaced)

    async def leave(self, code: str, connection_id: str) -> Optional[Occupant]:
        """Look up the counterpart, then release; returns the counterpart found."""

        normalized = normalize_code(code)
        async with self._lock:
            other = self._counterpart(normalized, connection_id)
            self._release(normalized, connection_id)
            return other

    async def clear(self) -> None:
        async with self._lock:
            self._rooms.clear()

    def _resolve(self, code: str) -> RoomState:
        existing = self._rooms.get(code)
        if existing is not None:
            return existing
        fresh = RoomState()
        self._rooms[code] = fresh
        return fresh

    def _occupy(self, code: str, role: Role, connection_id: str) -> Optional[str]:
        room = self._resolve(code)
        previous = room.get(role)
        room.set(role, connection_id)
        if previous is None or previous == connection_id:
            return None
        return previous

    def _release(self, code: str, connection_id: str) -> None:
        room = self._rooms.get(code)
        if room is None:
            return
        for role in Role:
            if room.get(role) == connection_id:
                room.set(role, None)
        if room.empty:
            self._rooms.pop(code, None)

    def _counterpart(self, code: str, connection_id: str) -> Optional[Occupant]:
        room = self._rooms.get(code)
        if room is None:
            return None
        for role in Role:
            occupant = room.get(role)
            if occupant is not None and occupant != connection_id:
                return Occupant(role, occupant)
        return None
