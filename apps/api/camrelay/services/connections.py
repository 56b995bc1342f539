"""Per-connection lifecycle: join, dispatch and disconnect."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..schemas.signaling import CONTROL_KINDS, JOIN_KINDS, RELAY_KINDS, MessageKind, Role
from .relay import RelayEngine
from .rooms import RoomRegistry, normalize_code

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


@dataclass(slots=True)
class SignalingConnection:
    """A live transport channel and its room binding."""

    connection_id: str
    send: SendCallable
    room: Optional[str] = None
    role: Optional[Role] = None
    ice_relayed: int = 0

    @property
    def bound(self) -> bool:
        return self.room is not None and self.role is not None

    def unbind(self) -> None:
        self.room = None
        self.role = None


class ConnectionHandler:
    """Bind connections to rooms and route their inbound messages."""

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        notify_displaced: bool = False,
    ) -> None:
        self.registry = registry
        self.notify_displaced = notify_displaced
        self._connections: Dict[str, SignalingConnection] = {}
        self.relay = RelayEngine(registry, self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def get(self, connection_id: str) -> Optional[SignalingConnection]:
        return self._connections.get(connection_id)

    def connect(self, connection_id: str, send: SendCallable) -> SignalingConnection:
        """Register a connection; it stays inert until it joins a room."""

        connection = SignalingConnection(connection_id=connection_id, send=send)
        self._connections[connection_id] = connection
        logger.info("socket connected: %s", connection_id)
        return connection

    async def join(self, connection_id: str, role: Role, code: Any) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        if not isinstance(code, str) or not code.strip():
            logger.debug("ignoring join from %s with invalid room code %r", connection_id, code)
            return

        normalized = normalize_code(code)
        if connection.bound and (connection.room != normalized or connection.role is not role):
            await self._leave_current(connection)

        result = await self.registry.join(normalized, role, connection_id)
        connection.room = normalized
        connection.role = role
        logger.info("%s joined room %s (%s)", role.value, normalized, connection_id)

        if result.displaced is not None:
            await self._displace(result.displaced, normalized)

        if result.counterpart is None:
            logger.info("  -> waiting for %s in room %s", role.other.value, normalized)
            return

        logger.info(
            "  -> sending peer-ready to %s %s and %s %s",
            role.value,
            connection_id,
            result.counterpart.role.value,
            result.counterpart.connection_id,
        )
        await self.relay.deliver(connection_id, MessageKind.PEER_READY)
        await self.relay.deliver(result.counterpart.connection_id, MessageKind.PEER_READY)

    async def dispatch(self, connection_id: str, kind: str, payload: Any = None) -> None:
        """Single inbound entry point keyed by message kind."""

        try:
            message_kind = MessageKind(kind)
        except ValueError:
            logger.debug("dropping unknown message kind %r from %s", kind, connection_id)
            return

        if message_kind in JOIN_KINDS:
            await self.join(connection_id, JOIN_KINDS[message_kind], payload)
        elif message_kind in RELAY_KINDS:
            await self.relay.relay(connection_id, message_kind, payload)
        elif message_kind in CONTROL_KINDS:
            await self.relay.relay_control(connection_id, message_kind, payload)
        else:
            logger.debug("dropping server-only kind %s from %s", message_kind.value, connection_id)

    async def disconnect(self, connection_id: str) -> None:
        """Forget the connection and tell its counterpart it has gone."""

        connection = self._connections.get(connection_id)
        if connection is None:
            return
        logger.info(
            "socket disconnected: %s (%s)%s",
            connection_id,
            connection.role.value if connection.role else "?",
            f" room {connection.room}" if connection.room else "",
        )
        try:
            if connection.bound:
                await self._leave_current(connection)
        finally:
            self._connections.pop(connection_id, None)

    async def shutdown(self) -> None:
        self._connections.clear()
        await self.registry.clear()

    async def _leave_current(self, connection: SignalingConnection) -> None:
        room = connection.room
        connection.unbind()
        if room is None:
            return
        other = await self.registry.leave(room, connection.connection_id)
        if other is not None:
            logger.info("  -> sending peer-disconnected to %s", other.connection_id)
            await self.relay.deliver(other.connection_id, MessageKind.PEER_DISCONNECTED)

    async def _displace(self, displaced_id: str, room: str) -> None:
        displaced = self._connections.get(displaced_id)
        if displaced is not None and displaced.room == room:
            displaced.unbind()
        logger.info("  -> %s displaced from room %s", displaced_id, room)
        if self.notify_displaced:
            await self.relay.deliver(displaced_id, MessageKind.PEER_DISCONNECTED)
