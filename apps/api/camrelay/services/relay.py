"""Route negotiation messages to the other occupant of the sender's room."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from ..schemas.signaling import MessageKind, Role, envelope
from .rooms import RoomRegistry

if TYPE_CHECKING:
    from .connections import SignalingConnection

logger = logging.getLogger(__name__)


def _should_log_candidate(count: int) -> bool:
    return count <= 3 or count % 10 == 0


class RelayEngine:
    """Forward opaque payloads between paired connections.

    Nothing is queued: a message with no room binding or no counterpart is
    dropped, which is the normal case before pairing and after departure.
    """

    def __init__(self, registry: RoomRegistry, connections: Mapping[str, "SignalingConnection"]) -> None:
        self._registry = registry
        self._connections = connections

    async def relay(self, sender_id: str, kind: MessageKind, payload: Any) -> bool:
        sender = self._connections.get(sender_id)
        if sender is None or sender.room is None:
            return False

        target = await self._registry.counterpart(sender.room, sender_id)
        if target is None:
            return False

        if kind is MessageKind.ICE_CANDIDATE:
            sender.ice_relayed += 1
            if _should_log_candidate(sender.ice_relayed):
                logger.info(
                    "relay ice-candidate #%d (%s -> peer) in room %s",
                    sender.ice_relayed,
                    _role_name(sender.role),
                    sender.room,
                )
        else:
            logger.info(
                "relay %s: %s -> %s (%s -> %s)",
                kind.value,
                _role_name(sender.role),
                target.role.value,
                sender_id,
                target.connection_id,
            )

        return await self.deliver(target.connection_id, kind, payload)

    async def relay_control(self, sender_id: str, kind: MessageKind, payload: Any = None) -> bool:
        """Forward a camera control command from the initiator to the responder."""

        sender = self._connections.get(sender_id)
        if sender is None or sender.room is None:
            return False
        if sender.role is not Role.INITIATOR:
            logger.debug("dropping %s from non-initiator %s", kind.value, sender_id)
            return False

        room = await self._registry.resolve(sender.room)
        responder_id = room.responder
        if responder_id is None or responder_id == sender_id:
            return False

        logger.info("relay %s: initiator -> responder in room %s", kind.value, sender.room)
        return await self.deliver(responder_id, kind, payload)

    async def deliver(self, connection_id: str, kind: MessageKind, payload: Any = None) -> bool:
        """Send one frame to a connection; failures are logged, never raised."""

        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.send(envelope(kind, payload))
        except Exception as exc:  # noqa: BLE001 - the peer's own loop tears it down
            logger.warning("failed sending %s to %s: %s", kind.value, connection_id, exc)
            return False
        return True


def _role_name(role: Role | None) -> str:
    return role.value if role is not None else "?"
