"""Endpoint-side offer/answer/candidate handshake.

Both endpoints run the same state machine; the role decides who offers.
The responder (capture device) sends the first offer once it has local
media and hears ``peer-ready``. The initiator (viewer) only answers.

Candidates that arrive before a remote description exists are held in
``pending_candidates`` and applied in arrival order once it is set.
Camera control commands swap the outgoing tracks in place without a new
offer/answer round.
"""
from __future__ import annotations

import enum
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Protocol

from ..schemas.signaling import MessageKind, Role
from .capture import CaptureDevice, CaptureError, Facing, Quality, parse_quality, toggle_facing

logger = logging.getLogger(__name__)

CandidateHandler = Callable[[Any], Awaitable[None]]


class NegotiationState(str, enum.Enum):
    IDLE = "idle"
    PEER_READY = "peer-ready"
    OFFER_SENT = "offer-sent"
    OFFER_RECEIVED = "offer-received"
    STABLE = "stable"


class PeerConnection(Protocol):
    """The subset of an RTCPeerConnection the handshake drives."""

    async def create_offer(self) -> Any:
        ...

    async def create_answer(self) -> Any:
        ...

    async def set_local_description(self, description: Any) -> Any:
        """Apply ``description`` and return the description to send to the peer."""
        ...

    async def set_remote_description(self, description: Any) -> None:
        ...

    async def add_ice_candidate(self, candidate: Any) -> None:
        ...

    async def add_media(self, media: Any) -> None:
        ...

    async def replace_media(self, media: Any) -> None:
        ...

    async def close(self) -> None:
        ...


class SignalSender(Protocol):
    async def send(self, kind: MessageKind, payload: Any = None) -> None:
        ...


PeerFactory = Callable[[CandidateHandler], PeerConnection]


def is_candidate_payload(payload: Any) -> bool:
    if not payload or not isinstance(payload, dict):
        return False
    return payload.get("candidate") is not None or payload.get("type") == "candidate"


class NegotiationSession:
    """Explicit negotiation state for one endpoint."""

    def __init__(
        self,
        role: Role,
        signal: SignalSender,
        peer_factory: PeerFactory,
        capture: Optional[CaptureDevice] = None,
        *,
        facing: Facing = Facing.USER,
        quality: Quality | str = Quality.STANDARD,
    ) -> None:
        if role is Role.RESPONDER and capture is None:
            raise ValueError("responder sessions need a capture device")
        self.role = role
        self._signal = signal
        self._peer_factory = peer_factory
        self._capture = capture

        self.state = NegotiationState.IDLE
        self.peer: Optional[PeerConnection] = None
        self.offer_in_flight = False
        self.remote_description_set = False
        self.pending_candidates: Deque[Any] = deque()
        self.tracks_attached = False
        self.media: Any = None
        self.facing = facing
        self.quality = parse_quality(quality)
        self.last_error: Optional[str] = None

    async def start(self) -> bool:
        """Acquire the initial capture stream on the responder; a no-op for the initiator."""

        if self.role is not Role.RESPONDER:
            return True
        return await self._ensure_media()

    async def handle(self, kind: MessageKind | str, payload: Any = None) -> None:
        """Dispatch one inbound signaling message."""

        try:
            kind = MessageKind(kind)
        except ValueError:
            logger.debug("ignoring unknown message kind %r", kind)
            return

        if kind is MessageKind.PEER_READY:
            await self.on_peer_ready()
        elif kind is MessageKind.OFFER:
            await self.on_offer(payload)
        elif kind is MessageKind.ANSWER:
            await self.on_answer(payload)
        elif kind is MessageKind.ICE_CANDIDATE:
            await self.on_candidate(payload)
        elif kind is MessageKind.FLIP_CAMERA:
            await self.on_flip_camera()
        elif kind is MessageKind.CHANGE_QUALITY:
            await self.on_change_quality(payload)
        elif kind is MessageKind.PEER_DISCONNECTED:
            await self.on_peer_disconnected()

    async def on_peer_ready(self) -> None:
        self._ensure_peer()
        if self.state is NegotiationState.IDLE:
            self.state = NegotiationState.PEER_READY

        if self.role is not Role.RESPONDER:
            return
        if not await self._ensure_media():
            return
        if not self.tracks_attached:
            try:
                await self.peer.add_media(self.media)
            except Exception as exc:  # noqa: BLE001 - surfaced through last_error
                logger.warning("attaching media failed: %s", exc)
                self.last_error = str(exc) or "Attaching media failed"
                return
            self.tracks_attached = True
        await self.negotiate()

    async def negotiate(self) -> bool:
        """Create and send an offer unless one is already being generated."""

        if self.role is not Role.RESPONDER:
            logger.debug("initiator never sends offers")
            return False
        if self.offer_in_flight:
            logger.debug("offer already in flight")
            return False

        peer = self._ensure_peer()
        previous = self.state
        self.offer_in_flight = True
        try:
            offer = await peer.create_offer()
            local = await peer.set_local_description(offer)
            # the answer may be handled before send() returns
            self.state = NegotiationState.OFFER_SENT
            await self._signal.send(MessageKind.OFFER, local if local is not None else offer)
        except Exception as exc:  # noqa: BLE001 - surfaced through last_error
            logger.warning("offer failed: %s", exc)
            self.state = previous
            self.last_error = str(exc) or "Offer failed"
            return False
        finally:
            self.offer_in_flight = False

        self.last_error = None
        return True

    async def on_offer(self, offer: Any) -> None:
        peer = self._ensure_peer()
        try:
            await peer.set_remote_description(offer)
            self.remote_description_set = True
            await self._drain_candidates()
            self.state = NegotiationState.OFFER_RECEIVED

            answer = await peer.create_answer()
            local = await peer.set_local_description(answer)
            await self._signal.send(MessageKind.ANSWER, local if local is not None else answer)
        except Exception as exc:  # noqa: BLE001 - surfaced through last_error
            logger.warning("answering offer failed: %s", exc)
            self.last_error = str(exc) or "Answer failed"
            return
        self.last_error = None
        self.state = NegotiationState.STABLE

    async def on_answer(self, answer: Any) -> None:
        peer = self._ensure_peer()
        if self.state is not NegotiationState.OFFER_SENT:
            logger.debug("no offer outstanding; ignoring answer")
            return
        try:
            await peer.set_remote_description(answer)
        except Exception as exc:  # noqa: BLE001 - surfaced through last_error
            logger.warning("applying answer failed: %s", exc)
            self.last_error = str(exc) or "Answer failed"
            return
        self.remote_description_set = True
        await self._drain_candidates()
        self.state = NegotiationState.STABLE

    async def on_candidate(self, candidate: Any) -> None:
        if not is_candidate_payload(candidate):
            return
        peer = self._ensure_peer()
        if not self.remote_description_set:
            self.pending_candidates.append(candidate)
            return
        await self._add_candidate(peer, candidate)

    async def on_flip_camera(self) -> None:
        if self.role is not Role.RESPONDER:
            return
        await self._swap_media(toggle_facing(self.facing), self.quality, "Flip camera failed")

    async def on_change_quality(self, payload: Any) -> None:
        if self.role is not Role.RESPONDER:
            return
        await self._swap_media(self.facing, parse_quality(payload), "Quality change failed")

    async def on_peer_disconnected(self) -> None:
        logger.info("peer disconnected; resetting %s session", self.role.value)
        await self.close()

    async def close(self) -> None:
        """Tear down all negotiation state and release local media."""

        peer, self.peer = self.peer, None
        self.pending_candidates.clear()
        self.offer_in_flight = False
        self.remote_description_set = False
        self.tracks_attached = False
        self.state = NegotiationState.IDLE

        if peer is not None:
            try:
                await peer.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug("closing peer failed: %s", exc)

        media, self.media = self.media, None
        if media is not None and self._capture is not None:
            await self._release_media(media)

    async def _send_local_candidate(self, candidate: Any) -> None:
        if not candidate:
            return
        await self._signal.send(MessageKind.ICE_CANDIDATE, candidate)

    def _ensure_peer(self) -> PeerConnection:
        if self.peer is None:
            self.peer = self._peer_factory(self._send_local_candidate)
        return self.peer

    async def _ensure_media(self) -> bool:
        if self.media is not None:
            return True
        try:
            self.media = await self._capture.acquire(self.facing, self.quality)
        except CaptureError as exc:
            logger.warning("capture failed: %s", exc)
            self.last_error = str(exc) or "Camera/mic access denied"
            return False
        self.last_error = None
        return True

    async def _swap_media(self, facing: Facing, quality: Quality, failure: str) -> None:
        try:
            replacement = await self._capture.acquire(facing, quality)
        except CaptureError as exc:
            logger.warning("%s: %s", failure, exc)
            self.last_error = failure
            return

        if self.peer is not None and self.tracks_attached:
            try:
                await self.peer.replace_media(replacement)
            except Exception as exc:  # noqa: BLE001 - surfaced through last_error
                logger.warning("%s: %s", failure, exc)
                self.last_error = failure
                await self._release_media(replacement)
                return

        previous, self.media = self.media, replacement
        self.facing = facing
        self.quality = quality
        self.last_error = None
        if previous is not None:
            await self._release_media(previous)

    async def _release_media(self, media: Any) -> None:
        try:
            await self._capture.release(media)
        except Exception as exc:  # noqa: BLE001
            logger.debug("releasing media failed: %s", exc)

    async def _drain_candidates(self) -> None:
        peer = self._ensure_peer()
        while self.pending_candidates:
            await self._add_candidate(peer, self.pending_candidates.popleft())

    async def _add_candidate(self, peer: PeerConnection, candidate: Any) -> None:
        try:
            await peer.add_ice_candidate(candidate)
        except Exception as exc:  # noqa: BLE001 - stale or malformed candidates are harmless
            logger.debug("ignoring candidate %r: %s", candidate, exc)
