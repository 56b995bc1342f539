"""Endpoint-side signaling client over websockets."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from ..schemas.signaling import MessageKind, Role, SignalEnvelope, envelope
from .negotiation import NegotiationSession

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)

SIGNALING_PATH = "/api/rtc/signaling"

SessionFactory = Callable[["SignalingClient"], NegotiationSession]


class SignalingClient:
    """Bridge a websocket to a :class:`NegotiationSession`.

    Outbound messages go through :meth:`send`, which is also the session's
    ``SignalSender``. Inbound frames are fed to ``session.handle`` in arrival
    order by a single receive task; when the transport closes the session is
    torn down.
    """

    def __init__(self, ws: "ClientConnection", session: NegotiationSession | None = None) -> None:
        self._ws = ws
        self.session = session
        self._receive_task: asyncio.Task[None] | None = None
        self.closed = asyncio.Event()

    async def __aenter__(self) -> "SignalingClient":
        self._receive_task = asyncio.create_task(self._receive_loop())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            except Exception as failure:  # noqa: BLE001 - teardown still runs
                logger.warning("signaling receive task failed: %s", failure)
        await self._ws.close()
        await self._teardown()

    def bind(self, session: NegotiationSession) -> None:
        self.session = session

    async def send(self, kind: MessageKind, payload: Any = None) -> None:
        await self._ws.send(json.dumps(envelope(kind, payload)))

    async def join(self, role: Role, code: str) -> None:
        kind = MessageKind.JOIN_INITIATOR if role is Role.INITIATOR else MessageKind.JOIN_RESPONDER
        await self.send(kind, code.strip().upper())

    async def flip_camera(self) -> None:
        await self.send(MessageKind.FLIP_CAMERA)

    async def change_quality(self, quality: str) -> None:
        await self.send(MessageKind.CHANGE_QUALITY, {"quality": quality})

    async def _receive_loop(self) -> None:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    continue
                try:
                    frame = SignalEnvelope.model_validate(json.loads(message))
                except (ValueError, ValidationError):
                    logger.debug("ignoring malformed frame %r", message)
                    continue
                if self.session is None:
                    continue
                try:
                    await self.session.handle(frame.type, frame.payload)
                except Exception as exc:  # noqa: BLE001 - one bad message never ends the session
                    logger.warning("handling %s failed: %s", frame.type.value, exc)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as exc:
            logger.info("signaling connection closed: %s", exc)
        finally:
            await self._teardown()

    async def _teardown(self) -> None:
        if self.closed.is_set():
            return
        self.closed.set()
        if self.session is not None:
            await self.session.close()


def signaling_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + SIGNALING_PATH


@asynccontextmanager
async def connect_signaling(
    base_url: str,
    role: Role,
    code: str,
    make_session: SessionFactory | None = None,
) -> AsyncIterator[SignalingClient]:
    """Open the signaling websocket and join ``code`` as ``role``.

    ``make_session`` receives the client (the session's signal sender) and
    returns the negotiation session that will consume inbound messages.
    """

    async with websockets.connect(signaling_url(base_url)) as ws:
        client = SignalingClient(ws)
        if make_session is not None:
            session = make_session(client)
            client.bind(session)
            await session.start()
        async with client:
            await client.join(role, code)
            yield client
