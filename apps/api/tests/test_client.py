"""Tests for the websocket signaling client."""
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from camrelay.schemas.signaling import MessageKind, Role
from camrelay.services import client as client_module
from camrelay.services.client import SignalingClient, connect_signaling, signaling_url

_CLOSE = object()


class DummyWebSocket:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._messages: asyncio.Queue[object] = asyncio.Queue()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self) -> "DummyWebSocket":
        return self

    async def __anext__(self) -> str | bytes:
        message = await self._messages.get()
        if message is _CLOSE:
            raise StopAsyncIteration
        return message

    async def queue_message(self, payload: object) -> None:
        await self._messages.put(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    async def end(self) -> None:
        await self._messages.put(_CLOSE)


class DummyConnect:
    def __init__(self, ws: DummyWebSocket) -> None:
        self.ws = ws

    async def __aenter__(self) -> DummyWebSocket:
        return self.ws

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class RecordingSession:
    def __init__(self) -> None:
        self.handled: list[tuple[MessageKind, object]] = []
        self.started = False
        self.closed = 0

    async def start(self) -> bool:
        self.started = True
        return True

    async def handle(self, kind, payload=None) -> None:
        self.handled.append((kind, payload))

    async def close(self) -> None:
        self.closed += 1


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_signaling_url_switches_scheme():
    assert signaling_url("http://localhost:3001/") == "ws://localhost:3001/api/rtc/signaling"
    assert signaling_url("https://signal.example") == "wss://signal.example/api/rtc/signaling"


@pytest.mark.asyncio
async def test_connect_joins_and_feeds_session(monkeypatch):
    ws = DummyWebSocket()
    urls: list[str] = []

    def fake_connect(url, *args, **kwargs):
        urls.append(url)
        return DummyConnect(ws)

    monkeypatch.setattr(client_module, "websockets", SimpleNamespace(connect=fake_connect))
    session = RecordingSession()

    async with connect_signaling("http://signal", Role.RESPONDER, " room01 ", lambda c: session) as client:
        await ws.queue_message({"type": "peer-ready", "payload": None})
        await ws.queue_message("garbage")
        await ws.queue_message(b"\x00")
        await ws.queue_message({"type": "unknown-kind"})
        await ws.queue_message({"type": "answer", "payload": {"sdp": "remote"}})
        await _settle()
        await client.flip_camera()

    assert urls == ["ws://signal/api/rtc/signaling"]
    assert session.started is True
    assert json.loads(ws.sent[0]) == {"type": "join-responder", "payload": "ROOM01"}
    assert json.loads(ws.sent[1]) == {"type": "flip-camera", "payload": None}
    assert session.handled == [
        (MessageKind.PEER_READY, None),
        (MessageKind.ANSWER, {"sdp": "remote"}),
    ]
    assert session.closed == 1
    assert ws.closed


@pytest.mark.asyncio
async def test_transport_close_tears_down_session():
    ws = DummyWebSocket()
    session = RecordingSession()
    client = SignalingClient(ws, session=session)

    async with client:
        await ws.end()
        await asyncio.wait_for(client.closed.wait(), timeout=1)
        assert session.closed == 1

    assert session.closed == 1


@pytest.mark.asyncio
async def test_initiator_controls():
    ws = DummyWebSocket()
    client = SignalingClient(ws)

    await client.join(Role.INITIATOR, "abcdef")
    await client.change_quality("1080p")

    assert [json.loads(frame) for frame in ws.sent] == [
        {"type": "join-initiator", "payload": "ABCDEF"},
        {"type": "change-quality", "payload": {"quality": "1080p"}},
    ]


class FlakySession(RecordingSession):
    async def handle(self, kind, payload=None) -> None:
        await super().handle(kind, payload)
        if len(self.handled) == 1:
            raise RuntimeError("replaceTrack failed")


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_receive_loop():
    ws = DummyWebSocket()
    session = FlakySession()
    client = SignalingClient(ws, session=session)

    async with client:
        await ws.queue_message({"type": "flip-camera", "payload": None})
        await ws.queue_message({"type": "ice-candidate", "payload": {"candidate": "candidate:1"}})
        await _settle()

        assert session.handled == [
            (MessageKind.FLIP_CAMERA, None),
            (MessageKind.ICE_CANDIDATE, {"candidate": "candidate:1"}),
        ]
        assert not client.closed.is_set()
        assert session.closed == 0

    assert session.closed == 1
    assert ws.closed


class BrokenCloseSession(RecordingSession):
    async def close(self) -> None:
        await super().close()
        raise RuntimeError("track already stopped")


@pytest.mark.asyncio
async def test_exit_survives_failed_teardown_in_receive_task():
    ws = DummyWebSocket()
    session = BrokenCloseSession()
    client = SignalingClient(ws, session=session)

    async with client:
        await ws.end()
        await asyncio.wait_for(client.closed.wait(), timeout=1)
        await _settle()

    assert session.closed == 1
    assert ws.closed
