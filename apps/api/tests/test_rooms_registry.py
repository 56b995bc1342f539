"""Tests for the room registry."""
from __future__ import annotations

import asyncio

import pytest

from camrelay.schemas.signaling import Role
from camrelay.services.rooms import Occupant, RoomRegistry, RoomState


@pytest.mark.asyncio
async def test_resolve_unknown_code_returns_empty_room_without_storing_it():
    registry = RoomRegistry()

    room = await registry.resolve("abcdef")

    assert room == RoomState()
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_codes_are_trimmed_and_case_insensitive():
    registry = RoomRegistry()

    await registry.occupy("  abcdef ", Role.INITIATOR, "a")

    assert "ABCDEF" in registry
    assert registry.occupant("AbCdEf", Role.INITIATOR) == "a"
    assert (await registry.resolve("abcdef")).initiator == "a"


@pytest.mark.asyncio
async def test_second_occupant_of_role_displaces_first():
    registry = RoomRegistry()

    assert await registry.occupy("ABCDEF", Role.INITIATOR, "a") is None
    displaced = await registry.occupy("ABCDEF", Role.INITIATOR, "b")

    assert displaced == "a"
    assert registry.occupant("ABCDEF", Role.INITIATOR) == "b"


@pytest.mark.asyncio
async def test_reoccupying_own_slot_displaces_nobody():
    registry = RoomRegistry()

    await registry.occupy("ABCDEF", Role.RESPONDER, "a")

    assert await registry.occupy("ABCDEF", Role.RESPONDER, "a") is None


@pytest.mark.asyncio
async def test_room_deleted_after_last_release_and_resolves_fresh():
    registry = RoomRegistry()
    await registry.occupy("ROOM01", Role.INITIATOR, "a")
    await registry.occupy("ROOM01", Role.RESPONDER, "b")

    await registry.release("ROOM01", "a")
    assert "ROOM01" in registry
    assert await registry.resolve("ROOM01") == RoomState(initiator=None, responder="b")

    await registry.release("ROOM01", "b")
    assert "ROOM01" not in registry
    assert await registry.resolve("ROOM01") == RoomState()


@pytest.mark.asyncio
async def test_release_is_idempotent():
    registry = RoomRegistry()
    await registry.occupy("ROOM01", Role.INITIATOR, "a")

    await registry.release("ROOM01", "zzz")
    await registry.release("NOPE", "a")
    assert registry.occupant("ROOM01", Role.INITIATOR) == "a"

    await registry.release("ROOM01", "a")
    await registry.release("ROOM01", "a")
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_counterpart_returns_other_role_and_never_self():
    registry = RoomRegistry()
    await registry.occupy("ROOM01", Role.INITIATOR, "a")

    assert await registry.counterpart("ROOM01", "a") is None

    await registry.occupy("ROOM01", Role.RESPONDER, "b")
    assert await registry.counterpart("ROOM01", "a") == Occupant(Role.RESPONDER, "b")
    assert await registry.counterpart("ROOM01", "b") == Occupant(Role.INITIATOR, "a")

    # a connection briefly holding both slots never relays to itself
    await registry.occupy("ROOM01", Role.RESPONDER, "a")
    assert await registry.counterpart("ROOM01", "a") is None


@pytest.mark.asyncio
async def test_join_and_leave_report_counterpart():
    registry = RoomRegistry()

    first = await registry.join("ROOM01", Role.RESPONDER, "x")
    second = await registry.join("ROOM01", Role.INITIATOR, "y")

    assert first.counterpart is None
    assert second.counterpart == Occupant(Role.RESPONDER, "x")
    assert second.displaced is None

    other = await registry.leave("ROOM01", "x")
    assert other == Occupant(Role.INITIATOR, "y")
    assert registry.occupant("ROOM01", Role.RESPONDER) is None

    assert await registry.leave("ROOM01", "y") is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_concurrent_joins_and_leaves_leave_no_residue():
    registry = RoomRegistry()

    async def cycle(index: int) -> None:
        code = f"ROOM{index % 5}"
        role = Role.INITIATOR if index % 2 else Role.RESPONDER
        await registry.join(code, role, f"conn-{index}")
        await asyncio.sleep(0)
        await registry.leave(code, f"conn-{index}")

    await asyncio.gather(*(cycle(i) for i in range(50)))

    assert len(registry) == 0


@pytest.mark.asyncio
async def test_clear_drops_all_rooms():
    registry = RoomRegistry()
    await registry.occupy("ROOM01", Role.INITIATOR, "a")
    await registry.occupy("ROOM02", Role.RESPONDER, "b")

    await registry.clear()

    assert len(registry) == 0
