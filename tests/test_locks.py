from __future__ import annotations

import asyncio

import pytest

from room_chat.core.errors import ConflictError, RoomBusyError, RoomNotFoundError
from room_chat.core.locks import RoomLock
from room_chat.core.types import Message


def _append(text):
    def _prepare(room):
        return [*room.messages, Message("user", text)]

    return _prepare


def test_acquire_persists_prepared_transcript_and_bumps_generation(uow_factory, make_room, load_room):
    async def run_test():
        room_id = make_room()
        lock = RoomLock(uow_factory)

        ticket, room, outgoing = await lock.acquire(room_id, _append("hi"))

        assert ticket.generation == 1
        assert room.name == "cafe"
        assert [m.content for m in outgoing] == ["You are a barista.", "hi"]
        stored = load_room()
        assert stored.is_waiting is True
        assert stored.generation == 1
        assert stored.messages == tuple(outgoing)
        assert lock.is_current(ticket) is True

    asyncio.run(run_test())


def test_acquire_on_locked_room_raises_busy(uow_factory, make_room):
    async def run_test():
        room_id = make_room()
        lock = RoomLock(uow_factory)
        await lock.acquire(room_id, _append("one"))
        with pytest.raises(RoomBusyError):
            await lock.acquire(room_id, _append("two"))

    asyncio.run(run_test())


def test_acquire_on_missing_room_raises_not_found(uow_factory):
    async def run_test():
        with pytest.raises(RoomNotFoundError):
            await RoomLock(uow_factory).acquire(404, _append("x"))

    asyncio.run(run_test())


def test_prepare_failure_leaves_room_unlocked(uow_factory, make_room, load_room):
    async def run_test():
        room_id = make_room()

        def _refuse(_room):
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await RoomLock(uow_factory).acquire(room_id, _refuse)
        stored = load_room()
        assert stored.is_waiting is False
        assert stored.generation == 0

    asyncio.run(run_test())


def test_concurrent_edit_exhausts_retries_as_conflict(uow_factory, make_room, load_room):
    async def run_test():
        room_id = make_room()
        lock = RoomLock(uow_factory, max_conflict_retries=1)
        calls = {"n": 0}

        def _bump_then_prepare(room):
            calls["n"] += 1
            with uow_factory() as uow:
                assert uow.rooms.cas_update(room.id, room.row_version, {"description": f"v{calls['n']}"})
                uow.commit()
            return [*room.messages, Message("user", "hi")]

        with pytest.raises(ConflictError):
            await lock.acquire(room_id, _bump_then_prepare)

        assert calls["n"] == 2
        assert load_room().is_waiting is False

    asyncio.run(run_test())


def test_commit_and_release_are_generation_scoped(uow_factory, make_room, load_room):
    async def run_test():
        room_id = make_room()
        lock = RoomLock(uow_factory)
        ticket, _room, outgoing = await lock.acquire(room_id, _append("hi"))

        assert lock.force_stop(room_id) is True
        assert lock.is_current(ticket) is False
        assert lock.commit(ticket, [*outgoing, Message("assistant", "late")], "m-1") is False

        stored = load_room()
        assert stored.generation == 2
        assert stored.last_message_id is None
        assert [m.content for m in stored.messages] == ["You are a barista.", "hi"]

        newer, _room, _ = await lock.acquire(room_id, _append("again"))
        assert lock.release(ticket) is False
        assert load_room().is_waiting is True
        assert lock.release(newer) is True
        assert load_room().is_waiting is False

    asyncio.run(run_test())


def test_release_after_commit_is_a_noop(uow_factory, make_room, load_room):
    async def run_test():
        room_id = make_room()
        lock = RoomLock(uow_factory)
        ticket, _room, outgoing = await lock.acquire(room_id, _append("hi"))

        assert lock.commit(ticket, [*outgoing, Message("assistant", "done")], "m-1") is True
        assert lock.release(ticket) is False
        stored = load_room()
        assert stored.is_waiting is False
        assert stored.last_message_id == "m-1"

    asyncio.run(run_test())


def test_force_stop_on_idle_room_reports_nothing(uow_factory, make_room, load_room):
    room_id = make_room()
    assert RoomLock(uow_factory).force_stop(room_id) is False
    assert load_room().generation == 0
