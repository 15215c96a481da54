from __future__ import annotations

import pytest
from sqlalchemy import update

from room_chat.core.normalize import dump_messages, room_view_from_row
from room_chat.core.types import Message
from room_chat.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from room_chat.persistence.sqlalchemy.models import Room
from room_chat.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return build_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


@pytest.fixture()
def make_room(uow_factory, session_factory):
    def _make(
        name="cafe",
        preset="You are a barista.",
        owner_id="owner-1",
        is_open=True,
        description="",
        messages=None,
        is_waiting=False,
        last_message_id=None,
    ):
        with uow_factory() as uow:
            row = uow.rooms.create(
                name=name,
                description=description,
                preset=preset,
                owner_id=owner_id,
                is_open=is_open,
            )
            uow.commit()
            room_id = row.id
        values = {"is_waiting": is_waiting, "last_message_id": last_message_id}
        if messages is not None:
            values["messages_json"] = dump_messages(messages)
        with session_factory() as session:
            session.execute(update(Room).where(Room.id == room_id).values(**values))
            session.commit()
        return room_id

    return _make


@pytest.fixture()
def load_room(uow_factory):
    def _load(name="cafe"):
        with uow_factory() as uow:
            row = uow.rooms.get_by_name(name)
            return room_view_from_row(row) if row is not None else None

    return _load


@pytest.fixture()
def transcript():
    def _build(preset="You are a barista.", *contents):
        out = [Message(role="system", content=preset)]
        for i, content in enumerate(contents):
            out.append(Message(role="user" if i % 2 == 0 else "assistant", content=content))
        return out

    return _build
