from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...core.errors import ValidationError
from ...core.history import clear
from ...core.normalize import dump_messages
from .models import Room


class RoomRepo:
    def __init__(self, session: Session):
        self.session = session

    def get(self, room_id: int) -> Room | None:
        return self.session.get(Room, room_id)

    def get_by_name(self, name: str) -> Room | None:
        if not name:
            return None
        stmt = select(Room).where(Room.name == name).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_last_message_id(self, message_id: str) -> Room | None:
        if not message_id:
            return None
        stmt = select(Room).where(Room.last_message_id == message_id).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> list[Room]:
        stmt = select(Room).order_by(Room.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    def create(
        self,
        name: str,
        description: str,
        preset: str,
        owner_id: str,
        is_open: bool = True,
    ) -> Room:
        try:
            with self.session.begin_nested():
                row = Room(
                    name=name,
                    description=description,
                    preset=preset,
                    owner_id=owner_id,
                    is_open=is_open,
                    is_waiting=False,
                    generation=0,
                    row_version=1,
                    messages_json=dump_messages(clear(preset)),
                    last_message_id=None,
                )
                self.session.add(row)
                self.session.flush()
                return row
        except IntegrityError as exc:
            message = str(exc).lower()
            if "uq_rc_room_name" in message or "rc_rooms.name" in message:
                raise ValidationError("name_taken", f"Room '{name}' already exists.") from exc
            raise

    def delete(self, room_id: int) -> bool:
        stmt = delete(Room).where(Room.id == room_id)
        return (self.session.execute(stmt).rowcount or 0) == 1

    def cas_update(
        self,
        room_id: int,
        expected_row_version: int,
        values: dict[str, object],
        require_idle: bool = True,
    ) -> bool:
        update_values = dict(values)
        update_values["row_version"] = Room.row_version + 1
        stmt = (
            update(Room)
            .where(Room.id == room_id)
            .where(Room.row_version == expected_row_version)
        )
        if require_idle:
            stmt = stmt.where(Room.is_waiting.is_(False))
        result = self.session.execute(stmt.values(**update_values))
        return result.rowcount == 1

    def try_lock(self, room_id: int, expected_row_version: int, messages_json: str) -> int | None:
        """IDLE -> LOCKED, persisting the outgoing transcript in the same write.

        Returns the turn's generation, or ``None`` when the room is already
        locked or its row version moved.
        """
        stmt = (
            update(Room)
            .where(Room.id == room_id)
            .where(Room.row_version == expected_row_version)
            .where(Room.is_waiting.is_(False))
            .values(
                is_waiting=True,
                generation=Room.generation + 1,
                row_version=Room.row_version + 1,
                messages_json=messages_json,
            )
        )
        if (self.session.execute(stmt).rowcount or 0) != 1:
            return None
        return self.current_generation(room_id)

    def commit_turn(
        self,
        room_id: int,
        generation: int,
        messages_json: str,
        last_message_id: str | None,
    ) -> bool:
        stmt = (
            update(Room)
            .where(Room.id == room_id)
            .where(Room.generation == generation)
            .where(Room.is_waiting.is_(True))
            .values(
                is_waiting=False,
                messages_json=messages_json,
                last_message_id=last_message_id,
                row_version=Room.row_version + 1,
            )
        )
        return (self.session.execute(stmt).rowcount or 0) == 1

    def release(self, room_id: int, generation: int) -> bool:
        stmt = (
            update(Room)
            .where(Room.id == room_id)
            .where(Room.generation == generation)
            .where(Room.is_waiting.is_(True))
            .values(is_waiting=False, row_version=Room.row_version + 1)
        )
        return (self.session.execute(stmt).rowcount or 0) == 1

    def force_unlock(self, room_id: int) -> int | None:
        stmt = (
            update(Room)
            .where(Room.id == room_id)
            .where(Room.is_waiting.is_(True))
            .values(
                is_waiting=False,
                generation=Room.generation + 1,
                row_version=Room.row_version + 1,
            )
        )
        if (self.session.execute(stmt).rowcount or 0) != 1:
            return None
        return self.current_generation(room_id)

    def current_generation(self, room_id: int) -> int | None:
        stmt = select(Room.generation).where(Room.id == room_id)
        return self.session.execute(stmt).scalar_one_or_none()
