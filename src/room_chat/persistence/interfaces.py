from __future__ import annotations

from typing import Protocol


class RoomRepo(Protocol):
    def get(self, room_id: int): ...
    def get_by_name(self, name: str): ...
    def get_by_last_message_id(self, message_id: str): ...
    def list_all(self): ...
    def create(
        self,
        name: str,
        description: str,
        preset: str,
        owner_id: str,
        is_open: bool = True,
    ): ...
    def delete(self, room_id: int) -> bool: ...
    def cas_update(
        self,
        room_id: int,
        expected_row_version: int,
        values: dict[str, object],
        require_idle: bool = True,
    ) -> bool: ...
    def try_lock(self, room_id: int, expected_row_version: int, messages_json: str) -> int | None: ...
    def commit_turn(
        self,
        room_id: int,
        generation: int,
        messages_json: str,
        last_message_id: str | None,
    ) -> bool: ...
    def release(self, room_id: int, generation: int) -> bool: ...
    def force_unlock(self, room_id: int) -> int | None: ...
    def current_generation(self, room_id: int) -> int | None: ...


class UnitOfWork(Protocol):
    rooms: RoomRepo

    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
