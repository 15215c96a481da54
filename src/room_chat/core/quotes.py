from __future__ import annotations

from typing import Any, Callable

from .normalize import room_view_from_row
from .types import RoomView


class QuoteIndex:
    """Resolve a room from the id of the reply a user quoted.

    Only a room's most recent delivered reply resolves; quoting an older bot
    message finds nothing.
    """

    def __init__(self, uow_factory: Callable[[], Any]):
        self._uow_factory = uow_factory

    def resolve_by_last_message_id(self, message_id: str | None) -> RoomView | None:
        if not message_id:
            return None
        with self._uow_factory() as uow:
            row = uow.rooms.get_by_last_message_id(message_id)
            return room_view_from_row(row) if row is not None else None

    def resolve_name(self, message_id: str | None) -> str | None:
        room = self.resolve_by_last_message_id(message_id)
        return room.name if room is not None else None
