from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from .errors import ConflictError, RoomBusyError, RoomNotFoundError
from .normalize import dump_messages, room_view_from_row
from .types import Message, RoomView, TurnTicket

PrepareMessages = Callable[[RoomView], Sequence[Message]]


class RoomLock:
    """Single-flight guard over a room's ``is_waiting`` flag.

    ``IDLE -> LOCKED`` happens through one compare-and-set write that also bumps
    the room generation; the read-decide-write sequence runs under an
    in-process mutex keyed by room id.  ``LOCKED -> IDLE`` only succeeds for
    the generation that acquired it, so a turn that finishes after a manual
    stop cannot unlock (or write into) a later turn.
    """

    def __init__(
        self,
        uow_factory: Callable[[], Any],
        *,
        max_conflict_retries: int = 1,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._max_conflict_retries = max_conflict_retries
        self._logger = logger or logging.getLogger(__name__)
        self._mutexes: dict[int, asyncio.Lock] = {}
        self._open_tickets: set[TurnTicket] = set()

    def _mutex(self, room_id: int) -> asyncio.Lock:
        mutex = self._mutexes.get(room_id)
        if mutex is None:
            mutex = asyncio.Lock()
            self._mutexes[room_id] = mutex
        return mutex

    async def acquire(
        self,
        room_id: int,
        prepare: PrepareMessages,
    ) -> tuple[TurnTicket, RoomView, list[Message]]:
        """Lock the room and persist the transcript ``prepare`` derives from it.

        ``prepare`` sees the room as read under the mutex and may raise to
        abort without locking.
        """
        async with self._mutex(room_id):
            for _attempt in range(self._max_conflict_retries + 1):
                with self._uow_factory() as uow:
                    row = uow.rooms.get(room_id)
                    if row is None:
                        raise RoomNotFoundError(str(room_id))
                    room = room_view_from_row(row)
                    if room.is_waiting:
                        raise RoomBusyError(room.name)
                    outgoing = list(prepare(room))
                    generation = uow.rooms.try_lock(room.id, room.row_version, dump_messages(outgoing))
                    if generation is None:
                        uow.rollback()
                        continue
                    uow.commit()
                ticket = TurnTicket(room_id=room.id, room_name=room.name, generation=generation)
                self._open_tickets.add(ticket)
                self._logger.debug("Room %s locked (generation %s)", room.name, generation)
                return ticket, room, outgoing

        with self._uow_factory() as uow:
            row = uow.rooms.get(room_id)
            if row is not None and row.is_waiting:
                raise RoomBusyError(row.name)
        raise ConflictError("The room changed while the turn was starting, try again.")

    def is_current(self, ticket: TurnTicket) -> bool:
        with self._uow_factory() as uow:
            row = uow.rooms.get(ticket.room_id)
            if row is None:
                return False
            return bool(row.is_waiting) and row.generation == ticket.generation

    def commit(
        self,
        ticket: TurnTicket,
        messages: Sequence[Message],
        last_message_id: str | None,
    ) -> bool:
        """Write the finished transcript and unlock, if the turn is still current."""
        if ticket not in self._open_tickets:
            return False
        self._open_tickets.discard(ticket)
        with self._uow_factory() as uow:
            ok = uow.rooms.commit_turn(ticket.room_id, ticket.generation, dump_messages(messages), last_message_id)
            uow.commit()
        if ok:
            self._logger.debug("Room %s committed and unlocked (generation %s)", ticket.room_name, ticket.generation)
        return ok

    def release(self, ticket: TurnTicket) -> bool:
        if ticket not in self._open_tickets:
            return False
        self._open_tickets.discard(ticket)
        with self._uow_factory() as uow:
            ok = uow.rooms.release(ticket.room_id, ticket.generation)
            uow.commit()
        self._logger.debug(
            "Room %s released (generation %s, %s)",
            ticket.room_name,
            ticket.generation,
            "unlocked" if ok else "already superseded",
        )
        return ok

    def release_best_effort(self, ticket: TurnTicket) -> None:
        try:
            self.release(ticket)
        except Exception:
            self._logger.exception("Failed to release room %s (generation %s)", ticket.room_name, ticket.generation)

    def force_stop(self, room_id: int) -> bool:
        """Manual override: clear the flag and retire the outstanding generation."""
        with self._uow_factory() as uow:
            generation = uow.rooms.force_unlock(room_id)
            uow.commit()
        if generation is None:
            return False
        self._logger.info("Room %s force-stopped, generation now %s", room_id, generation)
        return True

    def forget(self, room_id: int) -> None:
        self._mutexes.pop(room_id, None)
