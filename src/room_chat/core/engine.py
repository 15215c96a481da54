from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from .config import RoomChatConfig
from .errors import (
    PermissionDeniedError,
    RenderFailureError,
    RoomBusyError,
    RoomChatError,
    RoomNotFoundError,
    StaleTurnError,
    UpstreamEmptyResponseError,
    UpstreamTimeoutError,
    UpstreamTransportError,
    ValidationError,
)
from .history import drop_trailing_assistant
from .locks import PrepareMessages, RoomLock
from .normalize import redact_reasoning, room_view_from_row
from .ports import CompletionPort, DeliveryPort
from .types import ROLE_ASSISTANT, ROLE_USER, Message, RoomView, TurnInput, TurnResult, TurnTicket


class ConversationEngine:
    def __init__(
        self,
        uow_factory: Callable[[], Any],
        completion: CompletionPort,
        delivery: DeliveryPort,
        config: RoomChatConfig | None = None,
        lock: RoomLock | None = None,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._completion = completion
        self._delivery = delivery
        self._config = config or RoomChatConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._lock = lock or RoomLock(uow_factory, logger=self._logger)

    @property
    def lock(self) -> RoomLock:
        return self._lock

    def get_accessible_room(self, room_name: str, actor_id: str) -> RoomView:
        with self._uow_factory() as uow:
            row = uow.rooms.get_by_name(room_name)
            if row is None:
                raise RoomNotFoundError(room_name)
            room = room_view_from_row(row)
        if not room.can_access(actor_id):
            raise PermissionDeniedError(room.name)
        return room

    async def run_turn(self, turn_input: TurnInput) -> TurnResult:
        text = (turn_input.text or "").strip()
        if not text:
            return TurnResult(
                status="error",
                room_name=turn_input.room_name,
                error=ValidationError("empty_field", "The message must not be empty."),
            )

        def _append_user(room: RoomView) -> list[Message]:
            return [*room.messages, Message(role=ROLE_USER, content=text)]

        return await self._execute(turn_input, _append_user, regenerated=False)

    async def regenerate(self, turn_input: TurnInput) -> TurnResult:
        def _drop_reply(room: RoomView) -> list[Message]:
            trimmed = drop_trailing_assistant(room.messages)
            if trimmed is None:
                raise ValidationError("nothing_to_regenerate", "There is no reply to regenerate.")
            return trimmed

        return await self._execute(turn_input, _drop_reply, regenerated=True)

    async def _execute(
        self,
        turn_input: TurnInput,
        prepare: PrepareMessages,
        *,
        regenerated: bool,
    ) -> TurnResult:
        try:
            room = self.get_accessible_room(turn_input.room_name, turn_input.actor_id)
            ticket, room, outgoing = await self._lock.acquire(room.id, prepare)
        except RoomBusyError as exc:
            return TurnResult(status="busy", room_name=turn_input.room_name, error=exc)
        except RoomChatError as exc:
            return TurnResult(status="error", room_name=turn_input.room_name, error=exc)

        try:
            reply = await self._complete(outgoing)
            if not self._lock.is_current(ticket):
                raise StaleTurnError("room was stopped while the reply was pending")

            message_id = await self._deliver(ticket, turn_input, reply, outgoing, regenerated)
            transcript = [*outgoing, Message(role=ROLE_ASSISTANT, content=reply)]
            if not self._lock.commit(ticket, transcript, message_id):
                raise StaleTurnError("room was stopped while the reply was being delivered")

            self._logger.info(
                "Turn committed room=%s generation=%s messages=%s regenerated=%s",
                room.name,
                ticket.generation,
                len(transcript),
                regenerated,
            )
            return TurnResult(
                status="ok",
                room_name=room.name,
                reply=reply,
                message_id=message_id,
                transcript_length=len(transcript),
                regenerated=regenerated,
            )
        except StaleTurnError as exc:
            self._logger.warning(
                "Discarding stale reply room=%s generation=%s: %s",
                room.name,
                ticket.generation,
                exc,
            )
            return TurnResult(status="stale", room_name=room.name, regenerated=regenerated, error=exc)
        except RoomChatError as exc:
            self._logger.warning("Turn failed room=%s code=%s: %s", room.name, exc.code, exc)
            return TurnResult(status="error", room_name=room.name, regenerated=regenerated, error=exc)
        except Exception as exc:
            self._logger.exception("Unexpected turn failure room=%s", room.name)
            return TurnResult(
                status="error",
                room_name=room.name,
                regenerated=regenerated,
                error=UpstreamTransportError(str(exc) or None),
            )
        finally:
            # No-op when the turn already committed.
            self._lock.release_best_effort(ticket)

    async def _complete(self, outgoing: Sequence[Message]) -> str:
        cfg = self._config
        try:
            raw = await asyncio.wait_for(
                self._completion.complete(outgoing, cfg.generation_params()),
                timeout=cfg.request_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeoutError() from exc
        raw = raw or ""
        if cfg.remove_reasoning_block:
            reply = redact_reasoning(raw, cfg.reasoning_close_marker)
        else:
            reply = raw.strip()
        if not reply:
            raise UpstreamEmptyResponseError()
        return reply

    async def _deliver(
        self,
        ticket: TurnTicket,
        turn_input: TurnInput,
        reply: str,
        outgoing: Sequence[Message],
        regenerated: bool,
    ) -> str | None:
        try:
            return await self._delivery.deliver(
                ticket.room_name,
                reply,
                transcript_length=len(outgoing),
                regenerated=regenerated,
                force_text=turn_input.force_text,
                quote_message_id=turn_input.quote_message_id,
                actor_id=turn_input.actor_id,
            )
        except RoomChatError:
            raise
        except Exception as exc:
            raise RenderFailureError(f"Delivering the reply failed: {exc}") from exc
