from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Sequence

from . import history, pages
from .cards import (
    build_card_preset,
    card_description,
    card_display_name,
    parse_character_card,
    render_persona_document,
)
from .config import RoomChatConfig
from .engine import ConversationEngine
from .errors import (
    ConflictError,
    PermissionDeniedError,
    RenderFailureError,
    RoomBusyError,
    RoomChatError,
    ValidationError,
)
from .normalize import (
    dump_messages,
    require_text,
    room_view_from_row,
    validate_description,
    validate_room_name,
)
from .ports import RendererPort
from .quotes import QuoteIndex
from .types import BatchTally, CommandContext, CommandReply, RoomView, TurnInput, TurnResult

CARD_DEFAULT_DESCRIPTION = "created from character card"


def _boundary(fn: Callable[..., Awaitable[CommandReply]]) -> Callable[..., Awaitable[CommandReply]]:
    @functools.wraps(fn)
    async def wrapper(self: "RoomCommands", ctx: CommandContext, *args: Any, **kwargs: Any) -> CommandReply:
        try:
            return await fn(self, ctx, *args, **kwargs)
        except RoomChatError as exc:
            self._logger.info("%s rejected for %s: %s", fn.__name__, ctx.actor_id, exc.code)
            return CommandReply(text=exc.user_message())

    return wrapper


class RoomCommands:
    """Command surface over rooms.

    Every name-targeted command accepts ``name=None`` and then falls back to
    the room whose latest reply the caller quoted.  Failures come back as a
    ``CommandReply`` carrying the user-facing message.
    """

    def __init__(
        self,
        uow_factory: Callable[[], Any],
        engine: ConversationEngine,
        renderer: RendererPort,
        config: RoomChatConfig | None = None,
        quotes: QuoteIndex | None = None,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._engine = engine
        self._renderer = renderer
        self._config = config or RoomChatConfig()
        self._quotes = quotes or QuoteIndex(uow_factory)
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Room lifecycle
    # ------------------------------------------------------------------

    @_boundary
    async def create_room(self, ctx: CommandContext, name: str | None, preset: str | None) -> CommandReply:
        name = validate_room_name(name, self._config.max_name_length)
        preset = require_text(preset, "preset")
        self._create(ctx, name, preset, description="")
        return CommandReply(text=f"Room '{name}' created.\nStart chatting: {name} hello")

    @_boundary
    async def create_room_from_card(
        self,
        ctx: CommandContext,
        image_bytes: bytes | None,
        name: str | None = None,
    ) -> CommandReply:
        if not image_bytes:
            raise ValidationError("empty_field", "Attach a character card image to this command.")
        if name is not None and name.strip():
            name = validate_room_name(name, self._config.max_name_length)
            self._ensure_name_free(name)

        data = parse_character_card(image_bytes)
        document = render_persona_document(data)
        card_name = card_display_name(data)
        if not name:
            name = validate_room_name(
                "".join(card_name.split())[: self._config.max_name_length],
                self._config.max_name_length,
            )

        preset = build_card_preset(document)
        description = card_description(data, self._config.max_description_length) or CARD_DEFAULT_DESCRIPTION
        self._create(ctx, name, preset, description=description)

        images: list[bytes] = []
        preview = pages.card_preview_document(name, card_name, ctx.actor_name or ctx.actor_id, preset)
        try:
            images.append(await self._render(preview))
        except RenderFailureError as exc:
            self._logger.warning("Card preview for room %s not rendered: %s", name, exc)
        return CommandReply(
            text=f"Room '{name}' created from character card.\nStart chatting: {name} hello",
            images=images,
        )

    @_boundary
    async def delete_room(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name)
        open_delete = self._config.allow_delete_open_rooms and room.is_open
        if not room.is_owner(ctx.actor_id) and not open_delete:
            raise PermissionDeniedError(room.name, "not_owner", "delete this room")
        with self._uow_factory() as uow:
            deleted = uow.rooms.delete(room.id)
            uow.commit()
        if not deleted:
            raise ConflictError(f"Room '{room.name}' was already deleted.")
        self._engine.lock.forget(room.id)
        self._logger.info("Room %s deleted by %s", room.name, ctx.actor_id)
        return CommandReply(text=f"Room '{room.name}' deleted.")

    @_boundary
    async def set_private(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        return self._set_visibility(ctx, name, is_open=False)

    @_boundary
    async def set_open(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        return self._set_visibility(ctx, name, is_open=True)

    @_boundary
    async def list_rooms(self, ctx: CommandContext) -> CommandReply:
        with self._uow_factory() as uow:
            rooms = [room_view_from_row(row) for row in uow.rooms.list_all()]
        if not rooms:
            return CommandReply(text="There are no rooms yet.")
        image = await self._render(pages.room_list_document(rooms))
        return CommandReply(images=[image])

    # ------------------------------------------------------------------
    # Preset and description
    # ------------------------------------------------------------------

    @_boundary
    async def view_preset(self, ctx: CommandContext, name: str | None = None, as_text: bool = False) -> CommandReply:
        room = self._resolve(ctx, name)
        if as_text:
            return CommandReply(text=f"Preset of room '{room.name}':\n\n{room.preset}")
        image = await self._render(pages.preset_document(room))
        return CommandReply(images=[image])

    @_boundary
    async def edit_preset(self, ctx: CommandContext, name: str | None, text: str | None) -> CommandReply:
        room = self._resolve(ctx, name)
        preset = require_text(text, "preset")
        self._require_owner(ctx, room, "edit the preset")
        messages = history.rewrite_system(room.messages, preset)
        self._write(room, {"preset": preset, "messages_json": dump_messages(messages)})
        return CommandReply(text=f"Preset of room '{room.name}' updated.")

    @_boundary
    async def edit_description(self, ctx: CommandContext, name: str | None, text: str | None) -> CommandReply:
        room = self._resolve(ctx, name)
        description = validate_description(text, self._config.max_description_length)
        self._require_owner(ctx, room, "edit the description")
        self._write(room, {"description": description})
        return CommandReply(text=f"Description of room '{room.name}' updated.")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @_boundary
    async def clear_history(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name)
        self._write(room, {"messages_json": dump_messages(history.clear(room.preset))})
        return CommandReply(text=f"Chat history of room '{room.name}' cleared.")

    @_boundary
    async def clear_all_histories(self, ctx: CommandContext, confirm: bool = False) -> CommandReply:
        if not ctx.is_admin:
            raise PermissionDeniedError("*", "not_admin", "clear every room")
        if not confirm:
            raise ValidationError(
                "confirmation_required",
                "This clears the chat history of every room you can use. "
                "Run it again with confirmation to proceed.",
            )
        with self._uow_factory() as uow:
            rooms = [room_view_from_row(row) for row in uow.rooms.list_all()]

        tally = BatchTally()
        for room in rooms:
            if not room.can_access(ctx.actor_id) or room.is_waiting:
                tally.skipped += 1
                continue
            try:
                with self._uow_factory() as uow:
                    ok = uow.rooms.cas_update(
                        room.id,
                        room.row_version,
                        {"messages_json": dump_messages(history.clear(room.preset))},
                    )
                    uow.commit()
            except Exception:
                self._logger.exception("Clearing room %s failed", room.name)
                tally.failed += 1
                continue
            if ok:
                tally.succeeded += 1
            else:
                tally.skipped += 1

        self._logger.info(
            "Bulk clear by %s: cleared=%s skipped=%s failed=%s",
            ctx.actor_id,
            tally.succeeded,
            tally.skipped,
            tally.failed,
        )
        text = (
            f"Done. Cleared {tally.succeeded} rooms, skipped {tally.skipped} rooms "
            "without permission or waiting for a reply"
        )
        if tally.failed:
            text += f", {tally.failed} failed"
        return CommandReply(text=text + ".")

    @_boundary
    async def edit_message(
        self,
        ctx: CommandContext,
        name: str | None,
        index: int | None,
        content: str | None,
    ) -> CommandReply:
        room = self._resolve(ctx, name)
        self._require_owner(ctx, room, "edit messages")
        if index is None:
            raise ValidationError("empty_field", "A message index is required.")
        content = require_text(content, "message content")
        position = history.coerce_index(room.messages, index)
        messages = history.edit_at(room.messages, position, content)
        self._write(room, {"messages_json": dump_messages(messages)})
        return CommandReply(text=f"Message {position} of room '{room.name}' updated.")

    @_boundary
    async def delete_messages(self, ctx: CommandContext, name: str | None, index_spec: str | None) -> CommandReply:
        room = self._resolve(ctx, name)
        self._require_owner(ctx, room, "delete messages")
        spec = require_text(index_spec, "index list")
        messages, removed = history.delete_many(room.messages, spec)
        self._write(room, {"messages_json": dump_messages(messages)})
        joined = ", ".join(str(i) for i in removed)
        return CommandReply(text=f"Deleted messages {joined} of room '{room.name}'.")

    @_boundary
    async def view_message(self, ctx: CommandContext, name: str | None, index: int | None) -> CommandReply:
        room = self._resolve(ctx, name)
        if index is None:
            raise ValidationError("empty_field", "A message index is required.")
        position = history.coerce_index(room.messages, index)
        message = history.message_at(room.messages, position)
        return CommandReply(text=f"#{position} {pages.role_label(message.role)}\n\n{message.content}")

    @_boundary
    async def view_history(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name)
        entries = list(room.messages[1:])
        if not entries:
            return CommandReply(text="This room has no chat history yet.")
        chunks = pages.paginate(entries, self._config.history_page_size)
        documents = [pages.history_page_document(first, chunk) for first, chunk in chunks]
        return await self._render_pages(
            room,
            documents,
            f"History of room '{room.name}': {len(entries)} messages in {len(documents)} pages.",
        )

    @_boundary
    async def view_history_summary(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name)
        entries = list(room.messages[1:])
        if not entries:
            return CommandReply(text="This room has no chat history yet.")
        chunks = pages.paginate(entries, self._config.summary_page_size)
        documents = [
            pages.history_summary_document(room.name, first, chunk, self._config.summary_excerpt_chars)
            for first, chunk in chunks
        ]
        return await self._render_pages(
            room,
            documents,
            f"Summary of room '{room.name}': {len(entries)} messages in {len(documents)} pages.",
        )

    # ------------------------------------------------------------------
    # Turn control
    # ------------------------------------------------------------------

    @_boundary
    async def stop_reply(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name, allow_busy=True)
        if not room.is_waiting or not self._engine.lock.force_stop(room.id):
            return CommandReply(text=f"Room '{room.name}' has no pending reply.")
        return CommandReply(text=f"Stopped the pending reply of room '{room.name}'. You can send a new message.")

    @_boundary
    async def regenerate_last(self, ctx: CommandContext, name: str | None = None) -> CommandReply:
        room = self._resolve(ctx, name)
        result = await self._engine.regenerate(
            TurnInput(room_name=room.name, actor_id=ctx.actor_id, quote_message_id=ctx.quote_message_id)
        )
        return turn_reply(result)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, ctx: CommandContext, name: str | None, *, allow_busy: bool = False) -> RoomView:
        target = (name or "").strip() or self._quotes.resolve_name(ctx.quote_message_id)
        if not target:
            raise ValidationError("missing_target", "Name a room, or quote its latest reply.")
        room = self._engine.get_accessible_room(target, ctx.actor_id)
        if room.is_waiting and not allow_busy:
            raise RoomBusyError(room.name)
        return room

    @staticmethod
    def _require_owner(ctx: CommandContext, room: RoomView, action: str) -> None:
        if not room.is_owner(ctx.actor_id):
            raise PermissionDeniedError(room.name, "not_owner", action)

    def _ensure_name_free(self, name: str) -> None:
        with self._uow_factory() as uow:
            if uow.rooms.get_by_name(name) is not None:
                raise ValidationError("name_taken", f"Room '{name}' already exists.")

    def _create(self, ctx: CommandContext, name: str, preset: str, *, description: str) -> None:
        self._ensure_name_free(name)
        with self._uow_factory() as uow:
            uow.rooms.create(name=name, description=description, preset=preset, owner_id=ctx.actor_id)
            uow.commit()
        self._logger.info("Room %s created by %s", name, ctx.actor_id)

    def _set_visibility(self, ctx: CommandContext, name: str | None, *, is_open: bool) -> CommandReply:
        room = self._resolve(ctx, name)
        label = "public" if is_open else "private"
        self._require_owner(ctx, room, f"make the room {label}")
        if room.is_open == is_open:
            return CommandReply(text=f"Room '{room.name}' is already {label}.")
        self._write(room, {"is_open": is_open})
        return CommandReply(text=f"Room '{room.name}' is now {label}.")

    def _write(self, room: RoomView, values: dict[str, object]) -> None:
        with self._uow_factory() as uow:
            ok = uow.rooms.cas_update(room.id, room.row_version, values)
            if not ok:
                uow.rollback()
                row = uow.rooms.get(room.id)
                if row is not None and row.is_waiting:
                    raise RoomBusyError(room.name)
                raise ConflictError(f"Room '{room.name}' changed meanwhile, try again.")
            uow.commit()

    async def _render(self, markdown: str) -> bytes:
        try:
            return await self._renderer.render(markdown, self._config.theme)
        except RoomChatError:
            raise
        except Exception as exc:
            self._logger.warning("Rendering failed: %s", exc)
            raise RenderFailureError() from exc

    async def _render_pages(self, room: RoomView, documents: Sequence[str], header: str) -> CommandReply:
        images: list[bytes] = []
        failed: list[int] = []
        for number, document in enumerate(documents, start=1):
            try:
                images.append(await self._render(document))
            except RenderFailureError:
                self._logger.warning("History page %s of room %s failed to render", number, room.name)
                failed.append(number)
        text = header
        if failed:
            text += (
                f" Rendered {len(images)}, failed {len(failed)} "
                f"(pages {', '.join(str(n) for n in failed)})."
            )
        return CommandReply(text=text, images=images)


def turn_reply(result: TurnResult) -> CommandReply:
    """Map a turn outcome to what the caller still has to say.

    Successful replies were already delivered by the engine; stale results are
    dropped without a word.
    """
    if result.status in ("ok", "stale"):
        return CommandReply()
    if isinstance(result.error, RoomChatError):
        return CommandReply(text=result.error.user_message())
    return CommandReply(text="The reply failed, check the service logs.")

