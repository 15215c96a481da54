from __future__ import annotations

import asyncio
import base64
import io
import json

from PIL import Image
from PIL.PngImagePlugin import PngInfo

from room_chat.core.commands import RoomCommands
from room_chat.core.engine import ConversationEngine
from room_chat.core.quotes import QuoteIndex
from room_chat.core.router import ChatRouter, RoutedMessage
from room_chat.core.types import ChatEvent, CommandContext


class StubCompletion:
    def __init__(self):
        self.calls = []

    async def complete(self, messages, params):
        self.calls.append(list(messages))
        return "sure"


class StubDelivery:
    def __init__(self):
        self.calls = []

    async def deliver(self, room_name, reply, **kwargs):
        self.calls.append({"room_name": room_name, **kwargs})
        return "bot-2"


def _router(uow_factory):
    completion = StubCompletion()
    delivery = StubDelivery()
    engine = ConversationEngine(uow_factory, completion, delivery)
    return ChatRouter(engine, QuoteIndex(uow_factory)), completion, delivery


def test_explicit_room_prefix(uow_factory, make_room, load_room):
    async def run_test():
        make_room()
        router, completion, delivery = _router(uow_factory)
        event = ChatEvent(actor_id="owner-1", content="cafe one latte\nplease", message_id="in-1")

        assert router.route(event) == [RoutedMessage("cafe", "one latte\nplease", False)]
        result = await router.handle(event)

        assert result.ok
        assert completion.calls[0][-1].content == "one latte\nplease"
        assert delivery.calls[0]["quote_message_id"] == "in-1"
        assert delivery.calls[0]["force_text"] is False
        assert load_room().last_message_id == "bot-2"

    asyncio.run(run_test())


def test_four_trailing_spaces_force_text(uow_factory, make_room):
    async def run_test():
        make_room()
        router, _completion, delivery = _router(uow_factory)
        result = await router.handle(ChatEvent(actor_id="owner-1", content="cafe hi    "))
        assert result.ok
        assert delivery.calls[0]["force_text"] is True

    asyncio.run(run_test())


def test_quote_with_trailing_spaces_continues_room(uow_factory, make_room, load_room):
    async def run_test():
        make_room(last_message_id="bot-1")
        router, completion, _delivery = _router(uow_factory)
        event = ChatEvent(actor_id="owner-1", content="tell me more  ", quote_message_id="bot-1")

        candidates = router.route(event)
        assert [c.room_name for c in candidates] == ["tell", "cafe"]
        result = await router.handle(event)

        assert result.ok
        assert result.room_name == "cafe"
        assert completion.calls[0][-1].content == "tell me more"

    asyncio.run(run_test())


def test_quote_needs_trailing_spaces(uow_factory, make_room):
    async def run_test():
        make_room(last_message_id="bot-1")
        router, completion, _delivery = _router(uow_factory)
        event = ChatEvent(actor_id="owner-1", content="thanks", quote_message_id="bot-1")
        assert router.route(event) == []
        assert await router.handle(event) is None
        assert completion.calls == []

    asyncio.run(run_test())


def test_unrelated_messages_are_ignored(uow_factory, make_room):
    async def run_test():
        make_room()
        router, completion, _delivery = _router(uow_factory)
        assert await router.handle(ChatEvent(actor_id="owner-1", content="good morning all")) is None
        assert await router.handle(ChatEvent(actor_id="owner-1", content="cafe")) is None
        assert completion.calls == []

    asyncio.run(run_test())


def test_private_or_waiting_rooms_are_not_routed(uow_factory, make_room):
    async def run_test():
        make_room(name="secret", is_open=False)
        make_room(name="busy", is_waiting=True)
        router, completion, _delivery = _router(uow_factory)
        assert await router.handle(ChatEvent(actor_id="stranger", content="secret hi")) is None
        assert await router.handle(ChatEvent(actor_id="owner-1", content="busy hi")) is None
        assert completion.calls == []

    asyncio.run(run_test())


class NullRenderer:
    async def render(self, markdown, theme):
        return b"img"


def test_room_created_from_card_is_reachable_by_name(uow_factory, load_room):
    async def run_test():
        info = PngInfo()
        info.add_text("chara", base64.b64encode(json.dumps({"name": "Hatsune Miku"}).encode()).decode())
        buf = io.BytesIO()
        Image.new("RGB", (2, 2)).save(buf, format="PNG", pnginfo=info)

        completion = StubCompletion()
        engine = ConversationEngine(uow_factory, completion, StubDelivery())
        router = ChatRouter(engine, QuoteIndex(uow_factory))
        commands = RoomCommands(uow_factory, engine, NullRenderer())
        created = await commands.create_room_from_card(CommandContext(actor_id="owner-1"), buf.getvalue())
        assert "Room 'HatsuneMik' created" in created.text

        result = await router.handle(ChatEvent(actor_id="owner-1", content="HatsuneMik hello there"))

        assert result.ok
        assert result.room_name == "HatsuneMik"
        assert completion.calls[0][-1].content == "hello there"
        assert load_room("HatsuneMik").last_message_id == "bot-2"

    asyncio.run(run_test())


def test_private_first_word_falls_back_to_quoted_room(uow_factory, make_room):
    async def run_test():
        make_room(last_message_id="bot-1")
        make_room(name="more", owner_id="someone", is_open=False)
        make_room(name="tell", is_waiting=True)
        router, completion, _delivery = _router(uow_factory)

        private_first = await router.handle(
            ChatEvent(actor_id="owner-1", content="more please  ", quote_message_id="bot-1")
        )
        assert private_first.ok
        assert private_first.room_name == "cafe"

        busy_first = await router.handle(
            ChatEvent(actor_id="owner-1", content="tell me again  ", quote_message_id="bot-2")
        )
        assert busy_first.ok
        assert busy_first.room_name == "cafe"
        assert [call[-1].content for call in completion.calls] == ["more please", "tell me again"]

    asyncio.run(run_test())
