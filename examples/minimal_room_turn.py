from __future__ import annotations

import asyncio
import logging

from room_chat.core.commands import RoomCommands, turn_reply
from room_chat.core.config import RoomChatConfig
from room_chat.core.engine import ConversationEngine
from room_chat.core.quotes import QuoteIndex
from room_chat.core.router import ChatRouter
from room_chat.core.types import ChatEvent, CommandContext
from room_chat.delivery import RenderedReplyDelivery
from room_chat.persistence.sqlalchemy import build_uow_factory


class DemoCompletion:
    async def complete(self, messages, params):
        last = messages[-1].content
        return f"<think>The guest said {last!r}.</think>\nOne {last}, coming right up."


class TextRenderer:
    async def render(self, markdown, theme):
        return markdown.encode("utf-8")


class ConsoleChannel:
    def __init__(self):
        self.count = 0

    async def send(self, reply):
        self.count += 1
        print(f"[bot-{self.count}] {reply.text}")
        if reply.image:
            print(reply.image.decode("utf-8"))
        return f"bot-{self.count}"


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = RoomChatConfig(database_url="sqlite+pysqlite:///:memory:")
    uow_factory = build_uow_factory(config.database_url)

    delivery = RenderedReplyDelivery.from_config(TextRenderer(), ConsoleChannel(), config)
    engine = ConversationEngine(uow_factory, DemoCompletion(), delivery, config=config)
    quotes = QuoteIndex(uow_factory)
    commands = RoomCommands(uow_factory, engine, TextRenderer(), config=config, quotes=quotes)
    router = ChatRouter(engine, quotes)

    ctx = CommandContext(actor_id="guest-1", actor_name="Guest")
    print((await commands.create_room(ctx, "cafe", "You are a friendly barista.")).text)

    result = await router.handle(ChatEvent(actor_id="guest-1", content="cafe latte", message_id="in-1"))
    print("turn status:", result.status, turn_reply(result).text)

    result = await router.handle(
        ChatEvent(actor_id="guest-1", content="cortado    ", message_id="in-2", quote_message_id=result.message_id)
    )
    print("turn status:", result.status)

    summary = await commands.view_history_summary(ctx, "cafe")
    print(summary.text)
    for image in summary.images:
        print(image.decode("utf-8"))


if __name__ == "__main__":
    asyncio.run(main())
