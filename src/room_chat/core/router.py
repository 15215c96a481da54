from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .engine import ConversationEngine
from .errors import RoomChatError
from .quotes import QuoteIndex
from .types import ChatEvent, TurnInput, TurnResult

_EXPLICIT_ROOM = re.compile(r"^(\S+)\s+([\s\S]+)")
CONTINUE_SUFFIX = "  "
FORCE_TEXT_SUFFIX = "    "


@dataclass(frozen=True)
class RoutedMessage:
    room_name: str
    text: str
    force_text: bool


class ChatRouter:
    """Turn inbound chat messages into conversation turns.

    ``"<room> <text>"`` talks to a room by name.  Quoting a room's latest
    reply and ending the message with two or more spaces continues that room
    when the first word names no room the sender can use.  Four or more trailing spaces ask
    for a plain-text reply.  Anything else is left for other handlers
    (``handle`` returns ``None``).
    """

    def __init__(
        self,
        engine: ConversationEngine,
        quotes: QuoteIndex,
        logger: logging.Logger | None = None,
    ):
        self._engine = engine
        self._quotes = quotes
        self._logger = logger or logging.getLogger(__name__)

    def route(self, event: ChatEvent) -> list[RoutedMessage]:
        """Candidate targets for ``event``, explicit room name first."""
        content = event.content or ""
        force_text = content.endswith(FORCE_TEXT_SUFFIX)
        out: list[RoutedMessage] = []
        match = _EXPLICIT_ROOM.match(content)
        if match and match.group(2).strip():
            out.append(RoutedMessage(match.group(1), match.group(2).strip(), force_text))
        if event.quote_message_id and content.endswith(CONTINUE_SUFFIX) and content.strip():
            room_name = self._quotes.resolve_name(event.quote_message_id)
            if room_name:
                out.append(RoutedMessage(room_name, content.strip(), force_text))
        return out

    async def handle(self, event: ChatEvent) -> Optional[TurnResult]:
        for routed in self.route(event):
            try:
                room = self._engine.get_accessible_room(routed.room_name, event.actor_id)
            except RoomChatError as exc:
                self._logger.debug("Skipping route to %s: %s", routed.room_name, exc.code)
                continue
            if room.is_waiting:
                continue
            result = await self._engine.run_turn(
                TurnInput(
                    room_name=room.name,
                    actor_id=event.actor_id,
                    text=routed.text,
                    force_text=routed.force_text,
                    quote_message_id=event.message_id,
                )
            )
            if result.status == "busy":
                # Lost the race to another message for the same room.
                self._logger.debug("Room %s became busy before the turn started", room.name)
                return None
            return result
        return None
