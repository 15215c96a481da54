from __future__ import annotations

import logging

from .core.config import RoomChatConfig
from .core.errors import RenderFailureError
from .core.ports import RendererPort, ReplyChannelPort
from .core.types import OutgoingReply

REGENERATED_MARK = " (regenerated)"


def reply_header(room_name: str, transcript_length: int, regenerated: bool = False) -> str:
    header = f"{room_name} ({transcript_length})"
    return header + REGENERATED_MARK if regenerated else header


class RenderedReplyDelivery:
    """``DeliveryPort`` that renders replies to images before sending them.

    Plain-text mode sends ``"<header>\\n\\n<reply>"``; image mode sends the
    header with the rendered reply attached.
    """

    def __init__(
        self,
        renderer: RendererPort,
        channel: ReplyChannelPort,
        *,
        theme: str = "black-gold",
        at_reply: bool = False,
        quote_reply: bool = True,
        logger: logging.Logger | None = None,
    ):
        self._renderer = renderer
        self._channel = channel
        self._theme = theme
        self._at_reply = at_reply
        self._quote_reply = quote_reply
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        renderer: RendererPort,
        channel: ReplyChannelPort,
        config: RoomChatConfig,
    ) -> "RenderedReplyDelivery":
        return cls(
            renderer,
            channel,
            theme=config.theme,
            at_reply=config.at_reply,
            quote_reply=config.quote_reply,
        )

    async def deliver(
        self,
        room_name: str,
        reply: str,
        *,
        transcript_length: int,
        regenerated: bool = False,
        force_text: bool = False,
        quote_message_id: str | None = None,
        actor_id: str | None = None,
    ) -> str | None:
        header = reply_header(room_name, transcript_length, regenerated)
        outgoing = OutgoingReply(
            text=f"{header}\n\n{reply}",
            quote_message_id=quote_message_id if self._quote_reply else None,
            mention_actor_id=actor_id if self._at_reply else None,
        )
        if not force_text:
            try:
                image = await self._renderer.render(reply, self._theme)
            except Exception as exc:
                self._logger.warning("Rendering reply for room %s failed: %s", room_name, exc)
                raise RenderFailureError() from exc
            outgoing.text = header
            outgoing.image = image
        return await self._channel.send(outgoing)
