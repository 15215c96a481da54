from __future__ import annotations

from typing import Protocol, Sequence

from .config import GenerationParams
from .types import Message, OutgoingReply


class CompletionPort(Protocol):
    """Remote chat-completion service.

    Returns the assistant text or raises one of the ``Upstream*`` errors.
    """

    async def complete(self, messages: Sequence[Message], params: GenerationParams) -> str:
        ...


class RendererPort(Protocol):
    async def render(self, markdown: str, theme: str) -> bytes:
        ...


class ReplyChannelPort(Protocol):
    async def send(self, reply: OutgoingReply) -> str | None:
        ...


class DeliveryPort(Protocol):
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
        ...
