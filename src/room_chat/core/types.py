from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT)


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Message":
        role = str(raw.get("role") or ROLE_USER)
        if role not in ROLES:
            role = ROLE_USER
        return cls(role=role, content=str(raw.get("content") or ""))


@dataclass(frozen=True)
class RoomView:
    id: int
    name: str
    description: str
    preset: str
    owner_id: str
    is_open: bool
    is_waiting: bool
    generation: int
    row_version: int
    messages: tuple[Message, ...]
    last_message_id: Optional[str] = None

    def can_access(self, actor_id: str) -> bool:
        return self.is_open or self.owner_id == actor_id

    def is_owner(self, actor_id: str) -> bool:
        return self.owner_id == actor_id


@dataclass(frozen=True)
class TurnTicket:
    room_id: int
    room_name: str
    generation: int


@dataclass
class TurnInput:
    room_name: str
    actor_id: str
    text: str = ""
    force_text: bool = False
    quote_message_id: Optional[str] = None


@dataclass
class TurnResult:
    status: str
    room_name: Optional[str] = None
    reply: Optional[str] = None
    message_id: Optional[str] = None
    transcript_length: int = 0
    regenerated: bool = False
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class OutgoingReply:
    text: str
    image: Optional[bytes] = None
    quote_message_id: Optional[str] = None
    mention_actor_id: Optional[str] = None


@dataclass
class CommandContext:
    actor_id: str
    quote_message_id: Optional[str] = None
    actor_name: Optional[str] = None
    is_admin: bool = False


@dataclass
class CommandReply:
    text: str = ""
    images: list[bytes] = field(default_factory=list)


@dataclass
class ChatEvent:
    actor_id: str
    content: str
    message_id: Optional[str] = None
    quote_message_id: Optional[str] = None


@dataclass
class BatchTally:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
