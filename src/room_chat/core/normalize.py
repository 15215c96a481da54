from __future__ import annotations

import json
import re
from typing import Any, Iterable

from .errors import ValidationError
from .types import Message, RoomView

_INDEX_SEPARATORS = re.compile(r"[\s,，、;；]+")


def validate_room_name(value: str | None, max_length: int) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("empty_field", "A room name is required.")
    if any(ch.isspace() for ch in name):
        raise ValidationError("name_has_whitespace", "Room names cannot contain spaces.")
    if len(name) > max_length:
        raise ValidationError("name_too_long", f"Room names cannot exceed {max_length} characters.")
    return name


def validate_description(value: str | None, max_length: int) -> str:
    desc = (value or "").strip()
    if not desc:
        raise ValidationError("empty_field", "A description is required.")
    if len(desc) > max_length:
        raise ValidationError(
            "description_too_long",
            f"Descriptions cannot exceed {max_length} characters.",
        )
    return desc


def require_text(value: str | None, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError("empty_field", f"The {field_name} must not be empty.")
    return text


def parse_index_spec(raw: str | None) -> list[int]:
    """Split ``raw`` on commas, whitespace and CJK separators into integers.

    Tokens that are not integers are dropped; order and duplicates are kept.
    """
    out: list[int] = []
    for token in _INDEX_SEPARATORS.split((raw or "").strip()):
        if not token:
            continue
        try:
            out.append(int(token))
        except ValueError:
            continue
    return out


def redact_reasoning(text: str, marker: str = "</think>") -> str:
    idx = text.rfind(marker)
    if idx == -1:
        return text.strip()
    return text[idx + len(marker):].strip()


def dump_messages(messages: Iterable[Message]) -> str:
    return json.dumps([m.to_dict() for m in messages], ensure_ascii=False)


def parse_messages(text: str | None) -> tuple[Message, ...]:
    if not text:
        return ()
    try:
        data = json.loads(text)
    except ValueError:
        return ()
    if not isinstance(data, list):
        return ()
    return tuple(Message.from_dict(item) for item in data if isinstance(item, dict))


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: max(limit - len(suffix), 0)] + suffix


def room_view_from_row(row: Any) -> RoomView:
    return RoomView(
        id=row.id,
        name=row.name,
        description=row.description or "",
        preset=row.preset or "",
        owner_id=row.owner_id,
        is_open=bool(row.is_open),
        is_waiting=bool(row.is_waiting),
        generation=int(row.generation or 0),
        row_version=int(row.row_version or 1),
        messages=parse_messages(row.messages_json),
        last_message_id=row.last_message_id or None,
    )
