"""Markdown documents handed to the renderer."""

from __future__ import annotations

from typing import Sequence

from .normalize import truncate
from .types import ROLE_USER, Message, RoomView

_ROLE_LABELS = {ROLE_USER: "👤 User"}


def role_label(role: str) -> str:
    return _ROLE_LABELS.get(role, "🤖 Assistant")


def room_list_document(rooms: Sequence[RoomView]) -> str:
    ordered = sorted(rooms, key=lambda r: (not r.is_open, r.name.casefold(), r.name))
    lines = ["# Rooms", "", "| Room | Description |", "| :--- | :--- |"]
    for room in ordered:
        suffix = "" if room.is_open else " (private)"
        lines.append(f"| {room.name}{suffix} | {room.description or 'none'} |")
    return "\n".join(lines)


def preset_document(room: RoomView) -> str:
    return f"# Preset of {room.name}\n\n---\n\n{room.preset}"


def card_preview_document(room_name: str, card_name: str, owner: str, preset: str) -> str:
    return (
        f"# Room: {room_name} (persona: {card_name or 'unknown'})\n\n"
        f"**Owner:** @{owner}\n\n---\n\n{preset}"
    )


def paginate(items: Sequence[Message], page_size: int) -> list[tuple[int, list[Message]]]:
    """Split ``items`` into pages, pairing each with the 1-based index of its first entry."""
    return [
        (start + 1, list(items[start : start + page_size]))
        for start in range(0, len(items), page_size)
    ]


def history_page_document(first_index: int, messages: Sequence[Message]) -> str:
    blocks = [
        f"## {first_index + offset}. {role_label(message.role)}\n\n{message.content}"
        for offset, message in enumerate(messages)
    ]
    return "\n\n---\n\n".join(blocks)


def history_summary_document(
    room_name: str,
    first_index: int,
    messages: Sequence[Message],
    excerpt_chars: int,
) -> str:
    lines = [f"# History of {room_name}", ""]
    for offset, message in enumerate(messages):
        excerpt = truncate(message.content, excerpt_chars)
        lines.append(f"- **#{first_index + offset}** {role_label(message.role)}: {excerpt}")
    return "\n".join(lines)
