"""Pure operations over a room transcript.

Index 0 always holds the system message built from the room preset; indices
``1..len(messages)-1`` are the only ones a user can address.  Every function
returns a new list and leaves its input untouched.
"""

from __future__ import annotations

from typing import Sequence

from .errors import ValidationError
from .normalize import parse_index_spec
from .types import ROLE_ASSISTANT, ROLE_SYSTEM, Message


def clear(preset: str) -> list[Message]:
    return [Message(role=ROLE_SYSTEM, content=preset)]


def addressable_range(messages: Sequence[Message]) -> tuple[int, int]:
    return 1, len(messages) - 1


def _check_index(messages: Sequence[Message], index: int) -> None:
    low, high = addressable_range(messages)
    if high < low:
        raise ValidationError("index_out_of_range", "This room has no chat history yet.")
    if not (low <= index <= high):
        raise ValidationError(
            "index_out_of_range",
            f"Invalid index. Enter a number between {low} and {high}.",
        )


def coerce_index(messages: Sequence[Message], raw: object) -> int:
    """Parse a user-supplied index, reporting the addressable range when it is not a number."""
    try:
        index = int(str(raw).strip())
    except (TypeError, ValueError):
        low, high = addressable_range(messages)
        raise ValidationError(
            "index_out_of_range",
            f"Invalid index. Enter a number between {low} and {high}.",
        ) from None
    _check_index(messages, index)
    return index


def message_at(messages: Sequence[Message], index: int) -> Message:
    _check_index(messages, index)
    return messages[index]


def edit_at(messages: Sequence[Message], index: int, content: str) -> list[Message]:
    _check_index(messages, index)
    out = list(messages)
    out[index] = Message(role=out[index].role, content=content)
    return out


def delete_many(messages: Sequence[Message], raw_spec: str) -> tuple[list[Message], list[int]]:
    """Delete every valid index named in ``raw_spec``.

    Returns the new transcript and the removed indices in ascending order.
    Removal runs from the highest index down so earlier removals do not shift
    the positions of later ones.
    """
    low, high = addressable_range(messages)
    wanted = sorted(
        {n for n in parse_index_spec(raw_spec) if low <= n <= high},
        reverse=True,
    )
    if not wanted:
        if high < low:
            raise ValidationError("no_valid_indices", "This room has no chat history yet.")
        raise ValidationError(
            "no_valid_indices",
            f"No valid index given. Enter numbers between {low} and {high}.",
        )
    out = list(messages)
    for index in wanted:
        del out[index]
    return out, sorted(wanted)


def rewrite_system(messages: Sequence[Message], preset: str) -> list[Message]:
    out = list(messages)
    for i, message in enumerate(out):
        if message.role == ROLE_SYSTEM:
            out[i] = Message(role=ROLE_SYSTEM, content=preset)
            return out
    out.insert(0, Message(role=ROLE_SYSTEM, content=preset))
    return out


def drop_trailing_assistant(messages: Sequence[Message]) -> list[Message] | None:
    """Return the transcript without its final assistant reply.

    ``None`` means there is nothing to regenerate: the history holds only the
    system message, or the last entry is not an assistant reply.
    """
    if len(messages) <= 1 or messages[-1].role != ROLE_ASSISTANT:
        return None
    return list(messages[:-1])
