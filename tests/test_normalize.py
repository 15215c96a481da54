from __future__ import annotations

import pytest

from room_chat.core.errors import ValidationError
from room_chat.core.normalize import (
    dump_messages,
    parse_index_spec,
    parse_messages,
    redact_reasoning,
    truncate,
    validate_description,
    validate_room_name,
)
from room_chat.core.types import Message


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("foo</think>bar", "bar"),
        ("plain reply", "plain reply"),
        ("a</think>b</think>  c ", "c"),
        ("  only thinking</think>", ""),
        ("\n no marker \n", "no marker"),
    ],
)
def test_redact_reasoning(raw, expected):
    assert redact_reasoning(raw) == expected


def test_redact_reasoning_custom_marker():
    assert redact_reasoning("x[/r]y", "[/r]") == "y"


def test_parse_index_spec():
    assert parse_index_spec("1, 2 3，4、5;6；7") == [1, 2, 3, 4, 5, 6, 7]
    assert parse_index_spec("2 two 2") == [2, 2]
    assert parse_index_spec("") == []
    assert parse_index_spec(None) == []


def test_room_name_rules():
    assert validate_room_name("  cafe ", 10) == "cafe"
    with pytest.raises(ValidationError) as exc_info:
        validate_room_name("abcdefghijk", 10)
    assert exc_info.value.reason == "name_too_long"
    with pytest.raises(ValidationError) as exc_info:
        validate_room_name("   ", 10)
    assert exc_info.value.reason == "empty_field"
    with pytest.raises(ValidationError) as exc_info:
        validate_room_name("two words", 10)
    assert exc_info.value.reason == "name_has_whitespace"


def test_description_rules():
    assert validate_description("cozy", 20) == "cozy"
    with pytest.raises(ValidationError) as exc_info:
        validate_description("x" * 21, 20)
    assert exc_info.value.reason == "description_too_long"


def test_messages_json_tolerates_bad_rows():
    stored = dump_messages([Message("system", "p"), Message("user", "héllo")])
    assert "héllo" in stored
    assert parse_messages(stored) == (Message("system", "p"), Message("user", "héllo"))
    assert parse_messages("not json") == ()
    assert parse_messages('{"role": "user"}') == ()
    assert parse_messages('[{"role": "wizard", "content": "x"}, 3]') == (Message("user", "x"),)


def test_truncate_flattens_whitespace():
    assert truncate("a\n\nb   c", 10) == "a b c"
    assert truncate("abcdefghij", 6) == "abc..."


def test_redact_reasoning_with_reasoning_marker():
    assert redact_reasoning("foo</reasoning>bar", "</reasoning>") == "bar"
    assert redact_reasoning("  foo bar ", "</reasoning>") == "foo bar"
