"""Character card ingestion.

A character card is a PNG whose text metadata carries a base64-encoded JSON
persona: keyword ``ccv3`` for schema v3, ``chara`` for schema v2.  The parsed
object is folded into a markdown persona document that becomes a room preset.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

from PIL import Image, UnidentifiedImageError

from .errors import CardParseError

logger = logging.getLogger(__name__)

V3_KEYWORD = "ccv3"
V2_KEYWORD = "chara"
DIALOGUE_SEPARATOR = "<START>"
CARD_PRESET_PREFIX = "Please take on the following character setting.\n\n---\n\n"


@dataclass(frozen=True)
class TextChunk:
    keyword: str
    text: str


@dataclass(frozen=True)
class TextValue:
    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class ListValue:
    items: tuple[str, ...]

    def render(self) -> str:
        return ", ".join(self.items)


@dataclass(frozen=True)
class DocumentValue:
    document: Any

    def render(self) -> str:
        body = json.dumps(self.document, indent=2, ensure_ascii=False)
        return f"```json\n{body}\n```"


@dataclass(frozen=True)
class ScalarValue:
    value: Union[bool, int, float]

    def render(self) -> str:
        return json.dumps(self.value)


PersonaValue = Union[TextValue, ListValue, DocumentValue, ScalarValue]


@dataclass(frozen=True)
class PersonaField:
    key: str
    value: PersonaValue


def read_card_chunks(image_bytes: bytes) -> list[TextChunk]:
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.format != "PNG":
                raise CardParseError("invalid_image", f"Expected a PNG image, got {img.format or 'unknown'}.")
            # Text chunks after IDAT only appear once the image data is read.
            img.load()
            text = dict(getattr(img, "text", None) or {})
    except CardParseError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        logger.warning("Character card image could not be read: %s", exc)
        raise CardParseError("invalid_image") from exc
    return [TextChunk(keyword=str(k), text=str(v)) for k, v in text.items()]


def select_persona_chunk(chunks: Sequence[TextChunk]) -> TextChunk:
    if not chunks:
        raise CardParseError("no_text_chunks")
    for keyword in (V3_KEYWORD, V2_KEYWORD):
        for chunk in chunks:
            if chunk.keyword.lower() == keyword:
                return chunk
    logger.warning(
        "Character card has text chunks but no persona keyword: %s",
        ", ".join(c.keyword for c in chunks),
    )
    raise CardParseError("no_recognized_keyword")


def decode_persona_payload(payload: str) -> dict[str, Any]:
    try:
        raw = base64.b64decode(payload.strip())
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Character card payload is malformed: %s", exc)
        raise CardParseError("malformed_payload") from exc
    if not isinstance(data, dict):
        raise CardParseError("malformed_payload", "The persona chunk does not hold a JSON object.")
    return data


def parse_character_card(image_bytes: bytes) -> dict[str, Any]:
    chunk = select_persona_chunk(read_card_chunks(image_bytes))
    return decode_persona_payload(chunk.text)


def _list_item(item: Any) -> str:
    if item is None:
        return ""
    if isinstance(item, str):
        return item
    if isinstance(item, (dict, list)):
        return json.dumps(item, ensure_ascii=False)
    return json.dumps(item)


def to_persona_value(raw: Any) -> PersonaValue | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        return TextValue(raw)
    if isinstance(raw, list):
        return ListValue(tuple(_list_item(item) for item in raw))
    if isinstance(raw, dict):
        return DocumentValue(raw)
    if isinstance(raw, (bool, int, float)):
        return ScalarValue(raw)
    return TextValue(str(raw))


def persona_fields(data: Mapping[str, Any]) -> list[PersonaField]:
    out: list[PersonaField] = []
    for key, raw in data.items():
        value = to_persona_value(raw)
        if value is None:
            continue
        out.append(PersonaField(key=str(key), value=value))
    return out


def render_persona_document(data: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for f in persona_fields(data):
        rendered = f.value.render()
        if not rendered.strip():
            continue
        parts.append(f"## {f.key}\n{rendered}\n\n")
    document = "".join(parts).replace(DIALOGUE_SEPARATOR, "---\n").rstrip()
    if not document:
        raise CardParseError("no_extractable_information")
    return document


def build_card_preset(document: str) -> str:
    return CARD_PRESET_PREFIX + document


def _card_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not value:
        nested = data.get("data")
        if isinstance(nested, dict):
            value = nested.get(key)
    return value.strip() if isinstance(value, str) else ""


def card_display_name(data: Mapping[str, Any]) -> str:
    return _card_field(data, "name")


def card_description(data: Mapping[str, Any], limit: int) -> str:
    return _card_field(data, "description")[:limit].rstrip()
