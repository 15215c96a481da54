from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .errors import ConfigError

THEMES = ("light", "black-gold")


@dataclass(frozen=True)
class GenerationParams:
    model: str = "deepseek-chat"
    max_tokens: int = 8192
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    temperature: float = 1.0
    top_p: float = 1.0

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "frequency_penalty": self.frequency_penalty,
            "max_tokens": self.max_tokens,
            "presence_penalty": self.presence_penalty,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "stream": False,
        }


@dataclass(frozen=True)
class RoomChatConfig:
    base_url: str = "https://api.deepseek.com/v1"
    api_key: str = ""
    model: str = "deepseek-chat"
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    max_tokens: int = 8192
    temperature: float = 1.0
    top_p: float = 1.0
    request_timeout_seconds: float = 30.0

    at_reply: bool = False
    quote_reply: bool = True
    remove_reasoning_block: bool = True
    reasoning_close_marker: str = "</think>"

    theme: str = "black-gold"
    log_responses: bool = False

    max_name_length: int = 10
    max_description_length: int = 20
    history_page_size: int = 15
    summary_page_size: int = 30
    summary_excerpt_chars: int = 50
    allow_delete_open_rooms: bool = False

    database_url: str = "sqlite+pysqlite:///room_chat.db"

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", (self.base_url or "").rstrip("/"))
        if not self.model:
            raise ConfigError("model must not be empty")
        _check_range("max_tokens", self.max_tokens, 1, 8192)
        _check_range("frequency_penalty", self.frequency_penalty, -2, 2)
        _check_range("presence_penalty", self.presence_penalty, -2, 2)
        _check_range("temperature", self.temperature, 0, 2)
        _check_range("top_p", self.top_p, 0, 1)
        if self.request_timeout_seconds <= 0:
            raise ConfigError("request_timeout_seconds must be positive")
        if self.theme not in THEMES:
            raise ConfigError(f"theme must be one of {', '.join(THEMES)}")
        if not self.reasoning_close_marker:
            raise ConfigError("reasoning_close_marker must not be empty")
        for name in (
            "max_name_length",
            "max_description_length",
            "history_page_size",
            "summary_page_size",
            "summary_excerpt_chars",
        ):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1")

    def generation_params(self) -> GenerationParams:
        return GenerationParams(
            model=self.model,
            max_tokens=self.max_tokens,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
            temperature=self.temperature,
            top_p=self.top_p,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        prefix: str = "ROOM_CHAT_",
    ) -> "RoomChatConfig":
        """Build a config from ``ROOM_CHAT_*`` variables.

        Each field is read from ``{prefix}{FIELD_NAME}`` and coerced to the type
        of the field's default; unset variables keep the default.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        return cls(**values)


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not (low <= value <= high):
        raise ConfigError(f"{name} must be between {low} and {high}, got {value}")


def _coerce(name: str, raw: str, default: Any) -> Any:
    raw = raw.strip()
    if isinstance(default, bool):
        lowered = raw.lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ConfigError(f"{name} expects a boolean, got {raw!r}")
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} expects a number, got {raw!r}") from exc
    return raw
