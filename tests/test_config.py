from __future__ import annotations

import pytest

from room_chat.core.config import RoomChatConfig
from room_chat.core.errors import ConfigError


def test_defaults_match_deepseek_endpoint():
    cfg = RoomChatConfig()
    assert cfg.base_url == "https://api.deepseek.com/v1"
    assert cfg.history_page_size == 15
    params = cfg.generation_params().to_payload()
    assert params["model"] == "deepseek-chat"
    assert params["max_tokens"] == 8192
    assert params["stream"] is False


def test_base_url_trailing_slash_is_stripped():
    assert RoomChatConfig(base_url="http://localhost:8000/v1/").base_url == "http://localhost:8000/v1"


@pytest.mark.parametrize(
    "overrides",
    [
        {"temperature": 2.5},
        {"top_p": -0.1},
        {"max_tokens": 0},
        {"frequency_penalty": 3},
        {"theme": "neon"},
        {"request_timeout_seconds": 0},
        {"history_page_size": 0},
        {"model": ""},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ConfigError):
        RoomChatConfig(**overrides)


def test_from_env_coerces_by_default_type():
    cfg = RoomChatConfig.from_env(
        {
            "ROOM_CHAT_API_KEY": "sk-test",
            "ROOM_CHAT_TEMPERATURE": "0.7",
            "ROOM_CHAT_MAX_TOKENS": "1024",
            "ROOM_CHAT_AT_REPLY": "yes",
            "ROOM_CHAT_QUOTE_REPLY": "off",
            "ROOM_CHAT_THEME": "light",
            "OTHER_TEMPERATURE": "9",
        }
    )
    assert cfg.api_key == "sk-test"
    assert cfg.temperature == 0.7
    assert cfg.max_tokens == 1024
    assert cfg.at_reply is True
    assert cfg.quote_reply is False
    assert cfg.theme == "light"


def test_from_env_rejects_malformed_values():
    with pytest.raises(ConfigError):
        RoomChatConfig.from_env({"ROOM_CHAT_AT_REPLY": "maybe"})
    with pytest.raises(ConfigError):
        RoomChatConfig.from_env({"ROOM_CHAT_MAX_TOKENS": "lots"})
