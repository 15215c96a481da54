from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

import httpx

from .core.config import GenerationParams, RoomChatConfig
from .core.errors import (
    UpstreamEmptyResponseError,
    UpstreamRateLimitedError,
    UpstreamStatusError,
    UpstreamTimeoutError,
    UpstreamTransportError,
    UpstreamUnauthorizedError,
)
from .core.types import Message


class OpenAICompatibleCompletion:
    """``CompletionPort`` over an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        log_responses: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.log_responses = log_responses
        self._client = client
        self._owns_client = client is None
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RoomChatConfig, **kwargs: Any) -> "OpenAICompatibleCompletion":
        return cls(
            config.base_url,
            config.api_key,
            timeout=config.request_timeout_seconds,
            log_responses=config.log_responses,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def complete(self, messages: Sequence[Message], params: GenerationParams) -> str:
        client = await self._get_client()
        payload = {"messages": [m.to_dict() for m in messages], **params.to_payload()}
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            self._logger.warning("Completion request timed out after %ss", self.timeout)
            raise UpstreamTimeoutError() from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            self._logger.warning("Completion request failed with status %s", status)
            if status == 401:
                raise UpstreamUnauthorizedError() from exc
            if status == 429:
                raise UpstreamRateLimitedError() from exc
            raise UpstreamStatusError(status) from exc
        except httpx.HTTPError as exc:
            self._logger.error("Completion request failed: %s", exc)
            raise UpstreamTransportError() from exc

        try:
            data = response.json()
        except ValueError as exc:
            self._logger.warning("Completion response is not JSON: %.200s", response.text)
            raise UpstreamEmptyResponseError() from exc

        if self.log_responses:
            self._logger.info("%s", json.dumps(data, indent=2, ensure_ascii=False))

        content = _first_choice_content(data)
        if not content:
            self._logger.warning("Completion response carried no message content: %.500s", data)
            raise UpstreamEmptyResponseError()
        return content


def _first_choice_content(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""
