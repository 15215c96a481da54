from __future__ import annotations


class RoomChatError(Exception):
    """Base class for every failure surfaced to a chat user."""

    code = "error"

    def user_message(self) -> str:
        return str(self) or "Something went wrong."


class ConfigError(ValueError):
    pass


class RoomNotFoundError(RoomChatError):
    code = "not_found"

    def __init__(self, name: str):
        super().__init__(f"Room '{name}' does not exist.")
        self.name = name


class PermissionDeniedError(RoomChatError):
    code = "permission_denied"

    def __init__(self, name: str, reason: str = "private_room", action: str | None = None):
        self.name = name
        self.reason = reason
        self.action = action
        what = action or "do that"
        if reason == "not_owner":
            message = f"Only the owner of room '{name}' can {what}."
        elif reason == "not_admin":
            message = f"Only administrators can {what}."
        else:
            message = f"You do not have permission to use private room '{name}'."
        super().__init__(message)


class RoomBusyError(RoomChatError):
    code = "busy"

    def __init__(self, name: str):
        super().__init__(
            f"Room '{name}' is replying, try again later or stop it with the stop-reply command."
        )
        self.name = name


class ValidationError(RoomChatError):
    code = "invalid"

    def __init__(self, reason: str, detail: str):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class ConflictError(RoomChatError):
    """A compare-and-set write lost against a concurrent update."""

    code = "conflict"


class StaleTurnError(RoomChatError):
    """The room's generation moved on while a completion was outstanding."""

    code = "stale"


class UpstreamError(RoomChatError):
    code = "upstream_error"
    default_message = "The completion request failed, check the service logs."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class UpstreamTimeoutError(UpstreamError):
    code = "upstream_timeout"
    default_message = "The completion request timed out, try again later."


class UpstreamUnauthorizedError(UpstreamError):
    code = "upstream_unauthorized"
    default_message = "The completion request failed: the API key is invalid."


class UpstreamRateLimitedError(UpstreamError):
    code = "upstream_rate_limited"
    default_message = "The completion request failed: rate limit reached."


class UpstreamStatusError(UpstreamError):
    code = "upstream_status"

    def __init__(self, status_code: int):
        super().__init__(f"The completion request failed with status {status_code}.")
        self.status_code = status_code


class UpstreamEmptyResponseError(UpstreamError):
    code = "upstream_empty"
    default_message = "The completion service returned no content."


class UpstreamTransportError(UpstreamError):
    code = "upstream_transport"
    default_message = "The completion request failed, check the network connection or service logs."


class RenderFailureError(RoomChatError):
    code = "render_failed"

    def __init__(self, message: str = "Rendering the reply failed."):
        super().__init__(message)


class CardParseError(RoomChatError):
    code = "card_parse_failed"

    _MESSAGES = {
        "invalid_image": "The attachment is not a readable PNG image.",
        "no_text_chunks": "No metadata text was found in the image.",
        "no_recognized_keyword": "No recognized persona chunk ('ccv3' or 'chara') was found in the image.",
        "malformed_payload": "The persona chunk is not valid base64-encoded JSON.",
        "no_extractable_information": "The card was parsed but contains no extractable information.",
    }

    def __init__(self, reason: str, detail: str | None = None):
        super().__init__(detail or self._MESSAGES.get(reason, "The character card could not be parsed."))
        self.reason = reason
