from .cards import parse_character_card, render_persona_document
from .commands import RoomCommands, turn_reply
from .config import GenerationParams, RoomChatConfig
from .engine import ConversationEngine
from .errors import (
    CardParseError,
    ConfigError,
    ConflictError,
    PermissionDeniedError,
    RenderFailureError,
    RoomBusyError,
    RoomChatError,
    RoomNotFoundError,
    StaleTurnError,
    UpstreamError,
    ValidationError,
)
from .locks import RoomLock
from .ports import CompletionPort, DeliveryPort, RendererPort, ReplyChannelPort
from .quotes import QuoteIndex
from .router import ChatRouter, RoutedMessage
from .types import (
    BatchTally,
    ChatEvent,
    CommandContext,
    CommandReply,
    Message,
    OutgoingReply,
    RoomView,
    TurnInput,
    TurnResult,
    TurnTicket,
)

__all__ = [
    "ConversationEngine",
    "RoomCommands",
    "ChatRouter",
    "RoutedMessage",
    "RoomLock",
    "QuoteIndex",
    "RoomChatConfig",
    "GenerationParams",
    "CompletionPort",
    "DeliveryPort",
    "RendererPort",
    "ReplyChannelPort",
    "parse_character_card",
    "render_persona_document",
    "turn_reply",
    "RoomChatError",
    "ConfigError",
    "ConflictError",
    "PermissionDeniedError",
    "RenderFailureError",
    "RoomBusyError",
    "RoomNotFoundError",
    "StaleTurnError",
    "UpstreamError",
    "ValidationError",
    "CardParseError",
    "BatchTally",
    "ChatEvent",
    "CommandContext",
    "CommandReply",
    "Message",
    "OutgoingReply",
    "RoomView",
    "TurnInput",
    "TurnResult",
    "TurnTicket",
]
