from .completion import OpenAICompatibleCompletion
from .core.commands import RoomCommands
from .core.config import RoomChatConfig
from .core.engine import ConversationEngine
from .core.router import ChatRouter
from .delivery import RenderedReplyDelivery

__all__ = [
    "ConversationEngine",
    "RoomCommands",
    "ChatRouter",
    "RoomChatConfig",
    "OpenAICompatibleCompletion",
    "RenderedReplyDelivery",
]
