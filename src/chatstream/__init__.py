"""chatstream - streaming chat client with reply notifications."""

from .bus import Consumer, NotificationBus, Subscription
from .errors import ChatStreamError, TransportError, TurnCancelledError
from .models import ConversationContext, Notification, ReplyState, TurnRequest, TurnState
from .session import ChatSession

__version__ = "0.1.0"

__all__ = [
    "ChatSession",
    "ChatStreamError",
    "Consumer",
    "ConversationContext",
    "Notification",
    "NotificationBus",
    "ReplyState",
    "Subscription",
    "TransportError",
    "TurnCancelledError",
    "TurnRequest",
    "TurnState",
]
