"""Client-side conversation and message sync engine."""

from .active import ActiveConversationTracker
from .api_client import ChatApiClient
from .compose import ComposeSession, ComposeState
from .config import ChatConfig, load_config
from .conversation_store import ConversationStore
from .engine import ChatEngine
from .errors import ApiError, ChatSyncError, PageLoadRejected, PayloadError
from .events import normalize
from .hub import LocalHub, Subscription
from .identity import SessionProvider, restore_session
from .message_cache import MessagePageCache
from .models import Conversation, Message, MessagePage, PageMeta, User
from .realtime import PusherTransport
from .result import Result
from .subscriptions import SubscriptionCoordinator

__all__ = [
    "ActiveConversationTracker",
    "ChatApiClient",
    "ComposeSession",
    "ComposeState",
    "ChatConfig",
    "load_config",
    "ConversationStore",
    "ChatEngine",
    "ApiError",
    "ChatSyncError",
    "PageLoadRejected",
    "PayloadError",
    "normalize",
    "LocalHub",
    "Subscription",
    "SessionProvider",
    "restore_session",
    "MessagePageCache",
    "Conversation",
    "Message",
    "MessagePage",
    "PageMeta",
    "User",
    "PusherTransport",
    "Result",
    "SubscriptionCoordinator",
]
