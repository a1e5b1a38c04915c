"""Read-only Messages database access and change feed."""

from msgbridge.storage.chat_cache import ChatCache
from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.models import AttachmentMeta, Chat, ChatInfo, Message, MessageFilter, Reaction
from msgbridge.storage.watcher import MessageWatcher

__all__ = [
    "AttachmentMeta",
    "Chat",
    "ChatCache",
    "ChatInfo",
    "ChatStore",
    "Message",
    "MessageFilter",
    "MessageWatcher",
    "Reaction",
]
