"""Read-through cache of chat metadata; entries are never invalidated."""

from __future__ import annotations

from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.models import ChatInfo


class ChatCache:
    def __init__(self, store: ChatStore):
        self.store = store
        self._info: dict[int, ChatInfo] = {}
        self._participants: dict[int, list[str]] = {}

    def info(self, chat_id: int) -> ChatInfo | None:
        cached = self._info.get(chat_id)
        if cached is not None:
            return cached
        info = self.store.chat_info(chat_id)
        if info is not None:
            self._info[chat_id] = info
        return info

    def participants(self, chat_id: int) -> list[str]:
        cached = self._participants.get(chat_id)
        if cached is not None:
            return cached
        participants = self.store.participants(chat_id)
        self._participants[chat_id] = participants
        return participants
