"""Wire payload builders for chats and messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from msgbridge.storage.chat_cache import ChatCache
from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.models import AttachmentMeta, Chat, ChatInfo, Message, Reaction
from msgbridge.utils.helpers import to_iso


def _iso(value: datetime | None) -> str | None:
    return to_iso(value) if value is not None else None


def chat_payload(chat: Chat, info: ChatInfo | None, participants: list[str]) -> dict[str, Any]:
    """ChatSummary; cached chat info wins over the listing row when present."""
    identifier = info.identifier if info and info.identifier else chat.identifier
    name = info.name if info and info.name else chat.name
    return {
        "id": chat.id,
        "identifier": identifier,
        "guid": info.guid if info else "",
        "name": name,
        "service": info.service if info and info.service else chat.service,
        "last_message_at": _iso(chat.last_message_at),
        "participants": participants,
        "is_group": len(participants) > 1,
    }


def attachment_payload(meta: AttachmentMeta) -> dict[str, Any]:
    return {
        "filename": meta.filename,
        "transfer_name": meta.transfer_name,
        "display_name": meta.display_name,
        "uti": meta.uti,
        "mime_type": meta.mime_type,
        "total_bytes": meta.total_bytes,
        "is_sticker": meta.is_sticker,
        "original_path": meta.original_path,
        "missing": meta.missing,
    }


def reaction_payload(reaction: Reaction) -> dict[str, Any]:
    return {
        "id": reaction.rowid,
        "type": reaction.type,
        "sender": reaction.sender,
        "is_from_me": reaction.is_from_me,
        "created_at": _iso(reaction.date),
        "removed": reaction.removed,
    }


def message_payload(
    message: Message,
    info: ChatInfo | None,
    participants: list[str],
    attachments: list[AttachmentMeta] | None = None,
    reactions: list[Reaction] | None = None,
) -> dict[str, Any]:
    return {
        "id": message.rowid,
        "chat_id": message.chat_id,
        "guid": message.guid,
        "reply_to_guid": message.reply_to_guid,
        "sender": message.sender,
        "is_from_me": message.is_from_me,
        "text": message.text,
        "created_at": _iso(message.date),
        "service": message.service,
        "chat_identifier": info.identifier if info else None,
        "chat_guid": info.guid if info else None,
        "chat_name": info.name if info else None,
        "participants": participants,
        "is_group": len(participants) > 1,
        "attachments": [attachment_payload(a) for a in attachments or []],
        "reactions": [reaction_payload(r) for r in reactions or []],
    }


def build_message_payload(
    store: ChatStore,
    cache: ChatCache,
    message: Message,
    *,
    include_attachments: bool = False,
) -> dict[str, Any]:
    """Message payload with chat metadata; attachments and reactions only when asked."""
    attachments = store.attachments(message.rowid) if include_attachments else []
    reactions = store.reactions(message.rowid) if include_attachments else []
    return message_payload(
        message,
        cache.info(message.chat_id),
        cache.participants(message.chat_id),
        attachments,
        reactions,
    )
