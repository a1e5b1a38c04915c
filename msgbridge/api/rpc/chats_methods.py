"""RPC handlers for conversation listing (chats.list)."""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.params import limit_param
from msgbridge.storage.payloads import chat_payload


RpcResult = tuple[bool, Any | None, Any | None]


async def try_handle_chats_method(
    *,
    method: str,
    params: dict[str, Any],
    store: Any,
    cache: Any,
    default_limit: int,
) -> RpcResult | None:
    """Handle chats.list, most recently active first."""
    if method != "chats.list":
        return None
    limit = limit_param(params, default_limit)
    chats = [
        chat_payload(chat, cache.info(chat.id), cache.participants(chat.id))
        for chat in store.list_chats(limit)
    ]
    return True, {"chats": chats}, None
