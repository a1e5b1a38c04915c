"""RPC handlers for message history (messages.history)."""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.params import limit_param, optional_bool, optional_str, required_int, str_list
from msgbridge.storage.models import MessageFilter
from msgbridge.storage.payloads import build_message_payload


RpcResult = tuple[bool, Any | None, Any | None]


def message_filter_from_params(params: dict[str, Any]) -> MessageFilter:
    return MessageFilter.from_iso(
        participants=str_list(params, "participants"),
        start=optional_str(params, "start"),
        end=optional_str(params, "end"),
    )


async def try_handle_messages_method(
    *,
    method: str,
    params: dict[str, Any],
    store: Any,
    cache: Any,
    default_limit: int,
) -> RpcResult | None:
    """Handle messages.history for one chat, newest first."""
    if method != "messages.history":
        return None
    chat_id = required_int(params, "chat_id")
    limit = limit_param(params, default_limit)
    include_attachments = bool(optional_bool(params, "attachments", False))
    message_filter = message_filter_from_params(params)
    messages = store.messages(chat_id, limit, message_filter)
    payloads = [
        build_message_payload(store, cache, message, include_attachments=include_attachments)
        for message in messages
    ]
    return True, {"messages": payloads}, None
