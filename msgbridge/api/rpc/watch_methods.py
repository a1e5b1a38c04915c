"""RPC handlers for new-message streams (watch.subscribe, watch.unsubscribe)."""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.messages_methods import message_filter_from_params
from msgbridge.api.rpc.params import optional_bool, optional_int, required_int


RpcResult = tuple[bool, Any | None, Any | None]


async def try_handle_watch_method(
    *,
    method: str,
    params: dict[str, Any],
    subscriptions: Any,
) -> RpcResult | None:
    if method == "watch.subscribe":
        subscription_id = subscriptions.subscribe_messages(
            chat_id=optional_int(params, "chat_id"),
            since_rowid=optional_int(params, "since_rowid"),
            message_filter=message_filter_from_params(params),
            include_attachments=bool(optional_bool(params, "attachments", False)),
        )
        return True, {"subscription": subscription_id}, None
    if method == "watch.unsubscribe":
        subscriptions.unsubscribe(required_int(params, "subscription"))
        return True, {"ok": True}, None
    return None
