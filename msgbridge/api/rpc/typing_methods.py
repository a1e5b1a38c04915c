"""RPC handlers for typing activity streams (typing.subscribe, typing.unsubscribe)."""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.params import optional_int, optional_str, required_int, str_list
from msgbridge.api.rpc.presence_methods import require_peer
from msgbridge.api.rpc.protocol import RpcError


RpcResult = tuple[bool, Any | None, Any | None]


async def try_handle_typing_method(
    *,
    method: str,
    params: dict[str, Any],
    cache: Any,
    subscriptions: Any,
    peer_available: bool,
) -> RpcResult | None:
    if method == "typing.subscribe":
        chat_guid = optional_str(params, "chat_guid")
        chat_identifier = optional_str(params, "chat_identifier")
        chat_id = optional_int(params, "chat_id")
        if chat_id is not None:
            info = cache.info(chat_id)
            if info is None:
                raise RpcError.invalid_params(f"unknown chat_id {chat_id}")
            chat_guid = info.guid or None
            chat_identifier = info.identifier or None
        participants = str_list(params, "participants")
        require_peer(peer_available)
        result = await subscriptions.subscribe_typing(
            handle=optional_str(params, "handle"),
            chat_guid=chat_guid,
            chat_identifier=chat_identifier,
            participants=participants,
        )
        return True, result, None
    if method == "typing.unsubscribe":
        subscriptions.unsubscribe(required_int(params, "subscription"))
        return True, {"ok": True}, None
    return None
