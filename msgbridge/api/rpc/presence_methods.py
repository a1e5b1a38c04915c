"""RPC handlers for peer side effects: typing.set, messages.markRead, tapback.send."""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.params import optional_bool, optional_str, required_str
from msgbridge.api.rpc.protocol import RpcError
from msgbridge.bridge.types import TapbackType
from msgbridge.utils.exceptions import ValidationError


RpcResult = tuple[bool, Any | None, Any | None]

TAPBACK_CHOICES = "love, thumbsup, thumbsdown, haha, emphasis, question"


def require_peer(peer_available: bool) -> None:
    if not peer_available:
        raise RpcError.internal_error("helper peer not available")


async def try_handle_presence_method(
    *,
    method: str,
    params: dict[str, Any],
    bridge: Any,
    peer_available: bool,
) -> RpcResult | None:
    if method == "typing.set":
        handle = required_str(params, "handle")
        state = optional_str(params, "state")
        if state not in ("on", "off"):
            raise RpcError.invalid_params("state must be 'on' or 'off'")
        require_peer(peer_available)
        await bridge.set_typing(handle, state == "on")
        return True, {"ok": True}, None

    if method == "messages.markRead":
        handle = required_str(params, "handle")
        require_peer(peer_available)
        await bridge.mark_as_read(handle)
        return True, {"ok": True}, None

    if method == "tapback.send":
        handle = required_str(params, "handle")
        guid = optional_str(params, "guid")
        if guid is None:
            raise RpcError.invalid_params("guid is required (message GUID to react to)")
        type_name = optional_str(params, "type")
        if type_name is None:
            raise RpcError.invalid_params(f"type is required ({TAPBACK_CHOICES})")
        remove = bool(optional_bool(params, "remove", False))
        try:
            tapback = TapbackType.from_string(type_name)
        except ValidationError:
            raise RpcError.invalid_params(f"invalid reaction type: '{type_name}'. Valid: {TAPBACK_CHOICES}") from None
        require_peer(peer_available)
        await bridge.send_tapback(handle, guid, tapback, remove=remove)
        return True, {
            "ok": True,
            "handle": handle,
            "guid": guid,
            "type": tapback.display_name,
            "action": "removed" if remove else "added",
        }, None

    return None
