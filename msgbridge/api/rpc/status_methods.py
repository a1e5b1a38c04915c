"""RPC handler for bridge status (status)."""

from __future__ import annotations

from typing import Any

from loguru import logger

from msgbridge.utils.exceptions import MsgBridgeError


RpcResult = tuple[bool, Any | None, Any | None]


async def build_status_payload(
    *,
    bridge: Any,
    peer_available: bool,
    subscriptions: Any,
    auto_behavior: Any,
) -> dict[str, Any]:
    ready = False
    if peer_available:
        ready = await bridge.launcher.is_ready()
        if ready:
            try:
                await bridge.status()
            except MsgBridgeError as exc:
                logger.debug("Peer status check failed: {}", exc)
    return {
        "ok": True,
        "peer": {
            "available": peer_available,
            "ready": ready,
            "capabilities": bridge.capabilities,
        },
        "subscriptions": len(subscriptions),
        "auto_read": auto_behavior.auto_read,
        "auto_typing": auto_behavior.auto_typing,
    }


async def try_handle_status_method(
    *,
    method: str,
    params: dict[str, Any],
    bridge: Any,
    peer_available: bool,
    subscriptions: Any,
    auto_behavior: Any,
) -> RpcResult | None:
    if method != "status":
        return None
    payload = await build_status_payload(
        bridge=bridge,
        peer_available=peer_available,
        subscriptions=subscriptions,
        auto_behavior=auto_behavior,
    )
    return True, payload, None
