"""RPC handler for outbound sends (send)."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from msgbridge.api.rpc.params import optional_int, optional_str, optional_text
from msgbridge.channels.sender import MessageSendOptions, MessageService
from msgbridge.services.auto_behavior import resolve_typing_handle
from msgbridge.utils.exceptions import InvalidTargetError, ValidationError


RpcResult = tuple[bool, Any | None, Any | None]


def build_send_options(params: dict[str, Any], cache: Any) -> MessageSendOptions:
    """Validate the target combination and resolve `chat_id` through the chat cache."""
    text = optional_text(params, "text") or ""
    file = optional_str(params, "file") or ""
    service = MessageService.parse(optional_str(params, "service"))
    region = optional_str(params, "region") or "US"

    chat_id = optional_int(params, "chat_id")
    chat_identifier = optional_str(params, "chat_identifier") or ""
    chat_guid = optional_str(params, "chat_guid") or ""
    has_chat_target = chat_id is not None or bool(chat_identifier) or bool(chat_guid)
    recipient = optional_str(params, "to") or ""
    if has_chat_target and recipient:
        raise InvalidTargetError("use to or chat_*; not both")
    if not has_chat_target and not recipient:
        raise InvalidTargetError("to is required for direct sends")
    if not text and not file:
        raise ValidationError("text or file is required", field="text")

    if chat_id is not None:
        info = cache.info(chat_id)
        if info is None:
            raise InvalidTargetError(f"unknown chat_id {chat_id}")
        chat_identifier = info.identifier
        chat_guid = info.guid
    if has_chat_target and not chat_identifier and not chat_guid:
        raise InvalidTargetError("missing chat identifier or guid")

    return MessageSendOptions(
        recipient=recipient,
        text=text,
        attachment_path=file,
        service=service,
        region=region,
        chat_identifier=chat_identifier,
        chat_guid=chat_guid,
    )


async def try_handle_send_method(
    *,
    method: str,
    params: dict[str, Any],
    cache: Any,
    auto_behavior: Any,
    send_message: Callable[[MessageSendOptions], Awaitable[None]],
) -> RpcResult | None:
    """Handle send, wrapped in auto-typing when enabled."""
    if method != "send":
        return None
    options = build_send_options(params, cache)
    handle = resolve_typing_handle(options.recipient, options.chat_identifier, options.chat_guid)
    await auto_behavior.before_send(handle, options.text)
    await send_message(options)
    auto_behavior.after_send(handle)
    return True, {"ok": True}, None
