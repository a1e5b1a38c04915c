"""Shared dataclass models for RPC dispatch context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from msgbridge.channels.sender import SendFunc


@dataclass(slots=True)
class RpcDispatchHandlers:
    """RPC method handler callables used by the dispatch pipeline."""

    try_handle_chats_method: Callable[..., Awaitable[Any]]
    try_handle_messages_method: Callable[..., Awaitable[Any]]
    try_handle_watch_method: Callable[..., Awaitable[Any]]
    try_handle_send_method: Callable[..., Awaitable[Any]]
    try_handle_presence_method: Callable[..., Awaitable[Any]]
    try_handle_typing_method: Callable[..., Awaitable[Any]]
    try_handle_status_method: Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class RpcDispatchContext:
    """Request-scoped and shared dependencies for building dispatch pipeline."""

    method: str
    params: dict[str, Any]
    rpc_config: Any
    store: Any
    cache: Any
    bridge: Any
    peer_available: bool
    subscriptions: Any
    auto_behavior: Any
    send_message: SendFunc
