"""Build ordered RPC dispatch handler pipelines."""

from __future__ import annotations

from msgbridge.api.rpc.context_models import RpcDispatchContext, RpcDispatchHandlers
from msgbridge.api.rpc.dispatch_pipeline import DispatchHandler


def build_rpc_dispatch_handlers_from_context(
    *,
    context: RpcDispatchContext,
    handlers: RpcDispatchHandlers,
) -> tuple[DispatchHandler, ...]:
    """Create ordered handlers tuple for RPC dispatch pipeline."""
    return (
        *_build_store_handlers(context=context, handlers=handlers),
        *_build_peer_handlers(context=context, handlers=handlers),
    )


def _build_store_handlers(
    *,
    context: RpcDispatchContext,
    handlers: RpcDispatchHandlers,
) -> tuple[DispatchHandler, ...]:
    """Handlers answered from the message store and subscription table."""
    ctx = context
    h = handlers
    m = ctx.method
    p = ctx.params
    return (
        lambda: h.try_handle_chats_method(
            method=m,
            params=p,
            store=ctx.store,
            cache=ctx.cache,
            default_limit=ctx.rpc_config.chats_default_limit,
        ),
        lambda: h.try_handle_messages_method(
            method=m,
            params=p,
            store=ctx.store,
            cache=ctx.cache,
            default_limit=ctx.rpc_config.history_default_limit,
        ),
        lambda: h.try_handle_watch_method(
            method=m,
            params=p,
            subscriptions=ctx.subscriptions,
        ),
    )


def _build_peer_handlers(
    *,
    context: RpcDispatchContext,
    handlers: RpcDispatchHandlers,
) -> tuple[DispatchHandler, ...]:
    """Handlers that send messages or talk to the helper peer."""
    ctx = context
    h = handlers
    m = ctx.method
    p = ctx.params
    return (
        lambda: h.try_handle_send_method(
            method=m,
            params=p,
            cache=ctx.cache,
            auto_behavior=ctx.auto_behavior,
            send_message=ctx.send_message,
        ),
        lambda: h.try_handle_presence_method(
            method=m,
            params=p,
            bridge=ctx.bridge,
            peer_available=ctx.peer_available,
        ),
        lambda: h.try_handle_typing_method(
            method=m,
            params=p,
            cache=ctx.cache,
            subscriptions=ctx.subscriptions,
            peer_available=ctx.peer_available,
        ),
        lambda: h.try_handle_status_method(
            method=m,
            params=p,
            bridge=ctx.bridge,
            peer_available=ctx.peer_available,
            subscriptions=ctx.subscriptions,
            auto_behavior=ctx.auto_behavior,
        ),
    )
