"""Line-delimited JSON-RPC 2.0 server over stdin/stdout."""

from __future__ import annotations

import asyncio
import sys
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from msgbridge.api.rpc.chats_methods import try_handle_chats_method
from msgbridge.api.rpc.context_models import RpcDispatchContext, RpcDispatchHandlers
from msgbridge.api.rpc.dispatch_pipeline import RpcResult, run_handler_pipeline
from msgbridge.api.rpc.error_boundary import (
    msgbridge_error_result,
    rpc_error_result,
    unhandled_exception_result,
    unknown_method_result,
)
from msgbridge.api.rpc.messages_methods import try_handle_messages_method
from msgbridge.api.rpc.pipeline_builder import build_rpc_dispatch_handlers_from_context
from msgbridge.api.rpc.presence_methods import try_handle_presence_method
from msgbridge.api.rpc.protocol import RpcError, RpcRequest
from msgbridge.api.rpc.send_methods import try_handle_send_method
from msgbridge.api.rpc.serialization import FrameError, decode_request_line
from msgbridge.api.rpc.status_methods import try_handle_status_method
from msgbridge.api.rpc.typing_methods import try_handle_typing_method
from msgbridge.api.rpc.watch_methods import try_handle_watch_method
from msgbridge.api.rpc.writer import RpcOutput, RpcWriter
from msgbridge.bridge.client import PeerBridge
from msgbridge.channels.sender import SendFunc, send_message
from msgbridge.config.schema import Config, RpcConfig
from msgbridge.presence.typing_state import TypingStateDiffer
from msgbridge.services.auto_behavior import AutoBehavior
from msgbridge.services.subscriptions import SubscriptionManager
from msgbridge.storage.chat_cache import ChatCache
from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.watcher import MessageWatcher
from msgbridge.utils.exceptions import MsgBridgeError

# Methods that may suspend on the peer or the sender run in their own task.
ASYNC_METHODS = frozenset(
    {
        "send",
        "typing.set",
        "messages.markRead",
        "tapback.send",
        "typing.subscribe",
        "typing.unsubscribe",
        "status",
    }
)

DISPATCH_HANDLERS = RpcDispatchHandlers(
    try_handle_chats_method=try_handle_chats_method,
    try_handle_messages_method=try_handle_messages_method,
    try_handle_watch_method=try_handle_watch_method,
    try_handle_send_method=try_handle_send_method,
    try_handle_presence_method=try_handle_presence_method,
    try_handle_typing_method=try_handle_typing_method,
    try_handle_status_method=try_handle_status_method,
)


class LineReader(Protocol):
    async def readline(self) -> bytes: ...


class StdinLineReader:
    """Reads stdin lines in a worker thread; works for pipes, ttys and files."""

    def __init__(self, stream: Any = None):
        self._stream = stream or sys.stdin.buffer

    async def readline(self) -> bytes:
        return await asyncio.to_thread(self._stream.readline)


def resolve_auto_flag(override: bool | None, configured: bool | None, peer_available: bool) -> bool:
    """Explicit override, else configured value, else peer availability; never on without a peer."""
    value = override if override is not None else configured
    if value is None:
        value = peer_available
    return value and peer_available


class RpcServer:
    """Routes requests to method handlers and owns all per-process state."""

    def __init__(
        self,
        *,
        store: Any,
        bridge: Any,
        output: RpcOutput | None = None,
        rpc_config: RpcConfig | None = None,
        watcher: Any = None,
        auto_read: bool | None = None,
        auto_typing: bool | None = None,
        send_func: SendFunc = send_message,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.rpc_config = rpc_config or RpcConfig()
        self.store = store
        self.cache = ChatCache(store)
        self.watcher = watcher or MessageWatcher(store)
        self.output = output or RpcWriter()
        self.bridge = bridge
        self.send_func = send_func
        self.peer_available = bool(bridge.is_available)
        self.auto_behavior = AutoBehavior(
            bridge,
            auto_read=resolve_auto_flag(auto_read, self.rpc_config.auto_read, self.peer_available),
            auto_typing=resolve_auto_flag(auto_typing, self.rpc_config.auto_typing, self.peer_available),
            read_delay=self.rpc_config.auto_read_delay_seconds,
            sleep=sleep,
        )
        self.differ = TypingStateDiffer()
        self.subscriptions = SubscriptionManager(
            notify=self.output.send_notification,
            watcher=self.watcher,
            store=store,
            cache=self.cache,
            differ=self.differ,
            bridge=bridge,
            on_message=self.auto_behavior.schedule_mark_read,
            spawn=self.auto_behavior.spawn,
            typing_poll_interval=self.rpc_config.typing_poll_interval_seconds,
            sleep=sleep,
        )
        self._inflight: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        auto_read: bool | None = None,
        auto_typing: bool | None = None,
        output: RpcOutput | None = None,
    ) -> "RpcServer":
        store = ChatStore(config.db_path)
        watcher = MessageWatcher(
            store,
            debounce_ms=config.store.watch_debounce_ms,
            batch_limit=config.store.watch_batch_limit,
            fallback_poll_ms=config.store.watch_fallback_poll_ms,
        )
        return cls(
            store=store,
            bridge=PeerBridge.from_config(config),
            output=output,
            rpc_config=config.rpc,
            watcher=watcher,
            auto_read=auto_read,
            auto_typing=auto_typing,
        )

    async def run(self, reader: LineReader | None = None) -> None:
        """Serve until end of input, then drain in-flight requests and cancel the rest."""
        reader = reader or StdinLineReader()
        logger.info(
            "RPC server started (peer_available={}, auto_read={}, auto_typing={})",
            self.peer_available,
            self.auto_behavior.auto_read,
            self.auto_behavior.auto_typing,
        )
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                await self.handle_line(line)
            await self.wait_idle()
        finally:
            await self.shutdown()
        logger.info("RPC server stopped")

    async def handle_line(self, line: str | bytes) -> None:
        try:
            request = decode_request_line(line)
        except FrameError as exc:
            logger.debug("Rejected RPC frame: {}", exc.error)
            self.output.send_error(exc.request_id, exc.error)
            return
        if request.method in ASYNC_METHODS:
            task = asyncio.create_task(self._handle_request(request))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            return
        await self._handle_request(request)

    async def wait_idle(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        await self.wait_idle()
        await self.subscriptions.aclose()
        await self.auto_behavior.aclose()

    async def _handle_request(self, request: RpcRequest) -> None:
        ok, result, error = await self.dispatch(request.method, request.params)
        if not request.expects_response:
            if not ok:
                logger.warning("RPC notification {} failed: {}", request.method, error)
            return
        if ok:
            self.output.send_response(request.id, result)
        else:
            self.output.send_error(request.id, error or RpcError.internal_error("unknown error"))

    async def dispatch(self, method: str, params: dict[str, Any]) -> RpcResult:
        try:
            context = RpcDispatchContext(
                method=method,
                params=params,
                rpc_config=self.rpc_config,
                store=self.store,
                cache=self.cache,
                bridge=self.bridge,
                peer_available=self.peer_available,
                subscriptions=self.subscriptions,
                auto_behavior=self.auto_behavior,
                send_message=self.send_func,
            )
            pipeline_result = await run_handler_pipeline(
                build_rpc_dispatch_handlers_from_context(
                    context=context,
                    handlers=DISPATCH_HANDLERS,
                )
            )
            if pipeline_result is not None:
                return pipeline_result
            return unknown_method_result(method=method)
        except RpcError as e:
            return rpc_error_result(method=method, exc=e, log_info=logger.info)
        except MsgBridgeError as e:
            return msgbridge_error_result(method=method, exc=e, log_warning=logger.warning)
        except Exception as e:
            return unhandled_exception_result(method=method, exc=e, log_exception=logger.exception)
