"""Typed operations against the helper peer."""

from __future__ import annotations

import time
from typing import Any, Callable

from loguru import logger

from msgbridge.bridge.launcher import PeerLauncher
from msgbridge.bridge.mailbox import MailboxPaths, MailboxTransport
from msgbridge.bridge.types import TapbackType
from msgbridge.utils.exceptions import (
    ChatNotFoundError,
    MessageNotFoundError,
    MsgBridgeError,
    PeerOperationError,
    UnsupportedOperationError,
)


CAPABILITY_TABLES: dict[str, frozenset[str]] = {
    "v1": frozenset(
        {
            "ping",
            "status",
            "typing",
            "read",
            "react",
            "list_chats",
            "typing_subscribe",
            "typing_poll",
            "typing_unsubscribe",
        }
    ),
}
DEFAULT_PROTOCOL = "v1"


def map_peer_error(action: str, params: dict[str, Any], message: str) -> MsgBridgeError:
    """Translate a peer failure string into a domain exception."""
    if "Chat not found" in message:
        return ChatNotFoundError(str(params.get("handle") or "unknown"))
    if "Message not found" in message:
        return MessageNotFoundError(str(params.get("guid") or "unknown"))
    if "Unknown action" in message:
        return UnsupportedOperationError(action)
    return PeerOperationError(action, message)


class PeerBridge:
    """Capability-checked facade over the mailbox and launcher."""

    def __init__(
        self,
        transport: MailboxTransport,
        launcher: PeerLauncher,
        *,
        ready_timeout: float = 15.0,
        ready_ttl: float = 0.0,
        protocol: str = DEFAULT_PROTOCOL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.launcher = launcher
        self.ready_timeout = ready_timeout
        self.ready_ttl = ready_ttl
        self._clock = clock
        self._ready_until = 0.0
        self.protocol = protocol
        self._capabilities = CAPABILITY_TABLES[protocol]
        self._reported: frozenset[str] | None = None

    @classmethod
    def from_config(cls, config: Any) -> "PeerBridge":
        transport = MailboxTransport(
            MailboxPaths.from_config(config),
            poll_interval=config.mailbox.poll_interval_ms / 1000,
            timeout=config.mailbox.command_timeout_seconds,
        )
        launcher = PeerLauncher.from_config(config, transport)
        return cls(
            transport,
            launcher,
            ready_timeout=config.mailbox.ready_timeout_seconds,
            ready_ttl=config.mailbox.ready_ttl_seconds,
        )

    @property
    def is_available(self) -> bool:
        """Helper library is installed or a peer has already announced itself."""
        helper = self.launcher.helper_path
        if helper is not None and helper.exists():
            return True
        return self.launcher.paths.ready.exists()

    @property
    def capabilities(self) -> list[str]:
        return sorted(op for op in self._capabilities if self.supports(op))

    def supports(self, op: str) -> bool:
        if op not in self._capabilities:
            return False
        return self._reported is None or op in self._reported

    async def call(self, action: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run one peer action, starting the peer first when needed.

        A peer that answered within the last `ready_ttl` seconds is trusted
        without another readiness check; any transport failure clears that.
        """
        if not self.supports(action):
            raise UnsupportedOperationError(action)
        params = dict(params or {})
        if self._clock() >= self._ready_until:
            await self.launcher.ensure_ready(self.ready_timeout)
        try:
            response = await self.transport.request(action, params)
        except Exception:
            self._ready_until = 0.0
            raise
        self._ready_until = self._clock() + self.ready_ttl
        if response.success:
            return response.payload
        error = map_peer_error(action, params, response.error or "Unknown error")
        logger.debug("Peer {} failed: {}", action, error)
        raise error

    async def set_typing(self, handle: str, typing: bool) -> None:
        await self.call("typing", {"handle": handle, "typing": typing})

    async def mark_as_read(self, handle: str) -> None:
        await self.call("read", {"handle": handle})

    async def send_tapback(self, handle: str, guid: str, tapback: TapbackType, *, remove: bool = False) -> None:
        await self.call("react", {"handle": handle, "guid": guid, "type": tapback.code(remove)})

    async def list_chats(self) -> list[dict[str, Any]]:
        payload = await self.call("list_chats")
        chats = payload.get("chats")
        return [c for c in chats if isinstance(c, dict)] if isinstance(chats, list) else []

    async def status(self) -> dict[str, Any]:
        """Peer status; a reported `capabilities` list narrows supports()."""
        payload = await self.call("status")
        reported = payload.get("capabilities")
        if isinstance(reported, list):
            self._reported = frozenset(str(item) for item in reported)
        return payload

    async def typing_subscribe(
        self,
        *,
        handle: str | None = None,
        chat_guid: str | None = None,
        chat_identifier: str | None = None,
    ) -> dict[str, Any]:
        """Register a peer-side typing queue.

        Returns the peer subscription id plus whatever conversation it resolved:
        `chat_guid`, `chat_identifier`, or an unresolved `chat_filter`.
        """
        params: dict[str, Any] = {}
        if handle:
            params["handle"] = handle
        if chat_guid:
            params["chat_guid"] = chat_guid
        if chat_identifier:
            params["chat_id"] = chat_identifier
        payload = await self.call("typing_subscribe", params)
        subscription = payload.get("subscription")
        if not isinstance(subscription, int) or isinstance(subscription, bool):
            raise PeerOperationError("typing_subscribe", "peer returned no subscription id")
        result: dict[str, Any] = {"subscription": subscription}
        for src, dst in (("chat_guid", "chat_guid"), ("chat_id", "chat_identifier"), ("chat_filter", "chat_filter")):
            value = payload.get(src)
            if isinstance(value, str) and value:
                result[dst] = value
        return result

    async def typing_poll(self, subscription: int) -> list[dict[str, Any]]:
        payload = await self.call("typing_poll", {"subscription": subscription})
        events = payload.get("events")
        return [e for e in events if isinstance(e, dict)] if isinstance(events, list) else []

    async def typing_unsubscribe(self, subscription: int) -> None:
        await self.call("typing_unsubscribe", {"subscription": subscription})

    async def terminate(self) -> None:
        await self.launcher.terminate()
