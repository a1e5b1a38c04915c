"""Message and typing subscriptions streamed as RPC notifications.

One table holds both kinds; ids come from a single counter and are never
reused. Each subscription is driven by its own producer task. A producer that
fails emits an `error` notification and stops, but its id stays registered
until the client unsubscribes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine

from loguru import logger

from msgbridge.presence.typing_state import TypingEvent, TypingFilter, TypingStateDiffer
from msgbridge.storage.models import Message, MessageFilter
from msgbridge.storage.payloads import message_payload
from msgbridge.utils.exceptions import MsgBridgeError, SubscriptionNotFoundError, sanitize_error_message

Notify = Callable[[str, dict[str, Any]], None]
Spawn = Callable[[Coroutine[Any, Any, Any], str], Any]


@dataclass(slots=True)
class Subscription:
    id: int
    kind: str  # "message" or "typing"
    filter: dict[str, Any] = field(default_factory=dict)
    task: asyncio.Task[None] | None = None


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, MsgBridgeError):
        return sanitize_error_message(exc.message)
    return sanitize_error_message(str(exc) or type(exc).__name__)


class SubscriptionManager:
    def __init__(
        self,
        *,
        notify: Notify,
        watcher: Any,
        store: Any,
        cache: Any,
        differ: TypingStateDiffer,
        bridge: Any,
        on_message: Callable[[dict[str, Any]], Any] | None = None,
        spawn: Spawn | None = None,
        typing_poll_interval: float = 0.35,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.notify = notify
        self.watcher = watcher
        self.store = store
        self.cache = cache
        self.differ = differ
        self.bridge = bridge
        self.on_message = on_message
        self._spawn = spawn
        self.typing_poll_interval = typing_poll_interval
        self._sleep = sleep
        self._next_id = 1
        self._subs: dict[int, Subscription] = {}

    def __len__(self) -> int:
        return len(self._subs)

    def get(self, subscription_id: int) -> Subscription | None:
        return self._subs.get(subscription_id)

    def _allocate_id(self) -> int:
        subscription_id = self._next_id
        self._next_id += 1
        return subscription_id

    def subscribe_messages(
        self,
        *,
        chat_id: int | None = None,
        since_rowid: int | None = None,
        message_filter: MessageFilter | None = None,
        include_attachments: bool = False,
    ) -> int:
        subscription_id = self._allocate_id()
        sub = Subscription(
            id=subscription_id,
            kind="message",
            filter={"chat_id": chat_id, "since_rowid": since_rowid},
        )
        self._subs[subscription_id] = sub
        sub.task = asyncio.create_task(
            self._produce_messages(
                subscription_id,
                chat_id=chat_id,
                since_rowid=since_rowid,
                message_filter=message_filter or MessageFilter(),
                include_attachments=include_attachments,
            )
        )
        logger.info("Subscription {} watching messages chat_id={}", subscription_id, chat_id)
        return subscription_id

    async def subscribe_typing(
        self,
        *,
        handle: str | None = None,
        chat_guid: str | None = None,
        chat_identifier: str | None = None,
        participants: list[str] | None = None,
    ) -> dict[str, Any]:
        """Register a peer-side typing queue and start polling it."""
        peer = await self.bridge.typing_subscribe(
            handle=handle,
            chat_guid=chat_guid,
            chat_identifier=chat_identifier,
        )
        subscription_id = self._allocate_id()
        typing_filter = TypingFilter(
            chat_guid=peer.get("chat_guid") or chat_guid,
            chat_identifier=peer.get("chat_identifier") or chat_identifier,
            raw=peer.get("chat_filter"),
        )
        queue: asyncio.Queue[TypingEvent] = asyncio.Queue()
        self.differ.register(subscription_id, typing_filter, queue.put_nowait)
        sub = Subscription(
            id=subscription_id,
            kind="typing",
            filter={
                "chat_guid": typing_filter.chat_guid,
                "chat_identifier": typing_filter.chat_identifier,
                "chat_filter": typing_filter.raw,
                "participants": list(participants or []),
            },
        )
        self._subs[subscription_id] = sub
        sub.task = asyncio.create_task(
            self._produce_typing(subscription_id, peer["subscription"], queue, participants or [])
        )
        logger.info("Subscription {} watching typing (peer queue {})", subscription_id, peer["subscription"])
        result: dict[str, Any] = {"subscription": subscription_id}
        for key in ("chat_guid", "chat_identifier", "chat_filter"):
            if peer.get(key):
                result[key] = peer[key]
        return result

    def unsubscribe(self, subscription_id: int) -> None:
        sub = self._subs.pop(subscription_id, None)
        if sub is None:
            raise SubscriptionNotFoundError(subscription_id)
        if sub.task is not None and not sub.task.done():
            sub.task.cancel()
        logger.info("Subscription {} cancelled", subscription_id)

    async def aclose(self) -> None:
        subs = list(self._subs.values())
        self._subs.clear()
        tasks = [sub.task for sub in subs if sub.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _message_payload(self, message: Message, include_attachments: bool) -> dict[str, Any]:
        attachments: list[Any] = []
        reactions: list[Any] = []
        if include_attachments:
            attachments = await asyncio.to_thread(self.store.attachments, message.rowid)
            reactions = await asyncio.to_thread(self.store.reactions, message.rowid)
        return message_payload(
            message,
            self.cache.info(message.chat_id),
            self.cache.participants(message.chat_id),
            attachments,
            reactions,
        )

    async def _produce_messages(
        self,
        subscription_id: int,
        *,
        chat_id: int | None,
        since_rowid: int | None,
        message_filter: MessageFilter,
        include_attachments: bool,
    ) -> None:
        try:
            async for message in self.watcher.stream(chat_id=chat_id, since_rowid=since_rowid):
                if not message_filter.allows(message):
                    continue
                payload = await self._message_payload(message, include_attachments)
                self.notify("message", {"subscription": subscription_id, "message": payload})
                if self.on_message is not None:
                    self.on_message(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Subscription {} stopped: {}", subscription_id, exc)
            self.notify("error", {"subscription": subscription_id, "error": {"message": _error_text(exc)}})

    async def _produce_typing(
        self,
        subscription_id: int,
        peer_subscription: int,
        queue: asyncio.Queue[TypingEvent],
        participants: list[str],
    ) -> None:
        allowed = {p.casefold() for p in participants}
        try:
            while True:
                for observation in await self.bridge.typing_poll(peer_subscription):
                    self.differ.observe(observation)
                while not queue.empty():
                    event = queue.get_nowait()
                    if allowed and event.handle.casefold() not in allowed:
                        continue
                    self.notify("typing", {"subscription": subscription_id, "event": event.to_payload()})
                await self._sleep(self.typing_poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Subscription {} stopped: {}", subscription_id, exc)
            self.notify("error", {"subscription": subscription_id, "error": {"message": _error_text(exc)}})
        finally:
            self.differ.unregister(subscription_id)
            if self._spawn is not None:
                self._spawn(self.bridge.typing_unsubscribe(peer_subscription), "typing unsubscribe")
