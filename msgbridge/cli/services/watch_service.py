"""Terminal streaming of new messages, optionally merged with typing changes.

Reuses the subscription manager that backs the RPC streams; its notifications
are rendered as text lines or JSON lines instead of RPC frames.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from loguru import logger

from msgbridge.presence.typing_state import TypingStateDiffer
from msgbridge.services.subscriptions import SubscriptionManager
from msgbridge.storage.chat_cache import ChatCache
from msgbridge.storage.models import MessageFilter
from msgbridge.utils.exceptions import ValidationError, WatchStreamError

Write = Callable[[str], None]


def format_message_lines(payload: dict[str, Any], *, show_attachments: bool) -> list[str]:
    direction = "sent" if payload.get("is_from_me") else "recv"
    lines = [f"{payload.get('created_at')} [{direction}] {payload.get('sender')}: {payload.get('text')}"]
    attachments = payload.get("attachments") or []
    if not attachments:
        return lines
    if show_attachments:
        for meta in attachments:
            name = meta.get("display_name") or "(unknown)"
            lines.append(
                f"  attachment: name={name} mime={meta.get('mime_type')} "
                f"missing={str(bool(meta.get('missing'))).lower()} path={meta.get('original_path')}"
            )
    else:
        count = len(attachments)
        lines.append(f"  ({count} attachment{'' if count == 1 else 's'})")
    return lines


def typing_json(event: dict[str, Any]) -> dict[str, Any]:
    return {"type": "typing", **event}


def format_typing_line(event: dict[str, Any]) -> str:
    chat_ref = event.get("chat_guid") or event.get("chat_identifier") or ""
    state = "started typing" if event.get("is_typing") else "stopped typing"
    return f"{event.get('timestamp')} [typing] {event.get('handle')} {state} ({chat_ref})"


class WatchService:
    """Runs one message stream and an optional typing stream until either ends."""

    def __init__(
        self,
        *,
        store: Any,
        watcher: Any,
        bridge: Any = None,
        write: Write,
        as_json: bool = False,
        show_attachments: bool = False,
        typing_poll_interval: float = 0.35,
    ):
        self.store = store
        self.cache = ChatCache(store)
        self.bridge = bridge
        self.write = write
        self.as_json = as_json
        self.show_attachments = show_attachments
        self._failure: str | None = None
        self._spawned: set[asyncio.Task[Any]] = set()
        self.subscriptions = SubscriptionManager(
            notify=self._on_notification,
            watcher=watcher,
            store=store,
            cache=self.cache,
            differ=TypingStateDiffer(),
            bridge=bridge,
            spawn=self._spawn,
            typing_poll_interval=typing_poll_interval,
        )

    def _spawn(self, coro: Any, label: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._spawned.add(task)
        task.add_done_callback(self._spawned.discard)
        task.add_done_callback(lambda t: _log_spawn_failure(t, label))
        return task

    def _emit_json(self, payload: dict[str, Any]) -> None:
        self.write(json.dumps(payload, ensure_ascii=False, separators=(",", ":")))

    def _on_notification(self, method: str, params: dict[str, Any]) -> None:
        if method == "message":
            message = params["message"]
            if self.as_json:
                self._emit_json(message)
            else:
                for line in format_message_lines(message, show_attachments=self.show_attachments):
                    self.write(line)
        elif method == "typing":
            event = params["event"]
            if self.as_json:
                self._emit_json(typing_json(event))
            else:
                self.write(format_typing_line(event))
        elif method == "error" and self._failure is None:
            self._failure = str(params.get("error", {}).get("message") or "stream failed")

    def typing_handle(self, chat_id: int | None) -> tuple[str | None, str | None]:
        """Conversation guid and identifier to scope the typing stream, if any."""
        if chat_id is None:
            return None, None
        info = self.cache.info(chat_id)
        if info is None:
            raise ValidationError(f"Unknown chat-id {chat_id}", field="chat_id")
        return info.guid or None, info.identifier or None

    async def run(
        self,
        *,
        chat_id: int | None = None,
        since_rowid: int | None = None,
        message_filter: MessageFilter | None = None,
        include_typing: bool = False,
    ) -> None:
        """Stream until the message feed ends or a stream fails."""
        message_filter = message_filter or MessageFilter()
        subscription_ids: list[int] = []
        try:
            if include_typing:
                if self.bridge is None or not self.bridge.is_available:
                    raise ValidationError("--typing requested but the helper peer is unavailable", field="typing")
                chat_guid, chat_identifier = self.typing_handle(chat_id)
                result = await self.subscriptions.subscribe_typing(
                    chat_guid=chat_guid,
                    chat_identifier=chat_identifier,
                    participants=message_filter.participants,
                )
                subscription_ids.append(result["subscription"])
            subscription_ids.append(
                self.subscriptions.subscribe_messages(
                    chat_id=chat_id,
                    since_rowid=since_rowid,
                    message_filter=message_filter,
                    include_attachments=True,
                )
            )
            tasks = [self.subscriptions.get(sid).task for sid in subscription_ids]
            logger.debug("Watching chat_id={} typing={}", chat_id, include_typing)
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.subscriptions.aclose()
            if self._spawned:
                await asyncio.gather(*list(self._spawned), return_exceptions=True)
        if self._failure is not None:
            raise WatchStreamError(self._failure)


def _log_spawn_failure(task: asyncio.Task[Any], label: str) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("[{}] error: {}", label, exc)
