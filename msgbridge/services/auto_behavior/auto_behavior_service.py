"""Auto-read and auto-typing side effects around message delivery and sends.

Side effects run as tracked detached tasks. Their failures never reach the
request that triggered them; they are logged as dead-letter records instead.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine

from loguru import logger

TYPING_BASE_DELAY = 1.5
TYPING_EXTRA_MAX = 2.5
TYPING_CHARS_FOR_MAX = 80.0
TYPING_DELAY_CAP = 4.0


def typing_delay_seconds(text: str) -> float:
    """Simulated typing time: 1.5s plus up to 2.5s scaled by length, capped at 4s."""
    extra = min(len(text) / TYPING_CHARS_FOR_MAX * TYPING_EXTRA_MAX, TYPING_EXTRA_MAX)
    return min(TYPING_BASE_DELAY + extra, TYPING_DELAY_CAP)


def resolve_typing_handle(recipient: str, chat_identifier: str, chat_guid: str) -> str | None:
    return recipient or chat_identifier or chat_guid or None


def resolve_read_handle(message: dict[str, Any]) -> str | None:
    for key in ("chat_identifier", "sender"):
        value = message.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class AutoBehavior:
    """Owns the detached side-effect tasks for one server instance."""

    def __init__(
        self,
        bridge: Any,
        *,
        auto_read: bool,
        auto_typing: bool,
        read_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.bridge = bridge
        self.auto_read = auto_read
        self.auto_typing = auto_typing
        self.read_delay = read_delay
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self._guard(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.bind(dead_letter=True).warning("[{}] error: {}", label, exc)

    def schedule_mark_read(self, message: dict[str, Any]) -> asyncio.Task[None] | None:
        """Mark an inbound message's conversation read after the configured delay."""
        if not self.auto_read or message.get("is_from_me") is not False:
            return None
        handle = resolve_read_handle(message)
        if handle is None:
            return None

        async def _mark_read() -> None:
            await self._sleep(self.read_delay)
            await self.bridge.mark_as_read(handle)
            logger.debug("[auto-read] marked read for {}", handle)

        return self.spawn(_mark_read(), "auto-read")

    async def before_send(self, handle: str | None, text: str) -> None:
        """Typing on, then wait; failures are logged and the send proceeds."""
        if not self.auto_typing or not handle:
            return
        try:
            await self.bridge.set_typing(handle, True)
            logger.debug("[auto-typing] ON for {}", handle)
            await self._sleep(typing_delay_seconds(text))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[auto-typing] error: {}", exc)

    def after_send(self, handle: str | None) -> asyncio.Task[None] | None:
        if not self.auto_typing or not handle:
            return None

        async def _typing_off() -> None:
            await self.bridge.set_typing(handle, False)
            logger.debug("[auto-typing] OFF for {}", handle)

        return self.spawn(_typing_off(), "auto-typing off")

    async def aclose(self) -> None:
        """Cancel outstanding side effects and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
