"""Change feed over chat.db: tails the message table by ROWID."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Callable

from loguru import logger
from watchfiles import awatch

from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.models import Message

WakeSource = Callable[[], AsyncIterator[Any]]


class MessageWatcher:
    """Yields new messages as they land in the database.

    Wakes on debounced file changes of the database and its -wal/-shm files,
    and on a fallback timeout so missed notifications only delay delivery.
    """

    def __init__(
        self,
        store: ChatStore,
        *,
        debounce_ms: int = 250,
        batch_limit: int = 100,
        fallback_poll_ms: int = 2000,
        wake_source: WakeSource | None = None,
    ):
        self.store = store
        self.debounce_ms = debounce_ms
        self.batch_limit = batch_limit
        self.fallback_poll_ms = fallback_poll_ms
        self._wake_source = wake_source or self._file_changes

    def _file_changes(self) -> AsyncIterator[Any]:
        db_path = self.store.db_path.resolve()
        names = {db_path.name, f"{db_path.name}-wal", f"{db_path.name}-shm"}
        return awatch(
            db_path.parent,
            watch_filter=lambda _change, path: Path(path).name in names,
            debounce=self.debounce_ms,
            rust_timeout=self.fallback_poll_ms,
            yield_on_timeout=True,
        )

    async def stream(self, chat_id: int | None = None, since_rowid: int | None = None) -> AsyncIterator[Message]:
        cursor = since_rowid if since_rowid is not None else await asyncio.to_thread(self.store.max_rowid)
        logger.debug("Message watch started chat_id={} after rowid={}", chat_id, cursor)
        wake = self._wake_source()
        try:
            while True:
                rows = await asyncio.to_thread(self.store.messages_after, cursor, chat_id, self.batch_limit)
                for message in rows:
                    cursor = max(cursor, message.rowid)
                    yield message
                if len(rows) >= self.batch_limit:
                    continue
                try:
                    await wake.__anext__()
                except StopAsyncIteration:
                    return
        finally:
            aclose = getattr(wake, "aclose", None)
            if aclose is not None:
                await aclose()
