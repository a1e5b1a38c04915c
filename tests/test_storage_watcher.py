import asyncio

import pytest

from msgbridge.storage.chat_store import ChatStore
from msgbridge.storage.watcher import MessageWatcher


class _ManualWake:
    """Wake source driven by the test; closing ends the stream."""

    def __init__(self):
        self.queue = asyncio.Queue()
        self.closed = False

    def __call__(self):
        return self._iterate()

    async def _iterate(self):
        try:
            while True:
                item = await self.queue.get()
                if item is None:
                    return
                yield item
        finally:
            self.closed = True


@pytest.mark.asyncio
async def test_stream_starts_after_current_max_rowid(chat_db):
    wake = _ManualWake()
    watcher = MessageWatcher(ChatStore(chat_db.path), wake_source=wake)
    stream = watcher.stream()
    pending = asyncio.create_task(stream.__anext__())
    await asyncio.sleep(0.05)
    assert not pending.done()

    chat_db.add_message(6, 2, "new one", sender="friend@example.com", minutes=10)
    wake.queue.put_nowait({"change"})
    message = await asyncio.wait_for(pending, 2.0)
    assert message.rowid == 6
    await stream.aclose()
    assert wake.closed


@pytest.mark.asyncio
async def test_stream_replays_from_since_rowid_in_batches(chat_db):
    wake = _ManualWake()
    wake.queue.put_nowait(None)
    watcher = MessageWatcher(ChatStore(chat_db.path), batch_limit=1, wake_source=wake)
    rows = [m.rowid async for m in watcher.stream(since_rowid=0)]
    assert rows == [1, 2, 3, 5]


@pytest.mark.asyncio
async def test_stream_scoped_to_chat(chat_db):
    wake = _ManualWake()
    wake.queue.put_nowait(None)
    watcher = MessageWatcher(ChatStore(chat_db.path), wake_source=wake)
    rows = [m.rowid async for m in watcher.stream(chat_id=2, since_rowid=0)]
    assert rows == [3]
