import asyncio

import pytest
from loguru import logger

from msgbridge.services.auto_behavior import (
    AutoBehavior,
    resolve_read_handle,
    resolve_typing_handle,
    typing_delay_seconds,
)
from msgbridge.utils.exceptions import PeerTimeoutError


class _FakeBridge:
    def __init__(self, fail_typing=False, fail_read=False):
        self.calls = []
        self.fail_typing = fail_typing
        self.fail_read = fail_read

    async def set_typing(self, handle, typing):
        self.calls.append(("typing", handle, typing))
        if self.fail_typing:
            raise PeerTimeoutError("typing", 10.0)

    async def mark_as_read(self, handle):
        self.calls.append(("read", handle))
        if self.fail_read:
            raise PeerTimeoutError("read", 10.0)


class _RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.mark.parametrize("length,expected", [(0, 1.5), (40, 2.75), (80, 4.0), (400, 4.0)])
def test_typing_delay(length, expected):
    assert typing_delay_seconds("x" * length) == pytest.approx(expected)


def test_handle_resolution():
    assert resolve_typing_handle("", "chat123", "iMessage;+;chat123") == "chat123"
    assert resolve_typing_handle("", "", "") is None
    assert resolve_read_handle({"chat_identifier": "", "sender": "+1555"}) == "+1555"
    assert resolve_read_handle({}) is None


@pytest.mark.asyncio
async def test_mark_read_only_for_inbound_messages():
    bridge = _FakeBridge()
    sleep = _RecordingSleep()
    auto = AutoBehavior(bridge, auto_read=True, auto_typing=False, read_delay=1.0, sleep=sleep)
    assert auto.schedule_mark_read({"is_from_me": True, "sender": "+1555"}) is None
    task = auto.schedule_mark_read({"is_from_me": False, "chat_identifier": "+1555"})
    await task
    assert bridge.calls == [("read", "+1555")]
    assert sleep.delays == [1.0]
    assert auto.pending == 0


@pytest.mark.asyncio
async def test_mark_read_disabled():
    auto = AutoBehavior(_FakeBridge(), auto_read=False, auto_typing=False)
    assert auto.schedule_mark_read({"is_from_me": False, "sender": "+1555"}) is None


@pytest.mark.asyncio
async def test_side_effect_failures_are_dead_lettered():
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="WARNING")
    try:
        auto = AutoBehavior(_FakeBridge(fail_read=True), auto_read=True, auto_typing=False, sleep=_RecordingSleep())
        task = auto.schedule_mark_read({"is_from_me": False, "sender": "+1555"})
        await task
    finally:
        logger.remove(sink_id)
    assert task.exception() is None
    assert any(r["extra"].get("dead_letter") for r in records)


@pytest.mark.asyncio
async def test_before_send_types_then_waits():
    bridge = _FakeBridge()
    sleep = _RecordingSleep()
    auto = AutoBehavior(bridge, auto_read=False, auto_typing=True, sleep=sleep)
    await auto.before_send("+1555", "x" * 80)
    assert bridge.calls == [("typing", "+1555", True)]
    assert sleep.delays == [pytest.approx(4.0)]


@pytest.mark.asyncio
async def test_before_send_failure_does_not_raise():
    bridge = _FakeBridge(fail_typing=True)
    auto = AutoBehavior(bridge, auto_read=False, auto_typing=True, sleep=_RecordingSleep())
    await auto.before_send("+1555", "hi")
    assert bridge.calls == [("typing", "+1555", True)]


@pytest.mark.asyncio
async def test_after_send_is_fire_and_forget():
    bridge = _FakeBridge(fail_typing=True)
    auto = AutoBehavior(bridge, auto_read=False, auto_typing=True)
    task = auto.after_send("+1555")
    assert task is not None
    await task
    assert bridge.calls == [("typing", "+1555", False)]
    assert auto.after_send(None) is None


@pytest.mark.asyncio
async def test_aclose_cancels_pending_side_effects():
    started = asyncio.Event()

    async def _forever():
        started.set()
        await asyncio.Event().wait()

    auto = AutoBehavior(_FakeBridge(), auto_read=True, auto_typing=True)
    task = auto.spawn(_forever(), "test")
    await started.wait()
    await auto.aclose()
    assert task.cancelled()
    assert auto.pending == 0
