import asyncio
import json

import pytest

from msgbridge.bridge.mailbox import MailboxPaths, MailboxTransport
from msgbridge.utils.exceptions import PeerProtocolError, PeerTimeoutError


def _paths(tmp_path):
    return MailboxPaths(
        command=tmp_path / "command.json",
        response=tmp_path / "response.json",
        ready=tmp_path / "ready",
    )


async def _fake_peer(paths, respond, seen):
    """Poll the command slot, answer through the response slot, then empty the command slot."""
    while True:
        await asyncio.sleep(0.005)
        try:
            raw = paths.command.read_bytes()
        except FileNotFoundError:
            continue
        if len(raw) <= 2:
            continue
        command = json.loads(raw)
        seen.append(command)
        for body in respond(command):
            while paths.response.exists() and len(paths.response.read_bytes()) > 2:
                await asyncio.sleep(0.005)
            paths.response.write_text(body, encoding="utf-8")
            paths.command.write_text("", encoding="utf-8")


def _echo(command):
    yield json.dumps({"id": command["id"], "success": True, "action": command["action"]})


@pytest.mark.asyncio
async def test_request_round_trip(tmp_path):
    paths = _paths(tmp_path)
    seen = []
    peer = asyncio.create_task(_fake_peer(paths, _echo, seen))
    try:
        transport = MailboxTransport(paths, poll_interval=0.01, timeout=2.0)
        response = await transport.request("typing", {"handle": "+15551234567", "typing": True})
    finally:
        peer.cancel()
    assert response.success is True
    assert response.payload == {"action": "typing"}
    assert seen[0]["params"] == {"handle": "+15551234567", "typing": True}
    assert paths.response.read_bytes() == b""


@pytest.mark.asyncio
async def test_concurrent_requests_are_serialized(tmp_path):
    paths = _paths(tmp_path)
    seen = []
    peer = asyncio.create_task(_fake_peer(paths, _echo, seen))
    transport = MailboxTransport(paths, poll_interval=0.01, timeout=5.0)
    try:
        results = await asyncio.gather(*(transport.request(f"op{i}") for i in range(4)))
    finally:
        peer.cancel()
    assert [r.payload["action"] for r in results] == ["op0", "op1", "op2", "op3"]
    ids = [c["id"] for c in seen]
    assert len(ids) == 4
    assert ids == sorted(set(ids))
    assert not transport.busy


@pytest.mark.asyncio
async def test_timeout_when_peer_never_answers(tmp_path):
    transport = MailboxTransport(_paths(tmp_path), poll_interval=0.01, timeout=0.1)
    with pytest.raises(PeerTimeoutError):
        await transport.request("ping")
    assert not transport.busy


@pytest.mark.asyncio
async def test_response_with_other_id_is_discarded(tmp_path):
    paths = _paths(tmp_path)

    def _stale_then_real(command):
        yield json.dumps({"id": command["id"] - 1, "success": False, "error": "stale"})
        yield json.dumps({"id": command["id"], "success": True})

    peer = asyncio.create_task(_fake_peer(paths, _stale_then_real, []))
    try:
        response = await MailboxTransport(paths, poll_interval=0.01, timeout=2.0).request("read")
    finally:
        peer.cancel()
    assert response.success is True


@pytest.mark.asyncio
async def test_malformed_response_raises_protocol_error(tmp_path):
    paths = _paths(tmp_path)

    def _garbage(command):
        yield "not json at all"

    peer = asyncio.create_task(_fake_peer(paths, _garbage, []))
    try:
        with pytest.raises(PeerProtocolError):
            await MailboxTransport(paths, poll_interval=0.01, timeout=2.0).request("status")
    finally:
        peer.cancel()
    assert paths.response.read_bytes() == b""


@pytest.mark.asyncio
async def test_stale_response_is_cleared_before_writing(tmp_path):
    paths = _paths(tmp_path)
    paths.response.write_text(json.dumps({"id": 1, "success": False, "error": "old"}), encoding="utf-8")
    seen = []
    peer = asyncio.create_task(_fake_peer(paths, _echo, seen))
    try:
        response = await MailboxTransport(paths, poll_interval=0.01, timeout=2.0).request("ping")
    finally:
        peer.cancel()
    assert response.success is True


def test_marker_pid_parsing(tmp_path):
    paths = _paths(tmp_path)
    assert paths.read_marker_pid() is None
    paths.ready.write_text("4242\n", encoding="utf-8")
    assert paths.read_marker_pid() == 4242
    paths.ready.write_text("", encoding="utf-8")
    assert paths.read_marker_pid() is None
    paths.remove_all()
    assert not paths.ready.exists()
