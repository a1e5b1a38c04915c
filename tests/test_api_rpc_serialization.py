import io
import json

import pytest

from msgbridge.api.rpc.protocol import INVALID_REQUEST, PARSE_ERROR, RpcError
from msgbridge.api.rpc.serialization import FrameError, decode_request_line, encode_frame
from msgbridge.api.rpc.protocol import RpcNotification, RpcResponse
from msgbridge.api.rpc.writer import RpcWriter


def test_decode_request_with_id_and_params():
    req = decode_request_line('{"jsonrpc":"2.0","id":3,"method":"chats.list","params":{"limit":5}}')
    assert req.method == "chats.list"
    assert req.params == {"limit": 5}
    assert req.id == 3
    assert req.expects_response


def test_decode_request_without_id_is_fire_and_forget():
    req = decode_request_line(b'{"jsonrpc":"2.0","method":"status"}')
    assert req.params == {}
    assert not req.expects_response


def test_null_id_still_expects_response():
    req = decode_request_line('{"jsonrpc":"2.0","id":null,"method":"status"}')
    assert req.id is None
    assert req.expects_response


def test_parse_error_has_null_id():
    with pytest.raises(FrameError) as info:
        decode_request_line("{not json")
    assert info.value.error.code == PARSE_ERROR
    assert info.value.request_id is None


@pytest.mark.parametrize(
    "line",
    [
        '{"jsonrpc":"2.0","id":NaN,"method":"chats.list"}',
        '{"jsonrpc":"2.0","id":1,"method":"chats.list","params":{"limit":Infinity}}',
        '{"jsonrpc":"2.0","id":-Infinity,"method":"status"}',
    ],
)
def test_non_standard_json_constants_are_parse_errors(line):
    with pytest.raises(FrameError) as info:
        decode_request_line(line)
    assert info.value.error.code == PARSE_ERROR
    assert info.value.request_id is None


def test_missing_method_echoes_id():
    with pytest.raises(FrameError) as info:
        decode_request_line('{"jsonrpc":"2.0","id":"abc"}')
    assert info.value.error.code == INVALID_REQUEST
    assert info.value.request_id == "abc"


@pytest.mark.parametrize(
    "line",
    [
        "[1, 2]",
        '{"jsonrpc":"1.0","id":1,"method":"status"}',
        '{"jsonrpc":"2.0","id":1,"method":"status","params":[1]}',
        '{"jsonrpc":"2.0","id":true,"method":"status"}',
    ],
)
def test_bad_envelopes_are_invalid_requests(line):
    with pytest.raises(FrameError) as info:
        decode_request_line(line)
    assert info.value.error.code == INVALID_REQUEST


def test_encode_response_and_error_frames():
    ok = json.loads(encode_frame(RpcResponse(id=1, result={"ok": True})))
    assert ok == {"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}
    err = json.loads(encode_frame(RpcResponse(id=2, error=RpcError.method_not_found("nope"))))
    assert err["error"] == {"code": -32601, "message": "Method not found", "data": "nope"}
    assert "result" not in err


def test_encode_notification_keeps_unicode():
    line = encode_frame(RpcNotification(method="message", params={"text": "héllo 👋"}))
    assert "👋" in line
    assert "\n" not in line


def test_writer_emits_one_line_per_frame():
    stream = io.StringIO()
    writer = RpcWriter(stream)
    writer.send_response(1, {"ok": True})
    writer.send_notification("typing", {"subscription": 1, "typing": True})
    writer.send_error(None, RpcError.parse_error("bad"))
    lines = stream.getvalue().splitlines()
    assert len(lines) == 3
    assert json.loads(lines[1])["method"] == "typing"
    assert json.loads(lines[2])["id"] is None


def test_writer_replaces_unencodable_frame_with_internal_error():
    stream = io.StringIO()
    RpcWriter(stream).send_response(1, {"bad": object()})
    frame = json.loads(stream.getvalue())
    assert frame["error"]["code"] == -32603
    assert frame["id"] is None


def test_encode_refuses_nan_and_writer_falls_back():
    with pytest.raises(ValueError):
        encode_frame(RpcResponse(id=1, result={"ratio": float("nan")}))
    stream = io.StringIO()
    RpcWriter(stream).send_notification("message", {"score": float("inf")})
    frame = json.loads(stream.getvalue())
    assert frame["error"] == {"code": -32603, "message": "Internal error", "data": "write failed"}
