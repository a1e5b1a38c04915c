"""Serialization helpers for line-delimited JSON-RPC frames."""

from __future__ import annotations

import json
from typing import Any

from .protocol import _MISSING, JSONRPC_VERSION, RpcError, RpcNotification, RpcRequest, RpcResponse


class FrameError(Exception):
    """Raised when an inbound line cannot become an RpcRequest."""

    def __init__(self, error: RpcError, request_id: Any = None):
        super().__init__(str(error))
        self.error = error
        self.request_id = request_id


def _usable_id(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int, float))


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def decode_request_line(line: str | bytes) -> RpcRequest:
    """Parse one input line into a request, raising FrameError on bad envelopes."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FrameError(RpcError.parse_error("invalid utf8")) from exc
    try:
        payload = json.loads(line, parse_constant=_reject_constant)
    except ValueError as exc:
        raise FrameError(RpcError.parse_error(str(exc))) from exc
    if not isinstance(payload, dict):
        raise FrameError(RpcError.invalid_request("request must be an object"))

    raw_id = payload.get("id", _MISSING)
    echo_id = raw_id if raw_id is not _MISSING and _usable_id(raw_id) else None
    if raw_id is not _MISSING and not _usable_id(raw_id):
        raise FrameError(RpcError.invalid_request("id must be a string, number or null"))

    version = payload.get("jsonrpc")
    if version is not None and version != JSONRPC_VERSION:
        raise FrameError(RpcError.invalid_request("jsonrpc must be 2.0"), echo_id)

    method = payload.get("method")
    if not isinstance(method, str) or not method.strip():
        raise FrameError(RpcError.invalid_request("method is required"), echo_id)

    params = payload.get("params")
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        raise FrameError(RpcError.invalid_request("params must be an object"), echo_id)

    return RpcRequest(method=method, params=params, id=raw_id)


def encode_frame(frame: RpcResponse | RpcNotification) -> str:
    """Encode an outbound frame into one line of JSON (no trailing newline)."""
    return json.dumps(
        frame.to_dict(),
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
        default=_json_default,
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
