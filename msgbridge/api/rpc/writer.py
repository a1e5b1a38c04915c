"""Serialized line writer for responses and notifications."""

from __future__ import annotations

import sys
import threading
from typing import Any, Protocol, TextIO, runtime_checkable

from loguru import logger

from .protocol import INTERNAL_ERROR, RpcError, RpcNotification, RpcResponse
from .serialization import encode_frame

_WRITE_FAILED_FRAME = (
    '{"jsonrpc":"2.0","id":null,"error":{"code":%d,"message":"Internal error","data":"write failed"}}'
    % INTERNAL_ERROR
)


@runtime_checkable
class RpcOutput(Protocol):
    def send_response(self, id: Any, result: Any) -> None: ...
    def send_error(self, id: Any, error: RpcError) -> None: ...
    def send_notification(self, method: str, params: Any) -> None: ...


class RpcWriter:
    """Writes one JSON frame per line; concurrent producers never interleave."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def send_response(self, id: Any, result: Any) -> None:
        self._send(RpcResponse(id=id, result=result))

    def send_error(self, id: Any, error: RpcError) -> None:
        self._send(RpcResponse(id=id, error=error))

    def send_notification(self, method: str, params: Any) -> None:
        self._send(RpcNotification(method=method, params=params))

    def _send(self, frame: RpcResponse | RpcNotification) -> None:
        try:
            line = encode_frame(frame)
        except (TypeError, ValueError) as exc:
            logger.error("RPC frame encode failed: {}", exc)
            line = _WRITE_FAILED_FRAME
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()
