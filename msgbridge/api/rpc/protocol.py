"""JSON-RPC 2.0 frame models used by the stdio server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

JSONRPC_VERSION = "2.0"

_MISSING: Any = object()


@dataclass(slots=True)
class RpcError(Exception):
    """JSON-RPC error payload; raised by handlers and emitted as an error response."""

    code: int
    message: str
    data: str | None = None

    def __str__(self) -> str:
        if self.data:
            return f"{self.message} ({self.code}): {self.data}"
        return f"{self.message} ({self.code})"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload

    @classmethod
    def parse_error(cls, detail: str) -> "RpcError":
        return cls(PARSE_ERROR, "Parse error", detail)

    @classmethod
    def invalid_request(cls, detail: str) -> "RpcError":
        return cls(INVALID_REQUEST, "Invalid Request", detail)

    @classmethod
    def method_not_found(cls, method: str) -> "RpcError":
        return cls(METHOD_NOT_FOUND, "Method not found", method)

    @classmethod
    def invalid_params(cls, detail: str) -> "RpcError":
        return cls(INVALID_PARAMS, "Invalid params", detail)

    @classmethod
    def internal_error(cls, detail: str) -> "RpcError":
        return cls(INTERNAL_ERROR, "Internal error", detail)


@dataclass(slots=True)
class RpcRequest:
    """Inbound request frame. `id` is _MISSING for fire-and-forget requests."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: Any = _MISSING

    @property
    def expects_response(self) -> bool:
        return self.id is not _MISSING


@dataclass(slots=True)
class RpcResponse:
    """Outbound response frame; exactly one of result / error is set."""

    id: Any
    result: Any = None
    error: RpcError | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        else:
            payload["result"] = self.result
        return payload


@dataclass(slots=True)
class RpcNotification:
    """Outbound server push frame (no id)."""

    method: str
    params: Any

    def to_dict(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "method": self.method, "params": self.params}
