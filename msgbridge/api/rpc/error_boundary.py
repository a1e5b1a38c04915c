"""Common RPC error-boundary helpers for server dispatch."""

from __future__ import annotations

from typing import Any, Callable

from msgbridge.api.rpc.protocol import RpcError
from msgbridge.utils.exceptions import (
    ErrorCategory,
    MsgBridgeError,
    classify_exception,
    sanitize_error_message,
)


RpcResult = tuple[bool, Any | None, RpcError | None]


def unknown_method_result(*, method: str) -> RpcResult:
    """Build standardized unknown-method response."""
    return False, None, RpcError.method_not_found(method)


def rpc_error_result(
    *,
    method: str,
    exc: RpcError,
    log_info: Callable[..., None],
) -> RpcResult:
    """Pass through errors raised by handlers as RpcError."""
    log_info("RPC method {} rejected ({}): {}", method, exc.code, exc.data or exc.message)
    return False, None, exc


def msgbridge_error_result(
    *,
    method: str,
    exc: MsgBridgeError,
    log_warning: Callable[..., None],
) -> RpcResult:
    """Map MsgBridgeError to RPC errors; validation failures are invalid params."""
    log_warning("RPC method {} failed with {}: {}", method, exc.code, exc.message)
    message = sanitize_error_message(exc.message)
    if exc.category == ErrorCategory.VALIDATION:
        return False, None, RpcError.invalid_params(message)
    return False, None, RpcError.internal_error(message)


def unhandled_exception_result(
    *,
    method: str,
    exc: Exception,
    log_exception: Callable[..., None],
) -> RpcResult:
    """Map unexpected exceptions to standardized internal-error responses."""
    code, _, _ = classify_exception(exc)
    sanitized = sanitize_error_message(str(exc) or type(exc).__name__)
    log_exception("RPC method {} failed with [{}]: {}", method, code, sanitized)
    return False, None, RpcError.internal_error(sanitized)
