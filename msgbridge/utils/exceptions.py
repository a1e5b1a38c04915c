"""
Exception hierarchy and error classification for msgbridge.

Provides:
- Domain exception classes with error codes and categories
- Error categorization (validation, not found, timeout, retryable, fatal)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNSUPPORTED = "unsupported"


class MsgBridgeError(Exception):
    """Base exception for all msgbridge errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(MsgBridgeError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)


class InvalidTargetError(ValidationError):
    """Send target combination is missing or ambiguous."""

    def __init__(self, message: str):
        super().__init__(message, field="target")
        self.code = "INVALID_TARGET"


class NotFoundError(MsgBridgeError):
    """Resource not found error."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            code="NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ChatNotFoundError(NotFoundError):
    def __init__(self, handle: str):
        super().__init__("Chat", handle)
        self.code = "CHAT_NOT_FOUND"


class MessageNotFoundError(NotFoundError):
    def __init__(self, guid: str):
        super().__init__("Message", guid)
        self.code = "MESSAGE_NOT_FOUND"


class SubscriptionNotFoundError(NotFoundError):
    """Unknown or already cancelled subscription id."""

    def __init__(self, subscription_id: int):
        super().__init__("Subscription", str(subscription_id))
        self.code = "SUBSCRIPTION_NOT_FOUND"
        self.category = ErrorCategory.VALIDATION


class PeerUnavailableError(MsgBridgeError):
    """The privileged peer could not be reached or started."""

    def __init__(self, reason: str):
        super().__init__(
            f"Peer unavailable: {reason}",
            code="PEER_UNAVAILABLE",
            category=ErrorCategory.UNAVAILABLE,
            details={"reason": reason},
        )


class PeerTimeoutError(MsgBridgeError):
    """A mailbox round-trip exceeded its deadline. Safe to retry."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Operation '{operation}' timed out after {timeout_seconds}s",
            code="TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


class PeerProtocolError(MsgBridgeError):
    """The peer wrote something that is not a valid response envelope."""

    def __init__(self, message: str):
        super().__init__(message, code="PEER_PROTOCOL_ERROR", category=ErrorCategory.RETRYABLE)


class PeerOperationError(MsgBridgeError):
    """The peer executed the command and reported a failure."""

    def __init__(self, action: str, reason: str):
        super().__init__(
            f"Operation failed: {reason}",
            code="PEER_OPERATION_FAILED",
            category=ErrorCategory.RECOVERABLE,
            details={"action": action, "reason": reason},
        )


class UnsupportedOperationError(MsgBridgeError):
    """The peer does not implement the requested operation."""

    def __init__(self, operation: str):
        super().__init__(
            f"Operation not supported by peer: {operation}",
            code="UNSUPPORTED",
            category=ErrorCategory.UNSUPPORTED,
            details={"operation": operation},
        )


class StoreUnavailableError(MsgBridgeError):
    """The Messages database cannot be opened (missing file or no disk access)."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Messages database unavailable at {path}: {reason}",
            code="STORE_UNAVAILABLE",
            category=ErrorCategory.UNAVAILABLE,
            details={"path": path},
        )


class SendFailedError(MsgBridgeError):
    """The outbound sender reported a failure."""

    def __init__(self, reason: str):
        super().__init__(
            f"Send failed: {reason}",
            code="SEND_FAILED",
            category=ErrorCategory.RECOVERABLE,
            details={"reason": reason},
        )


class WatchStreamError(MsgBridgeError):
    """A message or typing stream stopped with an error."""

    def __init__(self, reason: str):
        super().__init__(
            f"Watch stopped: {reason}",
            code="WATCH_FAILED",
            category=ErrorCategory.RECOVERABLE,
            details={"reason": reason},
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"[a-zA-Z0-9]{40,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    if isinstance(exc, MsgBridgeError):
        return exc.code, exc.category, exc.category in (ErrorCategory.RETRYABLE, ErrorCategory.TIMEOUT)

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    if isinstance(exc, OSError):
        return "OS_ERROR", ErrorCategory.RETRYABLE, True

    exc_str = str(exc).lower()
    if "timeout" in exc_str or "timed out" in exc_str:
        return "TIMEOUT", ErrorCategory.TIMEOUT, True
    if "not found" in exc_str:
        return "NOT_FOUND", ErrorCategory.NOT_FOUND, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False
