"""Utility functions for msgbridge."""

from msgbridge.utils.helpers import ensure_dir, get_data_path, iso_now, now_ms, parse_iso, to_iso
from msgbridge.utils.exceptions import (
    MsgBridgeError,
    ValidationError,
    NotFoundError,
    ChatNotFoundError,
    MessageNotFoundError,
    SubscriptionNotFoundError,
    InvalidTargetError,
    PeerUnavailableError,
    PeerTimeoutError,
    PeerProtocolError,
    PeerOperationError,
    UnsupportedOperationError,
    StoreUnavailableError,
    SendFailedError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "iso_now",
    "now_ms",
    "parse_iso",
    "to_iso",
    "MsgBridgeError",
    "ValidationError",
    "NotFoundError",
    "ChatNotFoundError",
    "MessageNotFoundError",
    "SubscriptionNotFoundError",
    "InvalidTargetError",
    "PeerUnavailableError",
    "PeerTimeoutError",
    "PeerProtocolError",
    "PeerOperationError",
    "UnsupportedOperationError",
    "StoreUnavailableError",
    "SendFailedError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
]
