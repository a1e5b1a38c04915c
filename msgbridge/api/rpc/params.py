"""Parameter coercion helpers shared by RPC method handlers.

Each helper raises RpcError.invalid_params with a message naming the field.
"""

from __future__ import annotations

from typing import Any

from msgbridge.api.rpc.protocol import RpcError


def optional_int(params: dict[str, Any], key: str) -> int | None:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise RpcError.invalid_params(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise RpcError.invalid_params(f"{key} must be an integer")


def required_int(params: dict[str, Any], key: str) -> int:
    value = optional_int(params, key)
    if value is None:
        raise RpcError.invalid_params(f"{key} is required")
    return value


def optional_str(params: dict[str, Any], key: str) -> str | None:
    """Return a stripped string, or None when absent or blank."""
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RpcError.invalid_params(f"{key} must be a string")
    value = value.strip()
    return value or None


def optional_text(params: dict[str, Any], key: str) -> str | None:
    """Return the string unchanged, or None when absent or empty."""
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RpcError.invalid_params(f"{key} must be a string")
    return value or None


def required_str(params: dict[str, Any], key: str) -> str:
    value = optional_str(params, key)
    if value is None:
        raise RpcError.invalid_params(f"{key} is required")
    return value


def optional_bool(params: dict[str, Any], key: str, default: bool | None = None) -> bool | None:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    raise RpcError.invalid_params(f"{key} must be a boolean")


def str_list(params: dict[str, Any], key: str) -> list[str]:
    """Accept a list of strings or a comma separated string; blanks are dropped."""
    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        raise RpcError.invalid_params(f"{key} must be a list of strings")
    result: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise RpcError.invalid_params(f"{key} must be a list of strings")
        item = item.strip()
        if item:
            result.append(item)
    return result


def limit_param(params: dict[str, Any], default: int) -> int:
    """The `limit` parameter clamped to at least 1."""
    value = optional_int(params, "limit")
    return max(value if value is not None else default, 1)
