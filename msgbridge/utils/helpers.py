"""Small filesystem and time helpers shared across msgbridge."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create the directory (and parents) when missing, then return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the msgbridge data directory (~/.msgbridge)."""
    return ensure_dir(Path.home() / ".msgbridge")


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return to_iso(datetime.now(timezone.utc))


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_DURATION_UNITS = (("ms", 0.001), ("s", 1.0), ("m", 60.0), ("h", 3600.0))


def parse_duration(value: str) -> float:
    """Parse `250ms`, `2s`, `1m` or `1h` into seconds; a bare number is seconds."""
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    for suffix, multiplier in _DURATION_UNITS:
        if text.endswith(suffix):
            return float(text[: -len(suffix)]) * multiplier
    return float(text)


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
