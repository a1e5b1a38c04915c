"""Types for the helper peer mailbox protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from msgbridge.utils.exceptions import ValidationError


@dataclass(slots=True)
class MailboxCommand:
    """One command written to the command slot."""

    id: int
    action: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "action": self.action, "params": self.params}


@dataclass(slots=True)
class MailboxResponse:
    """Response read back from the response slot."""

    id: int | None
    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    timestamp: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MailboxResponse":
        raw_id = data.get("id")
        payload = {
            key: value
            for key, value in data.items()
            if key not in ("id", "success", "error", "timestamp")
        }
        error = data.get("error")
        return cls(
            id=raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else None,
            success=data.get("success") is True,
            payload=payload,
            error=str(error) if error is not None else None,
            timestamp=data.get("timestamp") if isinstance(data.get("timestamp"), str) else None,
        )


class TapbackType(Enum):
    """Reaction kinds with their add codes; removal adds 1000."""

    LOVE = 2000
    THUMBS_UP = 2001
    THUMBS_DOWN = 2002
    HA_HA = 2003
    EMPHASIS = 2004
    QUESTION = 2005

    @classmethod
    def from_string(cls, value: str) -> "TapbackType":
        key = (value or "").strip().lower()
        match = _TAPBACK_ALIASES.get(key)
        if match is None:
            raise ValidationError(f"unknown tapback type: {value}", field="type")
        return match

    def code(self, remove: bool = False) -> int:
        return self.value + 1000 if remove else self.value

    @property
    def display_name(self) -> str:
        return _TAPBACK_NAMES[self]


_TAPBACK_ALIASES: dict[str, TapbackType] = {
    "love": TapbackType.LOVE,
    "heart": TapbackType.LOVE,
    "thumbsup": TapbackType.THUMBS_UP,
    "like": TapbackType.THUMBS_UP,
    "thumbsdown": TapbackType.THUMBS_DOWN,
    "dislike": TapbackType.THUMBS_DOWN,
    "haha": TapbackType.HA_HA,
    "laugh": TapbackType.HA_HA,
    "emphasis": TapbackType.EMPHASIS,
    "exclaim": TapbackType.EMPHASIS,
    "!!": TapbackType.EMPHASIS,
    "question": TapbackType.QUESTION,
    "?": TapbackType.QUESTION,
}

_TAPBACK_NAMES: dict[TapbackType, str] = {
    TapbackType.LOVE: "love",
    TapbackType.THUMBS_UP: "thumbsup",
    TapbackType.THUMBS_DOWN: "thumbsdown",
    TapbackType.HA_HA: "haha",
    TapbackType.EMPHASIS: "emphasis",
    TapbackType.QUESTION: "question",
}
