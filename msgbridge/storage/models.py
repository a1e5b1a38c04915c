"""Row models for the Messages database."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from msgbridge.utils.exceptions import ValidationError
from msgbridge.utils.helpers import parse_iso


@dataclass(slots=True)
class Chat:
    id: int
    identifier: str
    name: str
    service: str
    last_message_at: datetime | None = None


@dataclass(slots=True)
class ChatInfo:
    id: int
    identifier: str
    guid: str
    name: str
    service: str


@dataclass(slots=True)
class Message:
    rowid: int
    chat_id: int
    guid: str
    sender: str
    is_from_me: bool
    text: str
    date: datetime | None
    service: str
    reply_to_guid: str | None = None
    has_attachments: bool = False


@dataclass(slots=True)
class AttachmentMeta:
    filename: str
    transfer_name: str
    uti: str
    mime_type: str
    total_bytes: int
    is_sticker: bool
    original_path: str
    missing: bool

    @property
    def display_name(self) -> str:
        return self.transfer_name or self.filename or "(unknown)"


@dataclass(slots=True)
class Reaction:
    rowid: int
    type: str
    sender: str
    is_from_me: bool
    date: datetime | None
    removed: bool = False


@dataclass(slots=True)
class MessageFilter:
    """Participant allow-list and half-open [start, end) date window."""

    participants: list[str] = field(default_factory=list)
    start: datetime | None = None
    end: datetime | None = None

    @classmethod
    def from_iso(
        cls,
        participants: list[str] | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> "MessageFilter":
        return cls(
            participants=[p for p in (participants or []) if p],
            start=_parse_bound(start, "start"),
            end=_parse_bound(end, "end"),
        )

    def allows(self, message: Message) -> bool:
        if self.participants:
            sender = message.sender.casefold()
            if not any(p.casefold() == sender for p in self.participants):
                return False
        if message.date is not None:
            if self.start is not None and message.date < self.start:
                return False
            if self.end is not None and message.date >= self.end:
                return False
        return True


def _parse_bound(value: str | None, name: str) -> datetime | None:
    if not value:
        return None
    try:
        return parse_iso(value)
    except ValueError as exc:
        raise ValidationError(f"invalid {name}: {value}", field=name) from exc
