"""Outbound sending through Messages' AppleScript dictionary (osascript)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from loguru import logger

from msgbridge.utils.exceptions import SendFailedError, ValidationError


class MessageService(str, Enum):
    AUTO = "auto"
    IMESSAGE = "imessage"
    SMS = "sms"

    @classmethod
    def parse(cls, value: str | None) -> "MessageService":
        try:
            return cls((value or cls.AUTO.value).strip().lower())
        except ValueError as exc:
            raise ValidationError("invalid service", field="service") from exc


@dataclass(slots=True)
class MessageSendOptions:
    """One outbound message. Either `recipient` or a chat target is set."""

    recipient: str = ""
    text: str = ""
    attachment_path: str = ""
    service: MessageService = MessageService.AUTO
    region: str = "US"
    chat_identifier: str = ""
    chat_guid: str = ""

    @property
    def chat_target(self) -> str:
        return self.chat_guid or self.chat_identifier


SEND_SCRIPT = """
on run argv
    set theRecipient to item 1 of argv
    set theText to item 2 of argv
    set theFile to item 3 of argv
    set theService to item 4 of argv
    set theChat to item 5 of argv
    tell application "Messages"
        if theChat is not "" then
            set theTarget to chat id theChat
        else
            if theService is "sms" then
                set theAccount to 1st account whose service type = SMS
            else
                set theAccount to 1st account whose service type = iMessage
            end if
            set theTarget to participant theRecipient of theAccount
        end if
        if theText is not "" then
            send theText to theTarget
        end if
        if theFile is not "" then
            send (POSIX file theFile) to theTarget
        end if
    end tell
end run
"""

SendFunc = Callable[[MessageSendOptions], Awaitable[None]]


async def send_message(options: MessageSendOptions, *, timeout_seconds: float = 30.0) -> None:
    """Send via osascript; raises SendFailedError on a non-zero exit."""
    attachment = ""
    if options.attachment_path:
        path = Path(options.attachment_path).expanduser()
        if not path.is_file():
            raise ValidationError(f"file not found: {options.attachment_path}", field="file")
        attachment = str(path.resolve())
    args = [
        "osascript",
        "-e",
        SEND_SCRIPT,
        options.recipient,
        options.text,
        attachment,
        options.service.value,
        options.chat_target,
    ]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, OSError) as exc:
        raise SendFailedError(f"osascript unavailable: {exc}") from exc
    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise SendFailedError(f"osascript timed out after {timeout_seconds}s") from exc
    if proc.returncode != 0:
        reason = stderr.decode("utf-8", errors="replace").strip() or f"exit code {proc.returncode}"
        raise SendFailedError(reason)
    logger.debug("Sent message to {}", options.chat_target or options.recipient)
