"""Single-slot file mailbox shared with the helper peer.

The peer polls the command slot, executes the command, writes its answer to the
response slot and then empties the command slot. A command is complete only
when both conditions hold. One command is outstanding at a time; concurrent
callers queue on an asyncio lock.
"""

from __future__ import annotations

import asyncio
import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from loguru import logger

from msgbridge.bridge.types import MailboxCommand, MailboxResponse
from msgbridge.utils.exceptions import PeerProtocolError, PeerTimeoutError
from msgbridge.utils.helpers import now_ms

# A slot holding at most this many bytes counts as empty ("", "{}", "\n").
EMPTY_SLOT_BYTES = 2


@dataclass(slots=True)
class MailboxPaths:
    """Locations of the command slot, response slot and readiness marker."""

    command: Path
    response: Path
    ready: Path

    @classmethod
    def from_config(cls, config: Any) -> "MailboxPaths":
        base = config.container_path
        mailbox = config.mailbox
        return cls(
            command=base / mailbox.command_file,
            response=base / mailbox.response_file,
            ready=base / mailbox.ready_file,
        )

    def remove_all(self) -> None:
        """Delete all three files, ignoring ones that do not exist."""
        for path in (self.command, self.response, self.ready):
            try:
                path.unlink()
            except FileNotFoundError:
                continue

    def read_marker_pid(self) -> int | None:
        """Pid recorded in the readiness marker, if any."""
        try:
            text = self.ready.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, UnicodeDecodeError):
            return None
        try:
            pid = int(text.split()[0]) if text else 0
        except ValueError:
            return None
        return pid if pid > 0 else None


def _read_slot(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _slot_is_empty(data: bytes | None) -> bool:
    return data is None or len(data) <= EMPTY_SLOT_BYTES


def _write_slot(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)


class MailboxTransport:
    """Serialized request/response over the mailbox files."""

    def __init__(
        self,
        paths: MailboxPaths,
        *,
        poll_interval: float = 0.05,
        timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.paths = paths
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_id = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _next_id(self) -> int:
        self._last_id = max(now_ms(), self._last_id + 1)
        return self._last_id

    async def request(
        self,
        action: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> MailboxResponse:
        """Write one command and wait for its response.

        Raises PeerTimeoutError when the deadline passes and PeerProtocolError
        when the response slot holds something other than a JSON object.
        """
        deadline_seconds = self.timeout if timeout is None else timeout
        async with self._lock:
            command = MailboxCommand(id=self._next_id(), action=action, params=dict(params or {}))
            if not _slot_is_empty(_read_slot(self.paths.response)):
                logger.debug("Mailbox clearing stale response before {}", action)
                self._clear_response()
            _write_slot(self.paths.command, json.dumps(command.to_dict()).encode("utf-8"))
            logger.debug("Mailbox -> {} id={}", action, command.id)
            deadline = self._clock() + deadline_seconds
            while True:
                await self._sleep(self.poll_interval)
                response = self._poll_once(command)
                if response is not None:
                    return response
                if self._clock() >= deadline:
                    logger.warning("Mailbox {} timed out after {}s", action, deadline_seconds)
                    raise PeerTimeoutError(action, deadline_seconds)

    def _poll_once(self, command: MailboxCommand) -> MailboxResponse | None:
        raw = _read_slot(self.paths.response)
        if _slot_is_empty(raw):
            return None
        if not _slot_is_empty(_read_slot(self.paths.command)):
            return None
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise PeerProtocolError(f"Invalid response from helper: {exc}") from exc
        finally:
            self._clear_response()
        if not isinstance(data, dict):
            raise PeerProtocolError("Invalid response from helper: expected an object")
        response = MailboxResponse.from_dict(data)
        if response.id not in (None, 0, command.id):
            logger.debug("Mailbox discarding stale response id={} (waiting for {})", response.id, command.id)
            return None
        logger.debug("Mailbox <- {} id={} success={}", command.action, command.id, response.success)
        return response

    def _clear_response(self) -> None:
        try:
            self.paths.response.write_text("", encoding="utf-8")
        except FileNotFoundError:
            pass
