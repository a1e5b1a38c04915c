"""Typing state differ: turns noisy typing observations into edge events.

Per conversation it keeps the last known typing flag of every participant.
Each observation (a full per-conversation snapshot or a single handle update)
is compared against that map and only transitions become TypingEvents. Events
are handed to every registered sink whose filter matches the conversation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from msgbridge.utils.helpers import iso_now


@dataclass(slots=True, frozen=True)
class TypingEvent:
    chat_guid: str | None
    chat_identifier: str | None
    handle: str
    is_typing: bool
    timestamp: str

    @property
    def chat_ref(self) -> str | None:
        return self.chat_guid or self.chat_identifier

    def to_payload(self) -> dict[str, Any]:
        return {
            "chat_guid": self.chat_guid,
            "chat_identifier": self.chat_identifier,
            "handle": self.handle,
            "is_typing": self.is_typing,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True, frozen=True)
class TypingFilter:
    """Conversation filter; an empty filter matches every conversation."""

    chat_guid: str | None = None
    chat_identifier: str | None = None
    raw: str | None = None  # unresolved filter text, compared against both fields

    @property
    def is_empty(self) -> bool:
        return not (self.chat_guid or self.chat_identifier or self.raw)

    def matches(self, chat_guid: str | None, chat_identifier: str | None) -> bool:
        if self.is_empty:
            return True
        if self.chat_guid and chat_guid == self.chat_guid:
            return True
        if self.chat_identifier and chat_identifier == self.chat_identifier:
            return True
        if self.raw and self.raw in (chat_guid, chat_identifier):
            return True
        return False


TypingSink = Callable[[TypingEvent], None]


def state_key(chat_guid: str | None, chat_identifier: str | None, handle: str | None = None) -> str | None:
    if chat_guid:
        return chat_guid
    if chat_identifier:
        return f"id:{chat_identifier}"
    if handle:
        return f"handle:{handle}"
    return None


class TypingStateDiffer:
    """Owns the typing state table and the typing subscription filters.

    Not thread-safe; it is only touched from the event loop.
    """

    def __init__(self, clock: Callable[[], str] = iso_now):
        self._clock = clock
        self._states: dict[str, dict[str, bool]] = {}
        self._routes: dict[int, tuple[TypingFilter, TypingSink]] = {}

    def register(self, subscription_id: int, typing_filter: TypingFilter, sink: TypingSink) -> None:
        self._routes[subscription_id] = (typing_filter, sink)

    def unregister(self, subscription_id: int) -> bool:
        return self._routes.pop(subscription_id, None) is not None

    @property
    def subscription_ids(self) -> list[int]:
        return sorted(self._routes)

    def state(self, chat_guid: str | None, chat_identifier: str | None) -> dict[str, bool]:
        key = state_key(chat_guid, chat_identifier)
        return dict(self._states.get(key, {})) if key else {}

    def observe_snapshot(
        self,
        *,
        chat_guid: str | None,
        chat_identifier: str | None,
        states: dict[str, bool],
    ) -> list[TypingEvent]:
        """Replace a conversation's state map; handles missing on either side count as idle."""
        key = state_key(chat_guid, chat_identifier)
        if key is None:
            logger.debug("Typing snapshot without conversation reference dropped")
            return []
        new_states = {str(h): bool(v) for h, v in states.items() if h}
        old_states = self._states.get(key, {})
        timestamp = self._clock()
        events = [
            TypingEvent(chat_guid, chat_identifier, handle, new_states.get(handle, False), timestamp)
            for handle in sorted(set(old_states) | set(new_states))
            if old_states.get(handle, False) != new_states.get(handle, False)
        ]
        self._states[key] = new_states
        self._dispatch(events)
        return events

    def observe_update(
        self,
        *,
        chat_guid: str | None,
        chat_identifier: str | None,
        handle: str,
        is_typing: bool,
        timestamp: str | None = None,
    ) -> list[TypingEvent]:
        key = state_key(chat_guid, chat_identifier, handle)
        if key is None or not handle:
            return []
        current = self._states.setdefault(key, {})
        if current.get(handle, False) == is_typing:
            return []
        current[handle] = is_typing
        events = [TypingEvent(chat_guid, chat_identifier, handle, is_typing, timestamp or self._clock())]
        self._dispatch(events)
        return events

    def observe(self, observation: dict[str, Any]) -> list[TypingEvent]:
        """Feed one raw peer observation: `{chat_guid?, chat_id?, states}` or `{..., handle, is_typing}`."""
        chat_guid = _opt_str(observation.get("chat_guid"))
        chat_identifier = _opt_str(observation.get("chat_identifier") or observation.get("chat_id"))
        states = observation.get("states")
        if isinstance(states, dict):
            return self.observe_snapshot(chat_guid=chat_guid, chat_identifier=chat_identifier, states=states)
        handle = _opt_str(observation.get("handle"))
        if handle is None:
            return []
        return self.observe_update(
            chat_guid=chat_guid,
            chat_identifier=chat_identifier,
            handle=handle,
            is_typing=bool(observation.get("is_typing")),
            timestamp=_opt_str(observation.get("timestamp")),
        )

    def _dispatch(self, events: list[TypingEvent]) -> None:
        for event in events:
            for typing_filter, sink in list(self._routes.values()):
                if typing_filter.matches(event.chat_guid, event.chat_identifier):
                    sink(event)


def _opt_str(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None
