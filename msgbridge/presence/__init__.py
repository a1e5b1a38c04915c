from msgbridge.presence.typing_state import TypingEvent, TypingFilter, TypingStateDiffer

__all__ = ["TypingEvent", "TypingFilter", "TypingStateDiffer"]
