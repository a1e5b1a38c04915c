from msgbridge.services.auto_behavior.auto_behavior_service import (
    AutoBehavior,
    resolve_read_handle,
    resolve_typing_handle,
    typing_delay_seconds,
)

__all__ = ["AutoBehavior", "resolve_read_handle", "resolve_typing_handle", "typing_delay_seconds"]
