"""Outbound message channels."""

from msgbridge.channels.sender import MessageSendOptions, MessageService, SendFunc, send_message

__all__ = ["MessageSendOptions", "MessageService", "SendFunc", "send_message"]
