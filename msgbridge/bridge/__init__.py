"""Helper peer access: mailbox transport, launcher and typed client."""

from msgbridge.bridge.client import CAPABILITY_TABLES, PeerBridge, map_peer_error
from msgbridge.bridge.launcher import PeerLauncher
from msgbridge.bridge.mailbox import MailboxPaths, MailboxTransport
from msgbridge.bridge.types import MailboxCommand, MailboxResponse, TapbackType

__all__ = [
    "CAPABILITY_TABLES",
    "MailboxCommand",
    "MailboxPaths",
    "MailboxResponse",
    "MailboxTransport",
    "PeerBridge",
    "PeerLauncher",
    "TapbackType",
    "map_peer_error",
]
