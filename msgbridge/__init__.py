"""msgbridge - JSON-RPC bridge for the Messages conversation backend."""

__version__ = "0.1.0"
__logo__ = "💬"
