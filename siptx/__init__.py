"""SIP transaction layer: message model, header helpers, keys, timers and transaction state machines."""

__version__ = "0.2.91"

__all__ = ["base", "client", "common", "ext", "key", "message", "server", "sip", "timer"]