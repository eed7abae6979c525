"""
Error types for the network inspector.

Per-message and per-transaction failures are recovered where they occur;
only TransportUnavailable and ConfigError end the process.
"""


class InspectorError(Exception):
    """Base class for inspector errors."""


class MalformedMessage(InspectorError):
    """A raw message could not be decoded into an event."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidFilter(InspectorError):
    """Filter text could not be parsed into a predicate."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TransportUnavailable(InspectorError):
    """The listener socket could not be bound."""


class ConfigError(InspectorError):
    """Invalid configuration file or option value."""


class ClipboardUnavailable(InspectorError):
    """No clipboard command could take the copied text."""


# Recorded as Transaction.error text, never raised
PROTOCOL_ORDER_VIOLATION = "protocol order violation: response body before response start"
