"""
Network Inspector Package.

A terminal inspector for HTTP traffic telemetry streamed by an
instrumented process.
"""

__version__ = "1.0.0"

from .config import InspectorConfig
from .decoder import EventDecoder
from .errors import (
    ClipboardUnavailable,
    ConfigError,
    InvalidFilter,
    MalformedMessage,
    TransportUnavailable,
)
from .inspector import Inspector
from .listener import TransportListener
from .query import Predicate, QueryEngine, SortKey, SortOrder
from .store import SessionStore, Transaction, TransactionState

__all__ = [
    "ClipboardUnavailable",
    "ConfigError",
    "EventDecoder",
    "Inspector",
    "InspectorConfig",
    "InvalidFilter",
    "MalformedMessage",
    "Predicate",
    "QueryEngine",
    "SessionStore",
    "SortKey",
    "SortOrder",
    "Transaction",
    "TransactionState",
    "TransportListener",
    "TransportUnavailable",
]
