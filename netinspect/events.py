"""
Telemetry events emitted by instrumented processes.

The event vocabulary is closed: five immutable variants, each tied to
one transaction by its correlation id and source.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

Headers = Tuple[Tuple[str, str], ...]


class EventKind(Enum):
    """Wire tag of each event variant."""
    TRANSACTION_STARTED = "transaction_started"
    REQUEST_BODY_CHUNK = "request_body_chunk"
    RESPONSE_STARTED = "response_started"
    RESPONSE_BODY_CHUNK = "response_body_chunk"
    TRANSACTION_CLOSED = "transaction_closed"


@dataclass(frozen=True)
class TransactionStarted:
    """Request metadata for a new transaction."""
    id: str
    source: str
    timestamp: float
    method: str
    host: str
    path: str
    headers: Headers = ()
    service: Optional[str] = None
    http_version: Optional[str] = None

    kind = EventKind.TRANSACTION_STARTED

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)


@dataclass(frozen=True)
class RequestBodyChunk:
    """A slice of the request body."""
    id: str
    source: str
    timestamp: float
    data: bytes

    kind = EventKind.REQUEST_BODY_CHUNK

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)


@dataclass(frozen=True)
class ResponseStarted:
    """Response status line and headers."""
    id: str
    source: str
    timestamp: float
    status: int
    headers: Headers = ()

    kind = EventKind.RESPONSE_STARTED

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)


@dataclass(frozen=True)
class ResponseBodyChunk:
    """A slice of the response body."""
    id: str
    source: str
    timestamp: float
    data: bytes

    kind = EventKind.RESPONSE_BODY_CHUNK

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)


@dataclass(frozen=True)
class TransactionClosed:
    """End of a transaction, with an error if it did not complete."""
    id: str
    source: str
    timestamp: float
    error: Optional[str] = None

    kind = EventKind.TRANSACTION_CLOSED

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)


Event = Union[
    TransactionStarted,
    RequestBodyChunk,
    ResponseStarted,
    ResponseBodyChunk,
    TransactionClosed,
]
