"""
Pytest fixtures for Network Inspector tests.
"""

import json

import pytest

from netinspect.config import InspectorConfig
from netinspect.events import (
    RequestBodyChunk,
    ResponseBodyChunk,
    ResponseStarted,
    TransactionClosed,
    TransactionStarted,
)
from netinspect.inspector import Inspector
from netinspect.stats import InspectorStats
from netinspect.store import SessionStore

SOURCE = "test-src"
BASE_TIME = 1700000000.0


class EventFactory:
    """Builds events for one source with increasing timestamps."""

    def __init__(self, source: str = SOURCE, start: float = BASE_TIME):
        self.source = source
        self.clock = start

    def _tick(self, at=None) -> float:
        if at is not None:
            return at
        self.clock += 0.01
        return self.clock

    def started(self, tx_id="1", method="GET", host="api.test", path="/items",
                headers=(), at=None, **kwargs):
        return TransactionStarted(id=tx_id, source=self.source, timestamp=self._tick(at),
                                  method=method, host=host, path=path,
                                  headers=tuple(headers), **kwargs)

    def request_chunk(self, tx_id="1", data=b"", at=None):
        return RequestBodyChunk(id=tx_id, source=self.source, timestamp=self._tick(at),
                                data=data)

    def response(self, tx_id="1", status=200, headers=(), at=None):
        return ResponseStarted(id=tx_id, source=self.source, timestamp=self._tick(at),
                               status=status, headers=tuple(headers))

    def response_chunk(self, tx_id="1", data=b"", at=None):
        return ResponseBodyChunk(id=tx_id, source=self.source, timestamp=self._tick(at),
                                 data=data)

    def closed(self, tx_id="1", error=None, at=None):
        return TransactionClosed(id=tx_id, source=self.source, timestamp=self._tick(at),
                                 error=error)

    def full(self, tx_id="1", status=200, body=b"ok", **kwargs):
        """Event sequence of one complete transaction."""
        return [
            self.started(tx_id, **kwargs),
            self.response(tx_id, status=status),
            self.response_chunk(tx_id, data=body),
            self.closed(tx_id),
        ]


@pytest.fixture
def events():
    """Event factory for the default test source."""
    return EventFactory()


@pytest.fixture
def stats():
    """Fresh statistics object."""
    return InspectorStats()


@pytest.fixture
def store(stats):
    """Session store with default caps."""
    return SessionStore(stats=stats)


@pytest.fixture
def small_store(stats):
    """Session store with tiny caps for truncation and eviction tests."""
    return SessionStore(body_cap=8, retention_ceiling=3, stats=stats)


@pytest.fixture
def inspector(stats):
    """Inspector with default configuration."""
    return Inspector(InspectorConfig(), stats=stats)


@pytest.fixture
def wire_message():
    """Encode a dict as one wire message."""
    def encode(**fields):
        return json.dumps(fields).encode("utf-8")
    return encode
