"""
Session Store for the network inspector.

Authoritative in-memory model of reconstructed transactions, keyed by
(source, correlation id). Records are immutable; every update replaces
the stored record, so snapshots taken earlier never observe later
changes. The store is written by one thread only (the render loop).
"""

import heapq
import logging
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from .errors import PROTOCOL_ORDER_VIOLATION
from .events import (
    Event,
    Headers,
    RequestBodyChunk,
    ResponseBodyChunk,
    ResponseStarted,
    TransactionClosed,
    TransactionStarted,
)

logger = logging.getLogger(__name__)

Key = Tuple[str, str]

DEFAULT_BODY_CAP = 64 * 1024
DEFAULT_RETENTION_CEILING = 1000

ORPHAN_METHOD = "?"


class TransactionState(Enum):
    """Lifecycle state of a transaction."""
    PENDING = "pending"         # Started, nothing else seen
    IN_FLIGHT = "in_flight"     # Body or response streaming
    COMPLETED = "completed"     # Closed without error
    FAILED = "failed"           # Closed with error

    @property
    def rank(self) -> int:
        return STATE_RANK[self]

    @property
    def is_closed(self) -> bool:
        return self in (TransactionState.COMPLETED, TransactionState.FAILED)


STATE_RANK = {
    TransactionState.PENDING: 0,
    TransactionState.IN_FLIGHT: 1,
    TransactionState.COMPLETED: 2,
    TransactionState.FAILED: 2,
}


@dataclass(frozen=True)
class Transaction:
    """Reconstructed record of one network transaction."""
    id: str
    source: str
    started_at: float
    method: str = ORPHAN_METHOD
    host: str = ""
    path: str = ""
    request_headers: Headers = ()
    request_body: bytes = b""
    request_truncated: bool = False
    status: Optional[int] = None
    response_headers: Headers = ()
    response_body: bytes = b""
    response_truncated: bool = False
    state: TransactionState = TransactionState.PENDING
    response_started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None
    orphaned: bool = False
    service: Optional[str] = None
    http_version: Optional[str] = None
    # Insertion order, differs between otherwise identical stores
    seq: int = field(default=0, compare=False)

    @property
    def key(self) -> Key:
        return (self.source, self.id)

    @property
    def is_closed(self) -> bool:
        return self.state.is_closed

    @property
    def has_response(self) -> bool:
        return self.status is not None

    @property
    def truncated(self) -> bool:
        return self.request_truncated or self.response_truncated

    @property
    def duration(self) -> Optional[float]:
        """Seconds from start to close, None while open."""
        if self.completed_at is None:
            return None
        return max(0.0, self.completed_at - self.started_at)

    @property
    def url(self) -> str:
        return f"{self.host}{self.path}"

    @property
    def query_params(self) -> List[Tuple[str, str]]:
        """Decoded query string parameters of the request path."""
        return parse_qsl(urlsplit(self.path).query, keep_blank_values=True)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time, read-only view of the store contents."""
    transactions: Tuple[Transaction, ...]
    version: int
    taken_at: float

    def __len__(self) -> int:
        return len(self.transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.transactions)

    def by_key(self) -> Dict[Key, Transaction]:
        return {tx.key: tx for tx in self.transactions}

    def get(self, key: Key) -> Optional[Transaction]:
        for tx in self.transactions:
            if tx.key == key:
                return tx
        return None


def _append_capped(body: bytes, data: bytes, cap: Optional[int]) -> Tuple[bytes, bool]:
    """Append data to body without exceeding cap; return (body, dropped)."""
    if cap is None:
        return body + data, False
    room = cap - len(body)
    if len(data) <= room:
        return body + data, False
    return body + data[:max(room, 0)], True


class SessionStore:
    """
    Mapping of (source, id) to Transaction with retention policy.

    Invariants:
    - keys are unique and insertion order is kept for display
    - a transaction's state rank never decreases
    - stored bodies never exceed body_cap bytes
    - open transactions are never evicted
    """

    def __init__(
        self,
        body_cap: Optional[int] = DEFAULT_BODY_CAP,
        retention_ceiling: Optional[int] = DEFAULT_RETENTION_CEILING,
        stats=None,
    ):
        """
        Initialize the store.

        Args:
            body_cap: Per-body byte cap, None only when explicitly unbounded
            retention_ceiling: Maximum closed transactions kept, None only
                when explicitly unbounded
            stats: Optional InspectorStats to record store activity
        """
        if body_cap is not None and body_cap <= 0:
            raise ValueError(f"body_cap must be positive: {body_cap}")
        if retention_ceiling is not None and retention_ceiling <= 0:
            raise ValueError(f"retention_ceiling must be positive: {retention_ceiling}")

        self.body_cap = body_cap
        self.retention_ceiling = retention_ceiling
        self.stats = stats

        self._transactions: Dict[Key, Transaction] = {}
        # (completed_at, seq, key) of closed transactions
        self._closed_heap: List[Tuple[float, int, Key]] = []
        self._closed_count = 0
        self._seq = 0
        self._version = 0
        self._snapshot: Optional[Snapshot] = None

    def __len__(self) -> int:
        return len(self._transactions)

    def __contains__(self, key) -> bool:
        return key in self._transactions

    @property
    def version(self) -> int:
        """Incremented on every mutation."""
        return self._version

    @property
    def closed_count(self) -> int:
        return self._closed_count

    def get(self, tx_id: str, source: Optional[str] = None) -> Optional[Transaction]:
        """
        Look up a transaction.

        Args:
            tx_id: Correlation id
            source: Source scope; None returns the first match of any source
        """
        if source is not None:
            return self._transactions.get((source, tx_id))
        for tx in self._transactions.values():
            if tx.id == tx_id:
                return tx
        return None

    def counts(self) -> Dict[TransactionState, int]:
        """Number of transactions in each state."""
        counter = Counter(tx.state for tx in self._transactions.values())
        return {state: counter.get(state, 0) for state in TransactionState}

    def apply(self, event: Event) -> Transaction:
        """
        Apply one event to the transaction it names.

        Creates the transaction on TransactionStarted, or synthesizes an
        orphaned one when any other event names an unknown id. Runs the
        retention policy afterwards.

        Returns:
            The transaction as it stands after the event
        """
        current = self._transactions.get(event.key)
        created = current is None
        if created:
            current = self._create(event)

        updated = self._transition(current, event)
        if created or updated is not current:
            self._store(updated, was_closed=not created and current.is_closed)

        if self.stats is not None:
            self.stats.record_event_applied()

        self.evict_if_over_capacity()
        return updated

    def remove(self, key: Key) -> Optional[Transaction]:
        """
        Delete one transaction at the operator's request.

        Returns:
            The removed transaction, or None if the key was not stored
        """
        tx = self._transactions.pop(key, None)
        if tx is None:
            return None
        # Its heap entry goes stale and is skipped by eviction
        if tx.is_closed:
            self._closed_count -= 1
        self._version += 1
        logger.info(f"Removed transaction {tx.id} from {tx.source}")
        return tx

    def evict_if_over_capacity(self) -> int:
        """
        Drop the oldest closed transactions while over the ceiling.

        Returns:
            Number of transactions evicted
        """
        if self.retention_ceiling is None:
            return 0

        evicted = 0
        while self._closed_count > self.retention_ceiling and self._closed_heap:
            _, seq, key = heapq.heappop(self._closed_heap)
            tx = self._transactions.get(key)
            if tx is None or tx.seq != seq or not tx.is_closed:
                continue
            del self._transactions[key]
            self._closed_count -= 1
            evicted += 1

        if evicted:
            self._version += 1
            logger.debug(f"Evicted {evicted} closed transaction(s)")
            if self.stats is not None:
                self.stats.record_evictions(evicted)
        return evicted

    def snapshot(self) -> Snapshot:
        """Return a consistent snapshot; reused while nothing changed."""
        if self._snapshot is None or self._snapshot.version != self._version:
            self._snapshot = Snapshot(
                transactions=tuple(self._transactions.values()),
                version=self._version,
                taken_at=time.time(),
            )
        return self._snapshot

    def _create(self, event: Event) -> Transaction:
        self._seq += 1
        if isinstance(event, TransactionStarted):
            return Transaction(
                id=event.id,
                source=event.source,
                started_at=event.timestamp,
                seq=self._seq,
            )

        logger.info(f"Orphaned {event.kind.value} for unknown transaction "
                    f"{event.id} from {event.source}")
        if self.stats is not None:
            self.stats.record_orphan()
        return Transaction(
            id=event.id,
            source=event.source,
            started_at=event.timestamp,
            orphaned=True,
            seq=self._seq,
        )

    def _store(self, tx: Transaction, was_closed: bool) -> None:
        self._transactions[tx.key] = tx
        self._version += 1
        if tx.is_closed and not was_closed:
            self._closed_count += 1
            heapq.heappush(self._closed_heap, (tx.completed_at, tx.seq, tx.key))

    def _transition(self, tx: Transaction, event: Event) -> Transaction:
        """Compute the record that results from applying event to tx."""
        if tx.is_closed:
            logger.debug(f"Ignoring {event.kind.value} for closed transaction {tx.id}")
            return tx

        if isinstance(event, TransactionStarted):
            return self._on_started(tx, event)
        if isinstance(event, RequestBodyChunk):
            return self._on_request_chunk(tx, event)
        if isinstance(event, ResponseStarted):
            return self._on_response_started(tx, event)
        if isinstance(event, ResponseBodyChunk):
            return self._on_response_chunk(tx, event)
        if isinstance(event, TransactionClosed):
            return self._on_closed(tx, event)
        raise TypeError(f"Unknown event type: {type(event).__name__}")

    def _on_started(self, tx: Transaction, event: TransactionStarted) -> Transaction:
        if tx.method != ORPHAN_METHOD:
            logger.debug(f"Ignoring duplicate start for transaction {tx.id}")
            return tx
        # New record, or an orphan learning its request metadata late
        return replace(
            tx,
            method=event.method,
            host=event.host,
            path=event.path,
            request_headers=event.headers,
            service=event.service,
            http_version=event.http_version,
            started_at=min(tx.started_at, event.timestamp),
        )

    def _on_request_chunk(self, tx: Transaction, event: RequestBodyChunk) -> Transaction:
        body, dropped = _append_capped(tx.request_body, event.data, self.body_cap)
        if dropped and not tx.request_truncated:
            self._record_truncation(tx)
        return replace(
            tx,
            request_body=body,
            request_truncated=tx.request_truncated or dropped,
            state=self._advance(tx.state, TransactionState.IN_FLIGHT),
        )

    def _on_response_started(self, tx: Transaction, event: ResponseStarted) -> Transaction:
        if tx.has_response:
            logger.debug(f"Ignoring duplicate response start for transaction {tx.id}")
            return tx
        return replace(
            tx,
            status=event.status,
            response_headers=event.headers,
            response_started_at=event.timestamp,
            state=self._advance(tx.state, TransactionState.IN_FLIGHT),
        )

    def _on_response_chunk(self, tx: Transaction, event: ResponseBodyChunk) -> Transaction:
        if not tx.has_response and not tx.orphaned:
            logger.warning(f"Protocol order violation on transaction {tx.id} "
                           f"from {tx.source}")
            if self.stats is not None:
                self.stats.record_protocol_violation()
            return replace(
                tx,
                state=TransactionState.FAILED,
                completed_at=event.timestamp,
                error=PROTOCOL_ORDER_VIOLATION,
            )

        body, dropped = _append_capped(tx.response_body, event.data, self.body_cap)
        if dropped and not tx.response_truncated:
            self._record_truncation(tx)
        return replace(
            tx,
            response_body=body,
            response_truncated=tx.response_truncated or dropped,
            state=self._advance(tx.state, TransactionState.IN_FLIGHT),
        )

    def _on_closed(self, tx: Transaction, event: TransactionClosed) -> Transaction:
        if event.error:
            state = TransactionState.FAILED
        else:
            state = TransactionState.COMPLETED
        return replace(
            tx,
            state=state,
            completed_at=event.timestamp,
            error=event.error or None,
        )

    @staticmethod
    def _advance(current: TransactionState, target: TransactionState) -> TransactionState:
        return target if target.rank > current.rank else current

    def _record_truncation(self, tx: Transaction) -> None:
        logger.debug(f"Body of transaction {tx.id} truncated at {self.body_cap} bytes")
        if self.stats is not None:
            self.stats.record_truncation()
