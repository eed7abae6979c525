"""
Query/Filter Engine for the network inspector.

Computes an ordered, filtered view over a store snapshot. Evaluation
never mutates the snapshot and is deterministic for a given input.

Filter text syntax (terms are AND-ed):
    status=200  status=4xx  status=400-499
    state=failed  method=post  host=api.example
    anything else is free text, matched case-insensitively
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .errors import InvalidFilter
from .store import Key, Snapshot, Transaction, TransactionState

BODY_SEARCH_PREFIX = 1024

STATUS_EXACT_RE = re.compile(r"^(\d{3})$")
STATUS_CLASS_RE = re.compile(r"^([1-9])xx$", re.IGNORECASE)
STATUS_RANGE_RE = re.compile(r"^(\d{3})-(\d{3})$")

STATE_ALIASES = {
    "pending": TransactionState.PENDING,
    "inflight": TransactionState.IN_FLIGHT,
    "in_flight": TransactionState.IN_FLIGHT,
    "in-flight": TransactionState.IN_FLIGHT,
    "completed": TransactionState.COMPLETED,
    "done": TransactionState.COMPLETED,
    "failed": TransactionState.FAILED,
    "error": TransactionState.FAILED,
}


class SortKey(Enum):
    """Column the view is ordered by."""
    START = "start"
    DURATION = "duration"
    STATUS = "status"
    METHOD = "method"
    HOST = "host"

    def next(self) -> "SortKey":
        members = list(SortKey)
        return members[(members.index(self) + 1) % len(members)]


class SortOrder(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    def reversed(self) -> "SortOrder":
        if self == SortOrder.ASCENDING:
            return SortOrder.DESCENDING
        return SortOrder.ASCENDING


def parse_status_range(value: str) -> Tuple[int, int]:
    """
    Parse a status filter value into an inclusive range.

    Raises:
        InvalidFilter: value is not NNN, Nxx or NNN-NNN within 100-999
    """
    match = STATUS_EXACT_RE.match(value)
    if match:
        code = int(match.group(1))
        lo, hi = code, code
    else:
        match = STATUS_CLASS_RE.match(value)
        if match:
            lo = int(match.group(1)) * 100
            hi = lo + 99
        else:
            match = STATUS_RANGE_RE.match(value)
            if not match:
                raise InvalidFilter(f"malformed status range: {value!r}")
            lo, hi = int(match.group(1)), int(match.group(2))

    if lo < 100 or hi > 999 or lo > hi:
        raise InvalidFilter(f"status range out of bounds: {value!r}")
    return lo, hi


def parse_state(value: str) -> TransactionState:
    try:
        return STATE_ALIASES[value.lower()]
    except KeyError:
        raise InvalidFilter(f"unknown state: {value!r}") from None


@dataclass(frozen=True)
class Predicate:
    """Conjunction of filter terms; the empty predicate matches everything."""
    text: str = ""
    status_range: Optional[Tuple[int, int]] = None
    state: Optional[TransactionState] = None
    method: Optional[str] = None
    host: Optional[str] = None

    @classmethod
    def parse(cls, filter_text: str) -> "Predicate":
        """
        Parse filter text into a predicate.

        Raises:
            InvalidFilter: a structured term has an invalid value
        """
        words = []
        status_range = None
        state = None
        method = None
        host = None

        for token in filter_text.split():
            name, sep, value = token.partition("=")
            name = name.lower()
            if not sep or name not in ("status", "state", "method", "host"):
                words.append(token)
                continue
            if not value:
                raise InvalidFilter(f"missing value for {name}")

            if name == "status":
                status_range = parse_status_range(value)
            elif name == "state":
                state = parse_state(value)
            elif name == "method":
                if not value.isalpha():
                    raise InvalidFilter(f"invalid method: {value!r}")
                method = value.upper()
            else:
                host = value.lower()

        return cls(
            text=" ".join(words).lower(),
            status_range=status_range,
            state=state,
            method=method,
            host=host,
        )

    @property
    def is_empty(self) -> bool:
        return (not self.text and self.status_range is None and self.state is None
                and self.method is None and self.host is None)

    def matches(self, tx: Transaction) -> bool:
        if self.state is not None and tx.state != self.state:
            return False
        if self.status_range is not None:
            if tx.status is None:
                return False
            lo, hi = self.status_range
            if not lo <= tx.status <= hi:
                return False
        if self.method is not None and tx.method != self.method:
            return False
        if self.host is not None and self.host not in tx.host.lower():
            return False
        if self.text and self.text not in _search_text(tx):
            return False
        return True


def _search_text(tx: Transaction) -> str:
    """Lower-cased haystack for free-text matching."""
    parts = [tx.method, tx.host, tx.path]
    parts.extend(value for _, value in tx.request_headers)
    parts.extend(value for _, value in tx.response_headers)
    parts.append(tx.request_body[:BODY_SEARCH_PREFIX].decode("utf-8", errors="replace"))
    parts.append(tx.response_body[:BODY_SEARCH_PREFIX].decode("utf-8", errors="replace"))
    return "\n".join(parts).lower()


@dataclass(frozen=True)
class View:
    """Ordered result of one evaluation; holds references only."""
    transactions: Tuple[Transaction, ...]
    version: int
    predicate: Predicate
    sort_key: SortKey
    sort_order: SortOrder

    def __len__(self) -> int:
        return len(self.transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.transactions)

    def __getitem__(self, index):
        return self.transactions[index]

    def keys(self) -> List[Key]:
        return [tx.key for tx in self.transactions]

    def index_of(self, key: Optional[Key]) -> Optional[int]:
        if key is None:
            return None
        for index, tx in enumerate(self.transactions):
            if tx.key == key:
                return index
        return None


EMPTY_VIEW = View((), -1, Predicate(), SortKey.START, SortOrder.ASCENDING)


def _tiebreak(tx: Transaction):
    return (tx.source, tx.id)


class QueryEngine:
    """Evaluates predicates and sort criteria against snapshots."""

    def evaluate(
        self,
        snapshot: Snapshot,
        predicate: Predicate,
        sort_key: SortKey = SortKey.START,
        sort_order: SortOrder = SortOrder.ASCENDING,
    ) -> View:
        """
        Filter and order a snapshot.

        Args:
            snapshot: Store snapshot to read
            predicate: Filter to apply
            sort_key: Ordering column
            sort_order: Ascending or descending

        Returns:
            The resulting view
        """
        if predicate.is_empty:
            matched = list(snapshot.transactions)
        else:
            matched = [tx for tx in snapshot.transactions if predicate.matches(tx)]

        ordered = self._sort(matched, sort_key, sort_order == SortOrder.DESCENDING)
        return View(
            transactions=tuple(ordered),
            version=snapshot.version,
            predicate=predicate,
            sort_key=sort_key,
            sort_order=sort_order,
        )

    def evaluate_text(
        self,
        snapshot: Snapshot,
        filter_text: str,
        sort_key: SortKey = SortKey.START,
        sort_order: SortOrder = SortOrder.ASCENDING,
    ) -> View:
        """Parse filter text and evaluate; raises InvalidFilter."""
        return self.evaluate(snapshot, Predicate.parse(filter_text), sort_key, sort_order)

    @staticmethod
    def _sort(items: List[Transaction], sort_key: SortKey, descending: bool) -> List[Transaction]:
        if sort_key == SortKey.START:
            return sorted(items, key=lambda tx: (tx.started_at, _tiebreak(tx)),
                          reverse=descending)

        if sort_key == SortKey.METHOD:
            return sorted(items, key=lambda tx: (tx.method, tx.started_at, _tiebreak(tx)),
                          reverse=descending)

        if sort_key == SortKey.HOST:
            return sorted(items, key=lambda tx: (tx.host.lower(), tx.path, _tiebreak(tx)),
                          reverse=descending)

        # Rows without a value stay last in either direction
        if sort_key == SortKey.DURATION:
            ranked = [tx for tx in items if tx.is_closed]
            rest = [tx for tx in items if not tx.is_closed]
            ranked.sort(key=lambda tx: (tx.duration, _tiebreak(tx)), reverse=descending)
        else:
            ranked = [tx for tx in items if tx.has_response]
            rest = [tx for tx in items if not tx.has_response]
            ranked.sort(key=lambda tx: (tx.status, tx.started_at, _tiebreak(tx)),
                        reverse=descending)

        rest.sort(key=lambda tx: (tx.started_at, _tiebreak(tx)))
        return ranked + rest
