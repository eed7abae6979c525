"""
Tests for the Session Store.
"""

import random

import pytest

from netinspect.errors import PROTOCOL_ORDER_VIOLATION
from netinspect.store import ORPHAN_METHOD, SessionStore, TransactionState

from conftest import EventFactory


def apply_all(store, events):
    for event in events:
        store.apply(event)


class TestLifecycle:
    """Tests for the per-transaction state machine."""

    def test_started_is_pending(self, store, events):
        """Test a new transaction starts pending with its request metadata."""
        tx = store.apply(events.started("1", method="POST", host="api.test", path="/orders",
                                        headers=[("accept", "*/*")]))

        assert tx.state == TransactionState.PENDING
        assert tx.method == "POST"
        assert tx.url == "api.test/orders"
        assert tx.request_headers == (("accept", "*/*"),)
        assert tx.status is None
        assert not tx.orphaned
        assert len(store) == 1

    def test_request_chunk_moves_to_in_flight(self, store, events):
        store.apply(events.started("1"))
        tx = store.apply(events.request_chunk("1", data=b"abc"))

        assert tx.state == TransactionState.IN_FLIGHT
        assert tx.request_body == b"abc"

    def test_response_started_records_status(self, store, events):
        store.apply(events.started("1"))
        tx = store.apply(events.response("1", status=201, headers=[("content-type", "x")]))

        assert tx.state == TransactionState.IN_FLIGHT
        assert tx.status == 201
        assert tx.response_headers == (("content-type", "x"),)

    def test_full_transaction_completes(self, store, events):
        apply_all(store, events.full("1", body=b"hello"))
        tx = store.get("1", events.source)

        assert tx.state == TransactionState.COMPLETED
        assert tx.response_body == b"hello"
        assert tx.completed_at is not None
        assert tx.duration >= 0
        assert store.closed_count == 1

    def test_response_chunks_concatenate_in_order(self, store, events):
        store.apply(events.started("1"))
        store.apply(events.response("1"))
        for part in (b"ab", b"cd", b"ef"):
            store.apply(events.response_chunk("1", data=part))

        assert store.get("1").response_body == b"abcdef"

    def test_closed_with_error_fails(self, store, events):
        store.apply(events.started("1"))
        tx = store.apply(events.closed("1", error="ECONNRESET"))

        assert tx.state == TransactionState.FAILED
        assert tx.error == "ECONNRESET"

    def test_events_after_close_are_ignored(self, store, events):
        """Test a closed transaction is never reopened or modified."""
        apply_all(store, events.full("1", body=b"done"))
        version = store.version

        store.apply(events.response_chunk("1", data=b"late"))
        store.apply(events.started("1", method="DELETE"))
        store.apply(events.closed("1", error="late error"))

        tx = store.get("1")
        assert tx.state == TransactionState.COMPLETED
        assert tx.response_body == b"done"
        assert tx.method == "GET"
        assert tx.error is None
        assert store.version == version

    def test_duplicate_start_keeps_first(self, store, events):
        store.apply(events.started("1", path="/first"))
        store.apply(events.started("1", path="/second"))

        assert store.get("1").path == "/first"
        assert len(store) == 1

    def test_state_rank_never_decreases(self, store, events):
        store.apply(events.started("1"))
        store.apply(events.response("1"))
        tx = store.apply(events.request_chunk("1", data=b"x"))

        assert tx.state == TransactionState.IN_FLIGHT

    def test_query_params(self, store, events):
        tx = store.apply(events.started("1", path="/search?q=a+b&page=2&empty="))
        assert tx.query_params == [("q", "a b"), ("page", "2"), ("empty", "")]


class TestOrphans:
    """Tests for events naming an unknown transaction."""

    def test_orphan_synthesized(self, store, stats, events):
        tx = store.apply(events.response("9", status=404))

        assert tx.orphaned
        assert tx.method == ORPHAN_METHOD
        assert tx.status == 404
        assert tx.state == TransactionState.IN_FLIGHT
        assert stats.orphans == 1

    def test_orphan_without_response_tolerates_body(self, store, stats, events):
        """Test an orphan never gets a protocol order violation."""
        tx = store.apply(events.response_chunk("9", data=b"partial"))

        assert tx.orphaned
        assert tx.state == TransactionState.IN_FLIGHT
        assert tx.response_body == b"partial"
        assert tx.error is None
        assert stats.protocol_violations == 0

    def test_late_start_fills_metadata(self, store, events):
        store.apply(events.response("9", status=200, at=100.0))
        tx = store.apply(events.started("9", method="PUT", host="late.test", at=99.0))

        assert tx.orphaned
        assert tx.method == "PUT"
        assert tx.host == "late.test"
        assert tx.status == 200
        assert tx.started_at == 99.0

    def test_orphan_close(self, store, events):
        tx = store.apply(events.closed("9"))

        assert tx.orphaned
        assert tx.state == TransactionState.COMPLETED


class TestProtocolViolation:
    """Tests for a response body arriving before the response start."""

    def test_body_before_response_fails(self, store, stats, events):
        store.apply(events.started("1"))
        tx = store.apply(events.response_chunk("1", data=b"early"))

        assert tx.state == TransactionState.FAILED
        assert tx.error == PROTOCOL_ORDER_VIOLATION
        assert tx.response_body == b""
        assert tx.completed_at is not None
        assert stats.protocol_violations == 1

    def test_violation_is_terminal(self, store, events):
        store.apply(events.started("1"))
        store.apply(events.response_chunk("1", data=b"early"))
        tx = store.apply(events.response("1", status=200))

        assert tx.state == TransactionState.FAILED
        assert tx.status is None


class TestSourceScoping:
    """Tests for identifiers scoped by source."""

    def test_same_id_different_sources(self, store):
        a = EventFactory(source="svc-a")
        b = EventFactory(source="svc-b")
        store.apply(a.started("1", path="/a"))
        store.apply(b.started("1", path="/b"))

        assert len(store) == 2
        assert store.get("1", "svc-a").path == "/a"
        assert store.get("1", "svc-b").path == "/b"


class TestBodyCap:
    """Tests for per-body byte caps."""

    def test_request_body_truncated(self, small_store, stats, events):
        small_store.apply(events.started("1"))
        small_store.apply(events.request_chunk("1", data=b"12345"))
        tx = small_store.apply(events.request_chunk("1", data=b"67890"))

        assert tx.request_body == b"12345678"
        assert tx.request_truncated
        assert tx.truncated
        assert stats.truncations == 1

    def test_response_body_truncated_once(self, small_store, stats, events):
        small_store.apply(events.started("1"))
        small_store.apply(events.response("1"))
        for _ in range(4):
            tx = small_store.apply(events.response_chunk("1", data=b"abcdef"))

        assert len(tx.response_body) == 8
        assert tx.response_truncated
        assert not tx.request_truncated
        assert stats.truncations == 1

    def test_exactly_at_cap_not_truncated(self, small_store, events):
        small_store.apply(events.started("1"))
        tx = small_store.apply(events.request_chunk("1", data=b"12345678"))

        assert tx.request_body == b"12345678"
        assert not tx.request_truncated

    def test_unbounded_bodies(self, events):
        store = SessionStore(body_cap=None)
        store.apply(events.started("1"))
        tx = store.apply(events.request_chunk("1", data=b"x" * 200000))

        assert len(tx.request_body) == 200000
        assert not tx.truncated

    @pytest.mark.parametrize("kwargs", [{"body_cap": 0}, {"retention_ceiling": -1}])
    def test_non_positive_caps_rejected(self, kwargs):
        with pytest.raises(ValueError):
            SessionStore(**kwargs)


class TestEviction:
    """Tests for the retention ceiling."""

    def test_oldest_closed_evicted(self, small_store, stats, events):
        for i in range(1, 6):
            apply_all(small_store, events.full(str(i)))

        ids = [tx.id for tx in small_store.snapshot()]
        assert ids == ["3", "4", "5"]
        assert small_store.closed_count == 3
        assert stats.evictions == 2

    def test_open_transactions_never_evicted(self, small_store, events):
        small_store.apply(events.started("open"))
        for i in range(1, 6):
            apply_all(small_store, events.full(str(i)))

        assert small_store.get("open") is not None
        assert small_store.closed_count == 3
        assert len(small_store) == 4

    def test_eviction_by_close_time(self, small_store, events):
        """Test eviction order follows completion, not start."""
        small_store.apply(events.started("slow"))
        apply_all(small_store, events.full("a"))
        apply_all(small_store, events.full("b"))
        small_store.apply(events.closed("slow"))
        apply_all(small_store, events.full("c"))

        remaining = {tx.id for tx in small_store.snapshot()}
        assert remaining == {"b", "slow", "c"}

    def test_unbounded_retention(self, events):
        store = SessionStore(retention_ceiling=None)
        for i in range(50):
            apply_all(store, events.full(str(i)))

        assert len(store) == 50


class TestRemove:
    """Tests for operator-requested deletion."""

    def test_remove_closed(self, small_store, stats, events):
        for i in range(1, 4):
            apply_all(small_store, events.full(str(i)))
        before = small_store.snapshot()

        removed = small_store.remove((events.source, "2"))

        assert removed.id == "2"
        assert [tx.id for tx in small_store.snapshot()] == ["1", "3"]
        assert small_store.snapshot().version > before.version
        assert small_store.closed_count == 2
        assert len(before) == 3

    def test_eviction_skips_removed(self, small_store, stats, events):
        """Test the removed record's retention slot is freed."""
        for i in range(1, 4):
            apply_all(small_store, events.full(str(i)))
        small_store.remove((events.source, "2"))

        apply_all(small_store, events.full("4"))
        assert stats.evictions == 0

        apply_all(small_store, events.full("5"))
        assert [tx.id for tx in small_store.snapshot()] == ["3", "4", "5"]
        assert stats.evictions == 1

    def test_remove_open(self, store, events):
        store.apply(events.started("1"))

        store.remove((events.source, "1"))
        assert len(store) == 0

        store.apply(events.closed("1"))
        assert store.get("1").orphaned

    def test_remove_unknown(self, store, events):
        version = store.version

        assert store.remove((events.source, "missing")) is None
        assert store.version == version


class TestSnapshot:
    """Tests for point-in-time snapshots."""

    def test_snapshot_unaffected_by_later_events(self, store, events):
        store.apply(events.started("1"))
        snapshot = store.snapshot()

        store.apply(events.response("1", status=500))
        store.apply(events.started("2"))

        assert len(snapshot) == 1
        assert snapshot.get((events.source, "1")).status is None
        assert store.snapshot().get((events.source, "1")).status == 500

    def test_snapshot_reused_while_unchanged(self, store, events):
        store.apply(events.started("1"))
        assert store.snapshot() is store.snapshot()

    def test_counts(self, store, events):
        store.apply(events.started("p"))
        store.apply(events.started("f"))
        store.apply(events.closed("f", error="boom"))
        apply_all(store, events.full("c"))

        counts = store.counts()
        assert counts[TransactionState.PENDING] == 1
        assert counts[TransactionState.FAILED] == 1
        assert counts[TransactionState.COMPLETED] == 1
        assert counts[TransactionState.IN_FLIGHT] == 0


class TestInterleaving:
    """Final state depends only on per-id order, not cross-id interleaving."""

    @staticmethod
    def _sequences():
        factory = EventFactory()
        return [
            factory.full("1", status=200, body=b"one"),
            [factory.started("2"), factory.request_chunk("2", data=b"req"),
             factory.closed("2", error="timeout")],
            [factory.response("3", status=404), factory.response_chunk("3", data=b"nf")],
            [factory.started("4"), factory.response_chunk("4", data=b"bad")],
            [factory.started("5", method="POST")],
        ]

    @staticmethod
    def _interleave(sequences, rng):
        pending = [list(seq) for seq in sequences]
        merged = []
        while any(pending):
            choice = rng.choice([seq for seq in pending if seq])
            merged.append(choice.pop(0))
        return merged

    @pytest.mark.parametrize("seed", range(20))
    def test_shuffled_interleavings_agree(self, seed):
        sequences = self._sequences()

        reference = SessionStore()
        for seq in sequences:
            apply_all(reference, seq)

        shuffled = SessionStore()
        apply_all(shuffled, self._interleave(sequences, random.Random(seed)))

        assert shuffled.snapshot().by_key() == reference.snapshot().by_key()
