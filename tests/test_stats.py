"""
Tests for Statistics module.
"""

import threading
import time

from netinspect.stats import InspectorStats


class TestInspectorStats:
    """Tests for InspectorStats class."""

    def test_initial_state(self):
        """Test initial statistics state."""
        stats = InspectorStats()

        assert stats.messages_received == 0
        assert stats.malformed_messages == 0
        assert stats.start_time is None
        assert stats.get_uptime() == 0.0

    def test_start(self):
        """Test start recording."""
        stats = InspectorStats()
        stats.start()

        assert stats.start_time is not None
        assert stats.start_time <= time.time()

    def test_connections(self):
        stats = InspectorStats()
        stats.record_connection_opened()
        stats.record_connection_opened()
        stats.record_connection_closed()

        assert stats.connections_open == 1
        assert stats.connections_total == 2

    def test_connection_count_never_negative(self):
        stats = InspectorStats()
        stats.record_connection_closed()
        assert stats.connections_open == 0

    def test_record_message(self):
        stats = InspectorStats()
        stats.record_message()

        assert stats.messages_received == 1
        assert stats.last_message_time is not None

    def test_store_counters(self):
        stats = InspectorStats()
        stats.record_event_applied()
        stats.record_orphan()
        stats.record_protocol_violation()
        stats.record_evictions(3)
        stats.record_truncation()

        summary = stats.get_summary()
        assert summary['events_applied'] == 1
        assert summary['orphans'] == 1
        assert summary['protocol_violations'] == 1
        assert summary['evictions'] == 3
        assert summary['truncations'] == 1

    def test_get_summary(self):
        """Test summary generation."""
        stats = InspectorStats()
        stats.start()
        stats.record_message()
        stats.record_message()
        stats.record_malformed()

        summary = stats.get_summary()

        assert summary['messages_received'] == 2
        assert summary['malformed_messages'] == 1
        assert 'uptime_seconds' in summary
        assert summary['messages_per_second'] >= 0

    def test_format_report(self):
        """Test report formatting."""
        stats = InspectorStats()
        stats.start()
        stats.record_message()
        stats.record_evictions(2)

        report = stats.format_report()

        assert "Network Inspector Session Report" in report
        assert "Messages received:" in report
        assert "Evicted" in report

    def test_thread_safety(self):
        """Test concurrent recording from listener threads."""
        stats = InspectorStats()

        def worker():
            for _ in range(1000):
                stats.record_message()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stats.messages_received == 4000
