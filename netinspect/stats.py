"""
Statistics Module for the network inspector.

Tracks ingestion and reconstruction counters shared between listener
threads and the render loop.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class InspectorStats:
    """
    Inspector-wide counters.

    Listener threads record connection and message activity; the render
    loop records store activity. All access goes through the lock.
    """
    # Timing
    start_time: Optional[float] = None
    last_message_time: Optional[float] = None

    # Transport
    connections_open: int = 0
    connections_total: int = 0
    messages_received: int = 0
    malformed_messages: int = 0

    # Store
    events_applied: int = 0
    orphans: int = 0
    protocol_violations: int = 0
    evictions: int = 0
    truncations: int = 0

    # Lock for thread safety
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def start(self) -> None:
        """Mark inspector start time."""
        self.start_time = time.time()

    def record_connection_opened(self) -> None:
        with self._lock:
            self.connections_open += 1
            self.connections_total += 1

    def record_connection_closed(self) -> None:
        with self._lock:
            self.connections_open = max(0, self.connections_open - 1)

    def record_message(self) -> None:
        """Record a framed message received from a connection."""
        with self._lock:
            self.messages_received += 1
            self.last_message_time = time.time()

    def record_malformed(self) -> None:
        with self._lock:
            self.malformed_messages += 1

    def record_event_applied(self) -> None:
        with self._lock:
            self.events_applied += 1

    def record_orphan(self) -> None:
        with self._lock:
            self.orphans += 1

    def record_protocol_violation(self) -> None:
        with self._lock:
            self.protocol_violations += 1

    def record_evictions(self, count: int) -> None:
        with self._lock:
            self.evictions += count

    def record_truncation(self) -> None:
        with self._lock:
            self.truncations += 1

    def get_uptime(self) -> float:
        """Get inspector uptime in seconds."""
        if self.start_time is None:
            return 0.0
        return time.time() - self.start_time

    def get_summary(self) -> Dict[str, float]:
        """
        Get summary statistics.

        Returns:
            Dictionary of counters plus uptime and message rate
        """
        with self._lock:
            uptime = self.get_uptime()
            msg_rate = self.messages_received / uptime if uptime > 0 else 0

            return {
                'uptime_seconds': round(uptime, 1),
                'connections_open': self.connections_open,
                'connections_total': self.connections_total,
                'messages_received': self.messages_received,
                'messages_per_second': round(msg_rate, 2),
                'malformed_messages': self.malformed_messages,
                'events_applied': self.events_applied,
                'orphans': self.orphans,
                'protocol_violations': self.protocol_violations,
                'evictions': self.evictions,
                'truncations': self.truncations,
            }

    def format_report(self) -> str:
        """
        Format a human-readable statistics report.

        Returns:
            Formatted report string
        """
        summary = self.get_summary()

        lines = []
        lines.append("=" * 50)
        lines.append("Network Inspector Session Report")
        lines.append("=" * 50)
        lines.append(f"Uptime: {summary['uptime_seconds']:.1f} seconds")
        lines.append(f"Message rate: {summary['messages_per_second']:.2f} msg/sec")
        lines.append("")
        lines.append("Transport:")
        lines.append(f"  Connections:        {summary['connections_total']}")
        lines.append(f"  Messages received:  {summary['messages_received']}")
        lines.append(f"  Malformed:          {summary['malformed_messages']}")
        lines.append("")
        lines.append("Transactions:")
        lines.append(f"  Events applied:     {summary['events_applied']}")
        lines.append(f"  Orphaned:           {summary['orphans']}")
        lines.append(f"  Order violations:   {summary['protocol_violations']}")
        lines.append(f"  Bodies truncated:   {summary['truncations']}")
        lines.append(f"  Evicted:            {summary['evictions']}")
        lines.append("=" * 50)
        return "\n".join(lines)
