"""
Main TUI Controller for the network inspector.

Runs the render loop: every tick drains the event and command queues
through the Inspector and redraws the screen from the resulting Frame.
"""

import logging
import threading
from typing import Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live

from ..inspector import Frame, Inspector
from ..keys import KeyReader, KeyTranslator, TerminalRawMode
from ..listener import TransportListener
from ..logging_config import RingBufferHandler
from .detail_panel import DetailPanel
from .panels import FilterBar, HeaderPanel, HelpPanel, LiveIndicator, LogPanel, StatsPanel
from .transaction_log import TransactionLog

logger = logging.getLogger(__name__)

HEADER_SIZE = 3
FILTER_SIZE = 1
FOOTER_SIZE = 6
# Panel borders plus the table header line
TABLE_CHROME = 3


class InspectorTUI:
    """
    Terminal User Interface for the network inspector.

    Provides real-time visualization of:
    - Transaction list with keyboard navigation
    - Filter bar and sort indicator
    - Detail pane for the selected transaction
    - Statistics, help and debug log overlays
    """

    def __init__(
        self,
        inspector: Inspector,
        listener: Optional[TransportListener] = None,
        translator: Optional[KeyTranslator] = None,
        ring_buffer: Optional[RingBufferHandler] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize the TUI.

        Args:
            inspector: Render loop core
            listener: Transport listener, stopped when the loop exits
            translator: Key translator (default bindings when omitted)
            ring_buffer: Log handler backing the debug log overlay
            console: Rich console to draw on
        """
        self.inspector = inspector
        self.listener = listener
        self.ring_buffer = ring_buffer
        self.console = console or Console()
        self.refresh_rate = inspector.config.refresh_rate

        self.key_reader = KeyReader(inspector.submit, translator or KeyTranslator())

        # Components
        address = listener.address if listener else (inspector.config.host, inspector.config.port)
        self.header = HeaderPanel(address)
        self.filter_bar = FilterBar()
        self.transaction_log = TransactionLog()
        self.detail_panel = DetailPanel()
        self.stats_panel = StatsPanel()
        self.help_panel = HelpPanel()
        self.log_panel = LogPanel()
        self.live_indicator = LiveIndicator()

        self._stop = threading.Event()

    @property
    def table_rows(self) -> int:
        """Transaction rows that fit on the current terminal."""
        height = self.console.size.height
        return max(1, height - HEADER_SIZE - FILTER_SIZE - FOOTER_SIZE - TABLE_CHROME)

    def tick(self) -> Frame:
        """Advance the inspector by one tick."""
        self.inspector.visible_rows = self.table_rows
        return self.inspector.tick()

    def _build_layout(self, frame: Frame) -> Layout:
        """Build the screen layout."""
        summary = self.inspector.stats.get_summary()
        self.live_indicator.update(summary['messages_received'])

        layout = Layout()
        layout.split_column(
            Layout(name="header", size=HEADER_SIZE),
            Layout(name="filter", size=FILTER_SIZE),
            Layout(name="main", ratio=1),
            Layout(name="footer", size=FOOTER_SIZE),
        )

        layout["header"].update(self.header.render(
            connections_open=summary["connections_open"],
            activity=self.live_indicator.render(),
        ))
        layout["filter"].update(
            self.filter_bar.render(frame.ui.filter_text, frame.ui.editing_filter,
                                   frame.ui.filter_error, frame.ui.notice)
        )

        # Main area: overlay, or list with optional detail pane
        rows = self.table_rows
        if frame.ui.help_open:
            layout["main"].update(self.help_panel.render())
        elif frame.ui.log_open:
            lines = self.ring_buffer.get_lines() if self.ring_buffer else []
            layout["main"].update(self.log_panel.render(lines, rows))
        elif frame.detail is not None:
            layout["main"].split_row(
                Layout(name="list", ratio=2),
                Layout(name="detail", ratio=3),
            )
            layout["main"]["list"].update(self.transaction_log.render(frame, rows))
            layout["main"]["detail"].update(self.detail_panel.render(frame.detail))
        else:
            layout["main"].update(self.transaction_log.render(frame, rows))

        layout["footer"].update(
            self.stats_panel.render(summary, frame.counts, frame.store_size)
        )
        return layout

    def run(self) -> None:
        """
        Run the display loop until Quit or stop().

        On exit the listener is given its grace period to drain, and the
        remaining events are applied before returning.
        """
        self._stop.clear()
        self.header.set_running(True)
        interval = 1.0 / self.refresh_rate

        try:
            with TerminalRawMode(), Live(
                self._build_layout(self.tick()),
                console=self.console,
                auto_refresh=False,
                screen=True,
            ) as live:
                self.key_reader.start()
                while not self.inspector.should_quit and not self._stop.is_set():
                    live.update(self._build_layout(self.tick()), refresh=True)
                    self._stop.wait(interval)
        finally:
            self.key_reader.stop()
            self.header.set_running(False)
            if self.listener is not None:
                self.listener.stop(grace=self.inspector.config.shutdown_grace)
            self.inspector.drain_events()

        logger.info("Render loop stopped")

    def stop(self) -> None:
        """Stop the display loop (thread-safe)."""
        self._stop.set()

    def print_summary(self) -> None:
        """Print a summary after TUI stops."""
        counts = self.inspector.store.counts()
        self.console.print()
        self.console.print("[bold]Session Summary[/bold]")
        self.console.print(f"  Stored transactions: {len(self.inspector.store):,}")
        for state, count in counts.items():
            self.console.print(f"    {state.value:<10} {count:,}")
        self.console.print()
        self.console.print(self.inspector.stats.format_report())
