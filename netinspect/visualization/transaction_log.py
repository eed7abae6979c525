"""
Transaction list for the inspector visualization.

Draws the rows of the current view as a table, with the selected row
highlighted.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from ..query import SortKey, SortOrder
from ..store import Transaction, TransactionState

if TYPE_CHECKING:
    from ..inspector import Frame


# Color styles for lifecycle states
STATE_STYLES = {
    TransactionState.PENDING: Style(color="yellow"),
    TransactionState.IN_FLIGHT: Style(color="cyan"),
    TransactionState.COMPLETED: Style(color="green"),
    TransactionState.FAILED: Style(color="red", bold=True),
}

STATE_SYMBOLS = {
    TransactionState.PENDING: "… PEND",
    TransactionState.IN_FLIGHT: "⇄ FLY",
    TransactionState.COMPLETED: "✓ DONE",
    TransactionState.FAILED: "✗ FAIL",
}

METHOD_STYLES = {
    "GET": Style(color="bright_blue"),
    "POST": Style(color="bright_green"),
    "PUT": Style(color="bright_yellow"),
    "PATCH": Style(color="bright_magenta"),
    "DELETE": Style(color="bright_red"),
}

SORT_LABELS = {
    SortKey.START: "time",
    SortKey.DURATION: "duration",
    SortKey.STATUS: "status",
    SortKey.METHOD: "method",
    SortKey.HOST: "host",
}

SELECTED_STYLE = Style(reverse=True, bold=True)


def status_style(status: Optional[int]) -> Style:
    """Color for a status code by class."""
    if status is None:
        return Style(dim=True)
    if status >= 500:
        return Style(color="red", bold=True)
    if status >= 400:
        return Style(color="yellow")
    if status >= 300:
        return Style(color="cyan")
    return Style(color="green")


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    if seconds < 1.0:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.2f}s"


def format_row_time(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts).strftime("%H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return "-"


class TransactionLog:
    """Table of the transactions in the current frame."""

    def render(self, frame: "Frame", height: int) -> Panel:
        """
        Render the visible rows of a frame.

        Args:
            frame: Frame produced by Inspector.tick()
            height: Number of table rows available

        Returns:
            Rich Panel containing the transaction table
        """
        table = Table(
            show_header=True,
            header_style="bold white",
            box=None,
            padding=(0, 1),
            expand=True,
        )

        table.add_column("TIME", style="dim", width=8, no_wrap=True)
        table.add_column("METHOD", width=7, no_wrap=True)
        table.add_column("STATUS", width=6, no_wrap=True)
        table.add_column("HOST", width=24, no_wrap=True, overflow="ellipsis")
        table.add_column("PATH", ratio=1, no_wrap=True, overflow="ellipsis")
        table.add_column("TIME TAKEN", width=10, justify="right", no_wrap=True)
        table.add_column("STATE", width=7, no_wrap=True)

        for offset, tx in enumerate(frame.rows):
            index = frame.scroll_offset + offset
            selected = index == frame.selected_index
            self._add_row(table, tx, selected)

        # Fill empty rows if needed
        for _ in range(max(0, height - len(frame.rows))):
            table.add_row("", "", "", "", "", "", "")

        arrow = "▲" if frame.ui.sort_order == SortOrder.ASCENDING else "▼"
        title = (f"Transactions ({len(frame.view):,} shown / {frame.store_size:,} stored)"
                 f"  sort: {SORT_LABELS[frame.ui.sort_key]} {arrow}")

        return Panel(
            table,
            title=title,
            title_align="left",
            border_style="blue",
        )

    @staticmethod
    def _add_row(table: Table, tx: Transaction, selected: bool) -> None:
        method_text = Text(tx.method, style=METHOD_STYLES.get(tx.method, Style(color="white")))
        status_text = Text(str(tx.status) if tx.status is not None else "-",
                           style=status_style(tx.status))
        state_text = Text(STATE_SYMBOLS[tx.state], style=STATE_STYLES[tx.state])

        path = tx.path
        if tx.orphaned:
            path = f"{path} (orphaned)"
        if tx.truncated:
            path = f"{path} [truncated]"
        path_text = Text(path, style="red" if tx.error else "")

        table.add_row(
            format_row_time(tx.started_at),
            method_text,
            status_text,
            tx.host,
            path_text,
            format_duration(tx.duration),
            state_text,
            style=SELECTED_STYLE if selected else None,
        )
