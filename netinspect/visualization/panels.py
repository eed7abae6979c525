"""
UI Panel components for the network inspector.

Provides the header, filter bar, statistics footer and the help and
debug log overlays.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..store import TransactionState
from .transaction_log import STATE_STYLES


class HeaderPanel:
    """Header panel showing listener status and basic info."""

    def __init__(self, address: Tuple[str, int] = ("", 0)):
        self.address = address
        self.start_time: Optional[datetime] = None
        self.status = "Stopped"

    def set_running(self, running: bool = True) -> None:
        """Set running status."""
        self.status = "Listening" if running else "Stopped"
        if running and self.start_time is None:
            self.start_time = datetime.now()

    def render(self, connections_open: int = 0, activity: Optional[Text] = None) -> Panel:
        """Render the header panel."""
        # Calculate uptime
        if self.start_time:
            uptime = datetime.now() - self.start_time
            hours, remainder = divmod(int(uptime.total_seconds()), 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime_str = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
        else:
            uptime_str = "--:--:--"

        # Status indicator
        if self.status == "Listening":
            status_text = Text("●", style="bold green")
            status_text.append(f" {self.status}", style="green")
        else:
            status_text = Text("○", style="bold red")
            status_text.append(f" {self.status}", style="red")
        if activity is not None:
            status_text.append("  ")
            status_text.append_text(activity)

        host, port = self.address
        info_parts = [
            f"Listen: [cyan]{host}:{port}[/cyan]",
            f"Connections: [green]{connections_open}[/green]",
            f"Uptime: [blue]{uptime_str}[/blue]",
            "[dim]? for help[/dim]",
        ]
        content = Text.from_markup("    ".join(info_parts))

        return Panel(
            content,
            title=Text("Network Inspector  ", style="bold white"),
            title_align="left",
            subtitle=status_text,
            subtitle_align="right",
            border_style="bright_blue",
        )


class FilterBar:
    """One-line filter display with the invalid-filter hint."""

    def render(self, filter_text: str, editing: bool, error: Optional[str],
               notice: Optional[str] = None) -> Text:
        """Render the filter line."""
        line = Text()
        line.append(" Filter: ", style="bold")
        if filter_text or editing:
            line.append(filter_text, style="bold yellow" if editing else "yellow")
        else:
            line.append("(none)  press / to filter", style="dim")
        if editing:
            line.append("▏", style="blink bold yellow")
        if error:
            line.append(f"   invalid filter: {error}", style="bold red")
        if notice:
            line.append(f"   {notice}", style="cyan")
        return line


class StatsPanel:
    """Statistics panel showing store and transport counters."""

    def render(self, summary: Dict[str, float], counts: Dict[TransactionState, int],
               store_size: int) -> Panel:
        """
        Render the stats panel.

        Args:
            summary: InspectorStats.get_summary() output
            counts: Stored transactions per state
            store_size: Number of stored transactions
        """
        transport = Table(show_header=False, box=None, padding=(0, 1))
        transport.add_column("Label", style="bold")
        transport.add_column("Value", justify="right")
        transport.add_row("Messages:", f"[cyan]{summary['messages_received']:,}[/cyan]")
        transport.add_row("Msg/sec:", f"[blue]{summary['messages_per_second']:.1f}[/blue]")
        transport.add_row("Malformed:", f"[red]{summary['malformed_messages']:,}[/red]")

        store = Table(show_header=False, box=None, padding=(0, 1))
        store.add_column("Label", style="bold")
        store.add_column("Value", justify="right")
        store.add_row("Stored:", f"{store_size:,}")
        store.add_row("Evicted:", f"[yellow]{summary['evictions']:,}[/yellow]")
        store.add_row("Truncated:", f"[yellow]{summary['truncations']:,}[/yellow]")

        states = Table(show_header=False, box=None, padding=(0, 1))
        states.add_column("State")
        states.add_column("Count", justify="right")
        for state in TransactionState:
            states.add_row(Text(state.value, style=STATE_STYLES[state]),
                           f"{counts.get(state, 0):,}")

        grid = Table.grid(expand=True)
        grid.add_column(ratio=1)
        grid.add_column(ratio=1)
        grid.add_column(ratio=1)
        grid.add_row(transport, store, states)

        return Panel(
            grid,
            title="Statistics",
            title_align="left",
            border_style="green",
        )


HELP_ROWS = [
    ("j / ↓", "Next transaction"),
    ("k / ↑", "Previous transaction"),
    ("g / < / Home", "First transaction"),
    ("G / > / End", "Last transaction"),
    ("PgUp / PgDn", "Page up / down"),
    ("Enter / →", "Open details"),
    ("Esc / ←", "Close details or overlay"),
    ("/", "Edit filter (Enter or Esc to finish)"),
    ("c", "Clear filter"),
    ("s / S", "Cycle sort key / reverse order"),
    ("y", "Copy request as cURL command"),
    ("d", "Delete selected transaction"),
    ("p", "Toggle debug log"),
    ("?", "Toggle this help"),
    ("q", "Quit"),
]

FILTER_HELP = (
    "Filter terms: free text, status=200, status=5xx, status=400-499, "
    "state=pending|in_flight|completed|failed, method=GET, host=api"
)


class HelpPanel:
    """Overlay listing the key bindings."""

    def render(self) -> Panel:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="bold cyan", no_wrap=True)
        table.add_column("Action")
        for key, action in HELP_ROWS:
            table.add_row(key, action)
        table.add_row("", "")
        table.add_row("", Text(FILTER_HELP, style="dim"))

        return Panel(table, title="Help", title_align="left", border_style="cyan")


class LogPanel:
    """Overlay with recent log lines."""

    LEVEL_STYLES = {
        "ERROR": "bold red",
        "CRITICAL": "bold red",
        "WARNING": "yellow",
        "INFO": "white",
        "DEBUG": "dim",
    }

    def render(self, lines: List[str], height: int) -> Panel:
        content = Text()
        for line in lines[-max(1, height):]:
            # Lines look like "HH:MM:SS LEVEL message"
            parts = line.split(None, 2)
            level = parts[1] if len(parts) > 1 else ""
            content.append(line + "\n", style=self.LEVEL_STYLES.get(level, "white"))
        if not lines:
            content.append("No log output yet", style="dim")

        return Panel(content, title="Debug Log", title_align="left", border_style="magenta")


class LiveIndicator:
    """Small live indicator that pulses to show activity."""

    def __init__(self):
        self._last_count = 0
        self._pulse_state = 0
        self.last_activity: Optional[datetime] = None

    def update(self, messages_received: int) -> None:
        """Record activity when the message count moves."""
        if messages_received != self._last_count:
            self._last_count = messages_received
            self.last_activity = datetime.now()
            self._pulse_state = 3

    def render(self) -> Text:
        """Render the live indicator."""
        if self.last_activity is None:
            return Text("○ WAITING", style="dim")

        age = (datetime.now() - self.last_activity).total_seconds()
        if self._pulse_state > 0:
            self._pulse_state -= 1
            return Text("◉ LIVE", style="bold bright_green")
        elif age < 1:
            return Text("● LIVE", style="bold green")
        elif age < 5:
            return Text("● IDLE", style="yellow")
        else:
            return Text("○ IDLE", style="dim red")
