"""
Render loop core for the network inspector.

The Inspector owns the session store and all UI state. Listener threads
and the key reader only ever put items on its two bounded queues; each
tick drains both queues on the loop thread, takes a snapshot, computes
the view and returns a Frame for the presentation layer to draw.
"""

import logging
import queue
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Optional, Tuple

from .clipboard import copy_to_clipboard
from .commands import (
    BeginFilterEdit,
    ClearFilter,
    CloseDetail,
    Command,
    CopyAsCurl,
    CycleSort,
    DeleteTransaction,
    EndFilterEdit,
    FilterBackspace,
    FilterInput,
    GoToEnd,
    GoToStart,
    Navigate,
    PageDown,
    PageUp,
    Quit,
    ReverseSort,
    ToggleDetail,
    ToggleHelp,
    ToggleLog,
)
from .config import InspectorConfig
from .detail import DetailContent, build_detail, generate_curl_command
from .errors import ClipboardUnavailable, InvalidFilter
from .events import Event
from .query import EMPTY_VIEW, Predicate, QueryEngine, SortKey, SortOrder, View
from .stats import InspectorStats
from .store import Key, SessionStore, Snapshot, Transaction, TransactionState

logger = logging.getLogger(__name__)

DEFAULT_VISIBLE_ROWS = 20


@dataclass
class UIState:
    """Operator-facing state, owned by the render loop."""
    filter_text: str = ""
    predicate: Predicate = field(default_factory=Predicate)
    filter_error: Optional[str] = None
    editing_filter: bool = False
    sort_key: SortKey = SortKey.START
    sort_order: SortOrder = SortOrder.ASCENDING
    scroll_offset: int = 0
    selected_index: int = 0
    selected_key: Optional[Key] = None
    detail_open: bool = False
    help_open: bool = False
    log_open: bool = False
    should_quit: bool = False
    # Result of the last copy or delete, shown until the next one
    notice: Optional[str] = None


@dataclass(frozen=True)
class Frame:
    """Everything needed to draw one screen."""
    view: View
    rows: Tuple[Transaction, ...]
    scroll_offset: int
    selected_index: Optional[int]
    selected: Optional[Transaction]
    detail: Optional[DetailContent]
    ui: UIState
    counts: Dict[TransactionState, int]
    store_size: int
    snapshot_version: int


class Inspector:
    """
    Single-writer core of the render loop.

    submit() and submit_event() are safe to call from any thread;
    everything else must run on the loop thread.
    """

    def __init__(
        self,
        config: Optional[InspectorConfig] = None,
        stats: Optional[InspectorStats] = None,
        store: Optional[SessionStore] = None,
        clipboard: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the inspector.

        Args:
            config: Inspector configuration
            stats: Shared statistics
            store: Session store (built from config when omitted)
            clipboard: Copies text to the system clipboard
        """
        self.config = config or InspectorConfig()
        self.stats = stats or InspectorStats()
        self.store = store or SessionStore(
            body_cap=self.config.effective_body_cap,
            retention_ceiling=self.config.effective_retention,
            stats=self.stats,
        )
        self.engine = QueryEngine()
        self.ui = UIState()
        self.clipboard = clipboard or copy_to_clipboard

        self.event_queue: queue.Queue = queue.Queue(maxsize=self.config.ingest_queue_size)
        self.command_queue: queue.Queue = queue.Queue(maxsize=self.config.command_queue_size)

        self.visible_rows = DEFAULT_VISIBLE_ROWS
        self._view: View = EMPTY_VIEW

    @property
    def view(self) -> View:
        """View computed by the most recent tick."""
        return self._view

    @property
    def should_quit(self) -> bool:
        return self.ui.should_quit

    def submit(self, command: Command) -> bool:
        """
        Queue an input command for the next tick.

        Returns:
            False if the command queue is full and the command was dropped
        """
        try:
            self.command_queue.put_nowait(command)
            return True
        except queue.Full:
            logger.warning(f"Command queue full, dropping {type(command).__name__}")
            return False

    def submit_event(self, event: Event, timeout: Optional[float] = None) -> None:
        """Queue a decoded event; blocks while the queue is full."""
        self.event_queue.put(event, timeout=timeout)

    def drain_events(self) -> int:
        """Apply every queued event to the store."""
        applied = 0
        while True:
            try:
                event = self.event_queue.get_nowait()
            except queue.Empty:
                break
            try:
                self.store.apply(event)
            except Exception as e:
                logger.exception(f"Unexpected error applying {type(event).__name__}: {e}")
            applied += 1
        return applied

    def drain_commands(self) -> int:
        """Fold every queued command into UI state."""
        handled = 0
        while True:
            try:
                command = self.command_queue.get_nowait()
            except queue.Empty:
                break
            self.handle_command(command)
            handled += 1
        return handled

    def tick(self) -> Frame:
        """
        Run one loop iteration.

        Applies the whole event backlog before anything is computed, so a
        frame never reflects a partially applied backlog.
        """
        self.drain_events()
        self.drain_commands()

        snapshot = self.store.snapshot()
        self._view = self._evaluate(snapshot)
        frame = self._build_frame(snapshot)
        return frame

    def handle_command(self, command: Command) -> None:
        """Apply one command to UI state against the current view."""
        ui = self.ui

        if isinstance(command, Quit):
            ui.should_quit = True
        elif isinstance(command, Navigate):
            self._select(self._current_index() + command.delta)
        elif isinstance(command, GoToStart):
            self._select(0)
        elif isinstance(command, GoToEnd):
            self._select(len(self._view) - 1)
        elif isinstance(command, PageUp):
            self._select(self._current_index() - self.visible_rows)
        elif isinstance(command, PageDown):
            self._select(self._current_index() + self.visible_rows)
        elif isinstance(command, ToggleDetail):
            ui.detail_open = not ui.detail_open and ui.selected_key is not None
        elif isinstance(command, CloseDetail):
            if ui.help_open or ui.log_open:
                ui.help_open = False
                ui.log_open = False
            else:
                ui.detail_open = False
        elif isinstance(command, BeginFilterEdit):
            ui.editing_filter = True
        elif isinstance(command, EndFilterEdit):
            ui.editing_filter = False
        elif isinstance(command, FilterInput):
            self._set_filter_text(ui.filter_text + command.text)
        elif isinstance(command, FilterBackspace):
            self._set_filter_text(ui.filter_text[:-1])
        elif isinstance(command, ClearFilter):
            self._set_filter_text("")
        elif isinstance(command, CycleSort):
            ui.sort_key = ui.sort_key.next()
        elif isinstance(command, ReverseSort):
            ui.sort_order = ui.sort_order.reversed()
        elif isinstance(command, ToggleHelp):
            ui.help_open = not ui.help_open
            ui.log_open = False
        elif isinstance(command, ToggleLog):
            ui.log_open = not ui.log_open
            ui.help_open = False
        elif isinstance(command, CopyAsCurl):
            self._copy_selected()
        elif isinstance(command, DeleteTransaction):
            self._delete_selected()
        else:
            raise TypeError(f"Unknown command: {command!r}")

    def _copy_selected(self) -> None:
        tx = self._selected_transaction()
        if tx is None:
            self.ui.notice = "Nothing selected to copy"
            return
        try:
            self.clipboard(generate_curl_command(tx))
        except ClipboardUnavailable as e:
            logger.warning(f"Copy to clipboard failed: {e}")
            self.ui.notice = "Copy to clipboard failed, see log (p)"
            return
        self.ui.notice = "Request copied as cURL command"

    def _delete_selected(self) -> None:
        key = self.ui.selected_key
        if key is None or self.store.remove(key) is None:
            self.ui.notice = "Nothing selected to delete"
            return
        # The row below moves up into the same position
        self.ui.selected_key = None
        self.ui.detail_open = False
        self.ui.notice = f"Deleted transaction {key[1]}"

    def _selected_transaction(self) -> Optional[Transaction]:
        if self.ui.selected_key is None:
            return None
        return self.store.get(self.ui.selected_key[1], source=self.ui.selected_key[0])

    def set_filter(self, filter_text: str) -> None:
        """Replace the filter text (same rules as typed input)."""
        self._set_filter_text(filter_text)

    def _set_filter_text(self, text: str) -> None:
        # An invalid filter keeps the previous predicate, so the view is not cleared
        self.ui.filter_text = text
        try:
            self.ui.predicate = Predicate.parse(text)
            self.ui.filter_error = None
        except InvalidFilter as e:
            self.ui.filter_error = e.reason

    def _evaluate(self, snapshot: Snapshot) -> View:
        return self.engine.evaluate(
            snapshot, self.ui.predicate, self.ui.sort_key, self.ui.sort_order
        )

    def _current_index(self) -> int:
        index = self._view.index_of(self.ui.selected_key)
        return self.ui.selected_index if index is None else index

    def _select(self, index: int) -> None:
        if not len(self._view):
            return
        index = max(0, min(index, len(self._view) - 1))
        self.ui.selected_index = index
        self.ui.selected_key = self._view[index].key

    def _build_frame(self, snapshot: Snapshot) -> Frame:
        ui = self.ui
        view = self._view

        index = view.index_of(ui.selected_key)
        if index is None and not ui.detail_open:
            # Selection filtered out or evicted: fall back to the same row position
            if len(view):
                index = max(0, min(ui.selected_index, len(view) - 1))
                ui.selected_key = view[index].key
            else:
                ui.selected_key = None
        if index is not None:
            ui.selected_index = index

        rows_visible = max(1, self.visible_rows)
        if index is not None:
            if index < ui.scroll_offset:
                ui.scroll_offset = index
            elif index >= ui.scroll_offset + rows_visible:
                ui.scroll_offset = index - rows_visible + 1
        ui.scroll_offset = max(0, min(ui.scroll_offset, max(0, len(view) - rows_visible)))

        selected = None
        if ui.detail_open and ui.selected_key is not None:
            # Looked up in the snapshot so an evicted transaction shows the placeholder
            selected = snapshot.get(ui.selected_key)
        elif index is not None:
            selected = view[index]

        detail = build_detail(selected) if ui.detail_open else None

        return Frame(
            view=view,
            rows=view.transactions[ui.scroll_offset:ui.scroll_offset + rows_visible],
            scroll_offset=ui.scroll_offset,
            selected_index=index,
            selected=selected,
            detail=detail,
            ui=replace(ui),
            counts=self.store.counts(),
            store_size=len(self.store),
            snapshot_version=snapshot.version,
        )
