"""
Input command vocabulary of the inspector.

Key bindings map terminal keys to these commands; the render loop folds
them into UI state.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Navigate:
    """Move the selection by delta rows."""
    delta: int


@dataclass(frozen=True)
class GoToStart:
    pass


@dataclass(frozen=True)
class GoToEnd:
    pass


@dataclass(frozen=True)
class PageUp:
    pass


@dataclass(frozen=True)
class PageDown:
    pass


@dataclass(frozen=True)
class ToggleDetail:
    """Open or close the detail pane for the selected transaction."""


@dataclass(frozen=True)
class CloseDetail:
    """Close the detail pane and any overlay."""


@dataclass(frozen=True)
class BeginFilterEdit:
    pass


@dataclass(frozen=True)
class FilterInput:
    """Append text to the filter."""
    text: str


@dataclass(frozen=True)
class FilterBackspace:
    pass


@dataclass(frozen=True)
class EndFilterEdit:
    pass


@dataclass(frozen=True)
class ClearFilter:
    pass


@dataclass(frozen=True)
class CycleSort:
    """Advance to the next sort column."""


@dataclass(frozen=True)
class ReverseSort:
    pass


@dataclass(frozen=True)
class ToggleHelp:
    pass


@dataclass(frozen=True)
class ToggleLog:
    """Show or hide the inspector's own log messages."""


@dataclass(frozen=True)
class CopyAsCurl:
    """Copy the selected request to the clipboard as a curl command."""


@dataclass(frozen=True)
class DeleteTransaction:
    """Remove the selected transaction from the session."""


@dataclass(frozen=True)
class Quit:
    pass


Command = Union[
    Navigate,
    GoToStart,
    GoToEnd,
    PageUp,
    PageDown,
    ToggleDetail,
    CloseDetail,
    BeginFilterEdit,
    FilterInput,
    FilterBackspace,
    EndFilterEdit,
    ClearFilter,
    CycleSort,
    ReverseSort,
    ToggleHelp,
    ToggleLog,
    CopyAsCurl,
    DeleteTransaction,
    Quit,
]

# Names used by the key binding configuration
COMMANDS_BY_NAME = {
    "up": Navigate(-1),
    "down": Navigate(1),
    "top": GoToStart(),
    "bottom": GoToEnd(),
    "page_up": PageUp(),
    "page_down": PageDown(),
    "detail": ToggleDetail(),
    "close": CloseDetail(),
    "filter": BeginFilterEdit(),
    "clear_filter": ClearFilter(),
    "sort": CycleSort(),
    "reverse_sort": ReverseSort(),
    "help": ToggleHelp(),
    "log": ToggleLog(),
    "copy": CopyAsCurl(),
    "delete": DeleteTransaction(),
    "quit": Quit(),
}
