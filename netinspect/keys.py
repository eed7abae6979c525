"""
Keyboard handling for the inspector TUI.

Reads raw keys from the terminal, turns escape sequences into key
tokens and maps tokens to commands. The translator keeps its own
filter-edit mode so key order and mode changes never race the render
loop.
"""

import logging
import os
import select
import sys
import threading
from typing import Callable, Dict, Iterable, List, Optional

from .commands import (
    COMMANDS_BY_NAME,
    BeginFilterEdit,
    Command,
    EndFilterEdit,
    FilterBackspace,
    FilterInput,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)

ESCAPE_SEQUENCES = {
    "\x1b[A": "UP",
    "\x1b[B": "DOWN",
    "\x1b[C": "RIGHT",
    "\x1b[D": "LEFT",
    "\x1b[5~": "PGUP",
    "\x1b[6~": "PGDN",
    "\x1b[H": "HOME",
    "\x1b[1~": "HOME",
    "\x1bOH": "HOME",
    "\x1b[F": "END",
    "\x1b[4~": "END",
    "\x1bOF": "END",
}

CONTROL_KEYS = {
    "\r": "ENTER",
    "\n": "ENTER",
    "\x7f": "BACKSPACE",
    "\x08": "BACKSPACE",
    "\t": "TAB",
}

# key token -> command name
DEFAULT_BINDINGS = {
    "UP": "up",
    "k": "up",
    "DOWN": "down",
    "j": "down",
    "HOME": "top",
    "g": "top",
    "<": "top",
    "END": "bottom",
    "G": "bottom",
    ">": "bottom",
    "PGUP": "page_up",
    "PGDN": "page_down",
    "ENTER": "detail",
    "RIGHT": "detail",
    "ESC": "close",
    "LEFT": "close",
    "/": "filter",
    "c": "clear_filter",
    "s": "sort",
    "S": "reverse_sort",
    "?": "help",
    "p": "log",
    "y": "copy",
    "d": "delete",
    "q": "quit",
}


def parse_keys(text: str) -> List[str]:
    """
    Split raw terminal input into key tokens.

    Printable characters are returned as themselves; special keys as
    upper-case names ("UP", "ENTER", "ESC", ...).
    """
    keys: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\x1b":
            for seq_len in (4, 3):
                seq = text[i:i + seq_len]
                if seq in ESCAPE_SEQUENCES:
                    keys.append(ESCAPE_SEQUENCES[seq])
                    i += seq_len
                    break
            else:
                keys.append("ESC")
                i += 1
            continue

        if ch in CONTROL_KEYS:
            keys.append(CONTROL_KEYS[ch])
        elif ch.isprintable():
            keys.append(ch)
        i += 1
    return keys


def build_bindings(overrides: Optional[Dict[str, Iterable[str]]] = None) -> Dict[str, str]:
    """
    Merge configured bindings over the defaults.

    Args:
        overrides: command name -> keys that should trigger it

    Raises:
        ConfigError: unknown command name, or keys that are not a string
            or a list of strings
    """
    bindings = dict(DEFAULT_BINDINGS)
    for name, keys in (overrides or {}).items():
        if name not in COMMANDS_BY_NAME:
            raise ConfigError(f"Unknown command in key bindings: {name}")
        if isinstance(keys, str):
            keys = [keys]
        if not isinstance(keys, list) or not all(isinstance(k, str) and k for k in keys):
            raise ConfigError(f"Keys for {name} must be a string or a list of strings")
        for key in keys:
            bindings[key] = name
    return bindings


class KeyTranslator:
    """Maps key tokens to commands, with a filter-edit mode."""

    def __init__(self, bindings: Optional[Dict[str, str]] = None):
        self.bindings = bindings or dict(DEFAULT_BINDINGS)
        self.editing = False

    def translate(self, key: str) -> Optional[Command]:
        if self.editing:
            if key in ("ENTER", "ESC"):
                self.editing = False
                return EndFilterEdit()
            if key == "BACKSPACE":
                return FilterBackspace()
            if len(key) == 1:
                return FilterInput(key)
            return None

        name = self.bindings.get(key)
        if name is None:
            return None
        command = COMMANDS_BY_NAME[name]
        if isinstance(command, BeginFilterEdit):
            self.editing = True
        return command


class TerminalRawMode:
    """cbreak mode for stdin on POSIX terminals; no-op elsewhere."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self._old = None

    def __enter__(self):
        if os.name != "posix" or not self.stream.isatty():
            return self
        import termios
        import tty
        fd = self.stream.fileno()
        self._old = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._old is None:
            return
        import termios
        termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._old)
        self._old = None


class KeyReader:
    """
    Background reader turning keystrokes into submitted commands.

    Only reads while stdin is a terminal.
    """

    def __init__(self, submit: Callable[[Command], bool], translator: KeyTranslator,
                 stream=None):
        self.submit = submit
        self.translator = translator
        self.stream = stream or sys.stdin
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if not self.stream.isatty():
            logger.info("stdin is not a terminal; keyboard input disabled")
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="key-reader", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._thread = None

    def feed(self, text: str) -> None:
        """Translate raw input and submit the resulting commands."""
        for key in parse_keys(text):
            command = self.translator.translate(key)
            if command is not None:
                self.submit(command)

    def _run(self) -> None:
        fd = self.stream.fileno()
        while self._running:
            ready, _, _ = select.select([fd], [], [], 0.1)
            if not ready:
                continue
            data = os.read(fd, 64)
            if not data:
                break
            self.feed(data.decode("utf-8", "ignore"))
