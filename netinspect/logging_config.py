"""
Logging Configuration for the network inspector.

The TUI owns the terminal, so console output is suppressed while it
runs; records go to an optional log file and to an in-memory ring
buffer shown by the log overlay.
"""

import logging
import sys
import threading
from collections import deque
from typing import Deque, List, Optional


# Log format strings
VERBOSE_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)-8s] %(name)s: %(message)s'
STANDARD_FORMAT = '%(asctime)s [%(levelname)-8s] %(message)s'
SIMPLE_FORMAT = '%(asctime)s %(levelname)-7s %(message)s'

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
SHORT_DATE_FORMAT = '%H:%M:%S'

PACKAGE_LOGGER = 'netinspect'

# Names accepted by --log-level and the log_level config key
LOG_LEVELS = ('debug', 'info', 'warn', 'error')


class RingBufferHandler(logging.Handler):
    """Keeps the most recent formatted log lines in memory."""

    def __init__(self, capacity: int = 200, level: int = logging.NOTSET):
        super().__init__(level)
        self._lines: Deque[str] = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._lines.append(line)

    def get_lines(self, limit: Optional[int] = None) -> List[str]:
        """Most recent lines, oldest first."""
        with self._buffer_lock:
            lines = list(self._lines)
        if limit is not None:
            lines = lines[-limit:]
        return lines


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_file: Optional[str] = None,
    quiet: bool = False,
    ring_buffer: Optional[RingBufferHandler] = None,
) -> None:
    """
    Configure logging for the inspector.

    Args:
        level: Base logging level
        verbose: Enable verbose output with timestamps and module names
        log_file: Optional file path for log output
        quiet: Suppress console output (only log to file if specified)
        ring_buffer: Optional in-memory handler for the log overlay
    """
    # Determine format
    if verbose:
        log_format = VERBOSE_FORMAT
    else:
        log_format = STANDARD_FORMAT

    # Create formatter
    formatter = logging.Formatter(log_format, datefmt=DATE_FORMAT)

    # Get root logger for package
    root_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers.clear()

    # Console handler
    if not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode='a')
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except IOError as e:
            print(f"Warning: Could not open log file {log_file}: {e}", file=sys.stderr)

    if ring_buffer is not None:
        ring_buffer.setLevel(level)
        ring_buffer.setFormatter(logging.Formatter(SIMPLE_FORMAT, datefmt=SHORT_DATE_FORMAT))
        root_logger.addHandler(ring_buffer)


def parse_log_level(name: str) -> int:
    """Map a --log-level choice to a logging constant."""
    if name == "warn":
        name = "warning"
    return getattr(logging, name.upper(), logging.INFO)
