#!/usr/bin/env python3
"""
Command Line Interface for the network inspector.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .config import InspectorConfig, load_config_from_args
from .errors import ConfigError, TransportUnavailable
from .inspector import Inspector
from .keys import KeyTranslator, build_bindings
from .listener import TransportListener
from .logging_config import LOG_LEVELS, RingBufferHandler, parse_log_level, setup_logging
from .stats import InspectorStats
from .store import Transaction

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_TRANSPORT_UNAVAILABLE = 2

logger = logging.getLogger('netinspect')


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="netinspect",
        description="Terminal inspector for HTTP traffic telemetry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Listen on the default address (127.0.0.1:9999)
  netinspect

  # Custom port and key bindings from a config file
  netinspect --port 7777 --config ~/.config/netinspect.yml

  # Keep everything in memory (no body cap, no eviction)
  netinspect --unbounded-bodies --unbounded-retention

  # No TUI: log each finished transaction
  netinspect --headless --log-level debug
"""
    )

    # Version
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML configuration file (command line options override it)"
    )

    # Listener options (None = not given, so config file values apply)
    listen_group = parser.add_argument_group("Listener Options")
    listen_group.add_argument(
        "--host",
        default=None,
        help="Address to listen on (default: 127.0.0.1)"
    )
    listen_group.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 9999)"
    )
    listen_group.add_argument(
        "--max-message-size",
        type=int,
        default=None,
        help="Largest accepted message in bytes (default: 4194304)"
    )
    listen_group.add_argument(
        "--grace",
        type=float,
        default=None,
        help="Seconds to let connections drain on quit (default: 2.0)"
    )

    # Capacity options
    capacity_group = parser.add_argument_group("Capacity Options")
    capacity_group.add_argument(
        "--body-cap",
        type=int,
        default=None,
        help="Bytes kept per request and per response body (default: 65536)"
    )
    capacity_group.add_argument(
        "--retention",
        type=int,
        default=None,
        help="Closed transactions kept before the oldest are evicted (default: 1000)"
    )
    capacity_group.add_argument(
        "--unbounded-bodies",
        action="store_true",
        help="Never truncate bodies (memory grows with traffic)"
    )
    capacity_group.add_argument(
        "--unbounded-retention",
        action="store_true",
        help="Never evict transactions (memory grows with traffic)"
    )

    # Display options
    display_group = parser.add_argument_group("Display Options")
    display_group.add_argument(
        "--refresh-rate",
        type=float,
        default=None,
        help="Screen refresh rate in Hz (default: 10)"
    )
    display_group.add_argument(
        "--headless",
        action="store_true",
        help="Run without the terminal UI and log finished transactions"
    )

    # Logging options
    log_group = parser.add_argument_group("Logging Options")
    log_group.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Log level (default: info)"
    )
    log_group.add_argument(
        "--log-file",
        default=None,
        help="Log output file (default: none while the TUI runs)"
    )

    return parser


def format_transaction(tx: Transaction) -> str:
    """One-line description of a closed transaction."""
    status = tx.status if tx.status is not None else "---"
    duration = f"{tx.duration * 1000:.0f}ms" if tx.duration is not None else "-"
    line = f"{tx.method} {tx.url} -> {status} ({duration}) {tx.state.value}"
    if tx.error:
        line += f": {tx.error}"
    if tx.truncated:
        line += " [truncated]"
    return line


def run_headless(inspector: Inspector, stop_event: threading.Event) -> None:
    """
    Apply events and log each transaction once it closes.

    Runs until stop_event is set.
    """
    interval = 1.0 / inspector.config.refresh_rate
    logged = set()

    while True:
        stopping = stop_event.wait(interval)
        inspector.drain_events()

        closed = set()
        for tx in inspector.store.snapshot():
            if not tx.is_closed:
                continue
            closed.add(tx.key)
            if tx.key not in logged:
                logger.info(format_transaction(tx))
        # Evicted keys drop out of the set
        logged = closed

        if stopping:
            break


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the network inspector.

    Returns:
        Exit code (0 clean quit, 1 configuration error, 2 transport unavailable)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Create configuration
    try:
        config = load_config_from_args(args)
        bindings = build_bindings(config.key_bindings)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    # Setup logging (console suppressed while the TUI owns the terminal)
    log_level = parse_log_level(config.log_level)
    ring_buffer = None if args.headless else RingBufferHandler()
    setup_logging(
        level=log_level,
        verbose=(log_level == logging.DEBUG),
        log_file=config.log_file,
        quiet=not args.headless,
        ring_buffer=ring_buffer,
    )

    stats = InspectorStats()
    inspector = Inspector(config, stats=stats)
    listener = TransportListener(
        inspector.event_queue,
        host=config.host,
        port=config.port,
        stats=stats,
        max_message_bytes=config.max_message_bytes,
    )

    try:
        listener.start()
    except TransportUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_TRANSPORT_UNAVAILABLE
    stats.start()

    if args.headless:
        return _run_headless_mode(config, inspector, listener)
    return _run_tui_mode(inspector, listener, bindings, ring_buffer)


def _run_headless_mode(config: InspectorConfig, inspector: Inspector,
                       listener: TransportListener) -> int:
    host, port = listener.address
    logger.info(f"Network Inspector v{__version__}")
    logger.info(f"Listening on {host}:{port}. Press Ctrl+C to stop.")

    stop_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run_headless(inspector, stop_event)
    finally:
        listener.stop(grace=config.shutdown_grace)
        inspector.drain_events()
        logger.info(inspector.stats.format_report())
        logger.info("Inspector stopped")

    return EXIT_OK


def _run_tui_mode(inspector: Inspector, listener: TransportListener, bindings,
                  ring_buffer: Optional[RingBufferHandler]) -> int:
    from .visualization.tui import InspectorTUI

    tui = InspectorTUI(
        inspector,
        listener=listener,
        translator=KeyTranslator(bindings),
        ring_buffer=ring_buffer,
    )

    def signal_handler(signum, frame):
        tui.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        tui.run()
    except KeyboardInterrupt:
        pass
    finally:
        tui.print_summary()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
