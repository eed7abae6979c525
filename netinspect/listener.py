"""
Transport Listener for the network inspector.

Accepts TCP connections from instrumented processes. Each connection is
served by its own thread, which frames newline-delimited messages,
decodes them and queues the events in the order they were received.
Nothing here touches the session store.
"""

import itertools
import logging
import queue
import socket
import socketserver
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Set, Tuple

from .decoder import EventDecoder
from .errors import MalformedMessage, TransportUnavailable
from .stats import InspectorStats

logger = logging.getLogger(__name__)

RECV_SIZE = 65536
POLL_INTERVAL = 0.2
MAX_RECENT_ERRORS = 100


@dataclass(frozen=True)
class ListenerError:
    """One entry on the listener error channel."""
    source: str
    reason: str
    at: float


class LineFramer:
    """
    Splits a byte stream into newline-terminated messages.

    feed() returns complete messages in stream order. A message longer
    than max_message_bytes is dropped up to its newline and reported as
    None in its place.
    """

    def __init__(self, max_message_bytes: int):
        self.max_message_bytes = max_message_bytes
        self._buffer = bytearray()
        self._discarding = False

    def feed(self, data: bytes) -> List[Optional[bytes]]:
        frames: List[Optional[bytes]] = []
        self._buffer.extend(data)

        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                if len(self._buffer) > self.max_message_bytes:
                    if not self._discarding:
                        frames.append(None)
                        self._discarding = True
                    self._buffer.clear()
                break

            line = bytes(self._buffer[:idx])
            del self._buffer[:idx + 1]

            if self._discarding:
                # Tail of an oversized message
                self._discarding = False
                continue
            if len(line) > self.max_message_bytes:
                frames.append(None)
                continue

            line = line.strip()
            if line:
                frames.append(line)

        return frames

    def flush(self) -> List[bytes]:
        """Return any unterminated trailing message at end of stream."""
        line = bytes(self._buffer).strip()
        self._buffer.clear()
        if self._discarding or not line:
            self._discarding = False
            return []
        return [line]


class _ConnectionHandler(socketserver.BaseRequestHandler):
    def handle(self):
        self.server.listener._serve_connection(self.request, self.client_address)


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class TransportListener:
    """
    TCP listener feeding decoded events into a bounded queue.

    Connection loss leaves transactions untouched: the process may
    reconnect and continue emitting for the same ids.
    """

    def __init__(
        self,
        event_queue: queue.Queue,
        host: str = "127.0.0.1",
        port: int = 9999,
        stats: Optional[InspectorStats] = None,
        decoder: Optional[EventDecoder] = None,
        max_message_bytes: int = 4 * 1024 * 1024,
    ):
        """
        Initialize the listener.

        Args:
            event_queue: Bounded queue drained by the render loop
            host: Address to bind
            port: Port to bind (0 picks a free port)
            stats: Shared statistics
            decoder: Event decoder
            max_message_bytes: Largest accepted message
        """
        self.event_queue = event_queue
        self.host = host
        self.port = port
        self.stats = stats or InspectorStats()
        self.decoder = decoder or EventDecoder()
        self.max_message_bytes = max_message_bytes

        self._server: Optional[_Server] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()
        self._deadline: Optional[float] = None

        self._lock = threading.Lock()
        self._handlers: Set[threading.Thread] = set()
        self._connection_ids = itertools.count(1)
        self._errors: Deque[ListenerError] = deque(maxlen=MAX_RECENT_ERRORS)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), valid after start()."""
        if self._server is None:
            return (self.host, self.port)
        return self._server.server_address[:2]

    @property
    def running(self) -> bool:
        return self._server is not None and not self._stopping.is_set()

    def start(self) -> None:
        """
        Bind the socket and start accepting connections.

        Raises:
            TransportUnavailable: the address cannot be bound
        """
        try:
            self._server = _Server((self.host, self.port), _ConnectionHandler)
        except OSError as e:
            raise TransportUnavailable(f"Cannot listen on {self.host}:{self.port}: {e}") from e

        self._server.listener = self
        self._stopping.clear()
        self._serve_thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={'poll_interval': POLL_INTERVAL},
            name="listener-accept",
            daemon=True,
        )
        self._serve_thread.start()

        host, port = self.address
        logger.info(f"Listening for telemetry on {host}:{port}")

    def stop(self, grace: float = 2.0) -> None:
        """
        Stop accepting connections and drain open ones.

        Args:
            grace: Seconds allowed for in-flight reads to finish
        """
        if self._server is None:
            return

        logger.info("Stopping listener...")
        self._deadline = time.monotonic() + grace
        self._stopping.set()

        self._server.shutdown()
        self._server.server_close()

        with self._lock:
            handlers = list(self._handlers)
        for thread in handlers:
            remaining = max(0.0, self._deadline - time.monotonic())
            thread.join(timeout=remaining)

        still_running = [t for t in handlers if t.is_alive()]
        if still_running:
            logger.warning(f"{len(still_running)} connection(s) still open after grace period")

        self._server = None
        logger.info("Listener stopped")

    def recent_errors(self) -> List[ListenerError]:
        """Most recent entries of the error channel, oldest first."""
        with self._lock:
            return list(self._errors)

    def _past_deadline(self) -> bool:
        return self._deadline is not None and time.monotonic() > self._deadline

    def _serve_connection(self, sock: socket.socket, address) -> None:
        """Read loop for one connection."""
        label = f"{address[0]}:{address[1]}#{next(self._connection_ids)}"
        current = threading.current_thread()
        with self._lock:
            self._handlers.add(current)

        self.stats.record_connection_opened()
        logger.info(f"Connection opened: {label}")

        framer = LineFramer(self.max_message_bytes)
        sock.settimeout(POLL_INTERVAL)
        try:
            while not self._past_deadline():
                try:
                    data = sock.recv(RECV_SIZE)
                except socket.timeout:
                    if self._stopping.is_set():
                        break
                    continue
                except OSError as e:
                    logger.warning(f"Connection {label} read error: {e}")
                    break

                if not data:
                    for frame in framer.flush():
                        self._handle_frame(frame, label)
                    break

                for frame in framer.feed(data):
                    self._handle_frame(frame, label)
        finally:
            self.stats.record_connection_closed()
            logger.info(f"Connection closed: {label}")
            with self._lock:
                self._handlers.discard(current)

    def _handle_frame(self, frame: Optional[bytes], label: str) -> None:
        self.stats.record_message()

        if frame is None:
            self._report(label, f"message exceeds {self.max_message_bytes} bytes")
            return

        try:
            event = self.decoder.decode(frame, label, time.time())
        except MalformedMessage as e:
            self._report(label, e.reason)
            return
        except Exception as e:
            # One bad frame must not end the connection
            logger.exception(f"Unexpected error decoding message from {label}")
            self._report(label, f"undecodable message: {type(e).__name__}")
            return

        self._enqueue(event, label)

    def _enqueue(self, event, label: str) -> None:
        # Deliberate backpressure: a full queue blocks this connection's reader,
        # never the render loop. Gives up once stopping has run out of grace.
        while True:
            try:
                self.event_queue.put(event, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                if self._past_deadline():
                    logger.warning(f"Dropping event from {label}: queue full at shutdown")
                    return

    def _report(self, label: str, reason: str) -> None:
        """Put a decode failure on the error channel."""
        self.stats.record_malformed()
        logger.warning(f"Malformed message from {label}: {reason}")
        with self._lock:
            self._errors.append(ListenerError(source=label, reason=reason, at=time.time()))
