"""
Event Decoder for the network inspector.

Turns one raw wire message (a UTF-8 JSON object) into exactly one typed
event, or raises MalformedMessage. Decoding has no side effects.
"""

import base64
import binascii
import json
import math
import re
from typing import Any, Dict, Optional

from .errors import MalformedMessage
from .events import (
    Event,
    EventKind,
    Headers,
    RequestBodyChunk,
    ResponseBodyChunk,
    ResponseStarted,
    TransactionClosed,
    TransactionStarted,
)

# RFC 7230 token characters
HEADER_NAME_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
HEADER_VALUE_FORBIDDEN = ("\r", "\n", "\x00")

METHOD_RE = re.compile(r"^[A-Za-z]+$")

MIN_STATUS = 100
MAX_STATUS = 999

# 9999-12-31T23:59:59.999Z in epoch milliseconds
MAX_TIMESTAMP_MS = 253402300799999


class EventDecoder:
    """Decoder for instrumentation messages."""

    @staticmethod
    def decode(raw: bytes, source: str, received_at: float) -> Event:
        """
        Decode one raw message into an event.

        Args:
            raw: Message bytes without framing
            source: Connection label, used when the message names no source
            received_at: Receipt time, used when the message has no timestamp

        Returns:
            One of the five event variants

        Raises:
            MalformedMessage: unknown tag, truncated payload, bad field
        """
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"message is not valid UTF-8: {e}") from e

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedMessage(f"truncated or invalid JSON: {e.msg}") from e
        except ValueError as e:
            # Integer literals past the interpreter's digit limit
            raise MalformedMessage(f"invalid JSON: {e}") from e
        except RecursionError:
            raise MalformedMessage("JSON nested too deeply") from None

        if not isinstance(payload, dict):
            raise MalformedMessage("message is not a JSON object")

        tag = payload.get("type")
        try:
            kind = EventKind(tag)
        except ValueError:
            raise MalformedMessage(f"unknown event type: {tag!r}") from None

        tx_id = EventDecoder._decode_id(payload.get("id"))
        event_source = EventDecoder._optional_str(payload, "source") or source
        timestamp = EventDecoder._decode_timestamp(payload.get("timestamp"), received_at)

        if kind == EventKind.TRANSACTION_STARTED:
            method = EventDecoder._require_str(payload, "method")
            if not METHOD_RE.match(method):
                raise MalformedMessage(f"invalid method: {method!r}")
            return TransactionStarted(
                id=tx_id,
                source=event_source,
                timestamp=timestamp,
                method=method.upper(),
                host=EventDecoder._require_str(payload, "host"),
                path=EventDecoder._optional_str(payload, "path") or "/",
                headers=EventDecoder.decode_headers(payload.get("headers")),
                service=EventDecoder._optional_str(payload, "service"),
                http_version=EventDecoder._optional_str(payload, "httpVersion"),
            )

        if kind == EventKind.REQUEST_BODY_CHUNK:
            return RequestBodyChunk(
                id=tx_id,
                source=event_source,
                timestamp=timestamp,
                data=EventDecoder.decode_data(payload),
            )

        if kind == EventKind.RESPONSE_STARTED:
            return ResponseStarted(
                id=tx_id,
                source=event_source,
                timestamp=timestamp,
                status=EventDecoder._decode_status(payload.get("status")),
                headers=EventDecoder.decode_headers(payload.get("headers")),
            )

        if kind == EventKind.RESPONSE_BODY_CHUNK:
            return ResponseBodyChunk(
                id=tx_id,
                source=event_source,
                timestamp=timestamp,
                data=EventDecoder.decode_data(payload),
            )

        return TransactionClosed(
            id=tx_id,
            source=event_source,
            timestamp=timestamp,
            error=EventDecoder._optional_str(payload, "error"),
        )

    @staticmethod
    def decode_headers(raw_headers: Any) -> Headers:
        """
        Decode a header object into ordered (name, value) pairs.

        Values may be strings or arrays of strings; arrays are joined
        with ", " the way repeated HTTP headers combine.
        """
        if raw_headers is None:
            return ()
        if not isinstance(raw_headers, dict):
            raise MalformedMessage("headers must be a JSON object")

        headers = []
        for name, value in raw_headers.items():
            if not HEADER_NAME_RE.match(name):
                raise MalformedMessage(f"invalid header name: {name!r}")

            if isinstance(value, list):
                if not all(isinstance(v, str) for v in value):
                    raise MalformedMessage(f"invalid value for header {name!r}")
                value = ", ".join(value)
            elif not isinstance(value, str):
                raise MalformedMessage(f"invalid value for header {name!r}")

            if any(ch in value for ch in HEADER_VALUE_FORBIDDEN):
                raise MalformedMessage(f"control character in header {name!r}")

            headers.append((name.lower(), value))

        return tuple(headers)

    @staticmethod
    def decode_data(payload: Dict[str, Any]) -> bytes:
        """Decode the body bytes carried by a chunk message."""
        data = payload.get("data")
        if not isinstance(data, str):
            raise MalformedMessage("chunk data must be a string")

        encoding = payload.get("encoding", "utf-8")
        if encoding == "utf-8":
            return data.encode("utf-8")
        if encoding == "base64":
            try:
                return base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise MalformedMessage(f"invalid base64 chunk data: {e}") from e
        raise MalformedMessage(f"unknown chunk encoding: {encoding!r}")

    @staticmethod
    def _decode_id(value: Any) -> str:
        # bool is an int subclass and never a valid id
        if isinstance(value, bool):
            raise MalformedMessage("invalid transaction id")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value:
            return value
        raise MalformedMessage("missing or invalid transaction id")

    @staticmethod
    def _decode_timestamp(value: Any, received_at: float) -> float:
        if value is None:
            return received_at
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedMessage(f"invalid timestamp: {value!r}")
        if isinstance(value, float) and not math.isfinite(value):
            raise MalformedMessage(f"invalid timestamp: {value!r}")
        # Range check before any float conversion; huge ints overflow it
        if not 0 <= value <= MAX_TIMESTAMP_MS:
            raise MalformedMessage("timestamp out of range")
        # Epoch milliseconds on the wire
        return value / 1000.0

    @staticmethod
    def _decode_status(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedMessage(f"invalid status code: {value!r}")
        if not MIN_STATUS <= value <= MAX_STATUS:
            raise MalformedMessage(f"status code out of range: {value}")
        return value

    @staticmethod
    def _require_str(payload: Dict[str, Any], field: str) -> str:
        value = payload.get(field)
        if not isinstance(value, str):
            raise MalformedMessage(f"missing or invalid field: {field}")
        return value

    @staticmethod
    def _optional_str(payload: Dict[str, Any], field: str) -> Optional[str]:
        value = payload.get(field)
        if value is None:
            return None
        if not isinstance(value, str):
            raise MalformedMessage(f"invalid field: {field}")
        return value
