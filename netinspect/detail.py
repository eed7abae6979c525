"""
Detail content for one transaction.

build_detail() is a pure function of a Transaction (or None when the
selected transaction has been evicted) and produces everything the
detail pane shows. Drawing lives in visualization.detail_panel.
"""

import json
import re
import shlex
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from .events import Headers
from .store import ORPHAN_METHOD, Transaction

PLACEHOLDER_TEXT = "transaction no longer available"

BINARY_PREVIEW_BYTES = 256

GRAPHQL_OPERATION_RE = re.compile(r"^\s*(query|mutation|subscription)\b\s*(\w+)?")


@dataclass(frozen=True)
class DetailContent:
    """Read-only layout data for the detail pane."""
    available: bool
    title: str = ""
    summary: Tuple[Tuple[str, str], ...] = ()
    request_headers: Headers = ()
    response_headers: Headers = ()
    query_params: Tuple[Tuple[str, str], ...] = ()
    request_body: str = ""
    response_body: str = ""
    request_truncated: bool = False
    response_truncated: bool = False
    timing: Tuple[Tuple[str, Optional[float]], ...] = ()
    error: Optional[str] = None
    orphaned: bool = False
    graphql_operation: Optional[str] = None
    curl_command: str = ""
    notes: Tuple[str, ...] = field(default=())

    @property
    def truncated(self) -> bool:
        return self.request_truncated or self.response_truncated


PLACEHOLDER = DetailContent(available=False, title=PLACEHOLDER_TEXT)


def format_body(body: bytes) -> str:
    """Pretty-print JSON bodies, show text as-is and summarize binary."""
    if not body:
        return ""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        preview = body[:BINARY_PREVIEW_BYTES].hex(" ")
        return f"<{len(body)} bytes of binary data>\n{preview}"

    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def graphql_operation(body: bytes) -> Optional[str]:
    """
    Name the GraphQL operation carried by a request body, if any.

    Returns e.g. "query GetUser" or "mutation" for an anonymous one.
    """
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("query"), str):
        return None

    match = GRAPHQL_OPERATION_RE.match(payload["query"])
    op_type = match.group(1) if match else "query"
    name = payload.get("operationName")
    if not isinstance(name, str) or not name:
        name = match.group(2) if match else None
    return f"{op_type} {name}" if name else op_type


# Recomputed by curl from the body it sends
CURL_SKIPPED_HEADERS = ("content-length",)


def generate_curl_command(tx: Transaction) -> str:
    """
    Build a shell-ready curl command that replays the request.

    Binary or truncated request bodies cannot be replayed exactly; the
    command then ends with a shell comment saying so.
    """
    parts = ["curl"]
    if tx.method not in ("GET", ORPHAN_METHOD):
        parts += ["-X", tx.method]
    parts.append(shlex.quote(tx.url))
    for name, value in tx.request_headers:
        if name not in CURL_SKIPPED_HEADERS:
            parts += ["-H", shlex.quote(f"{name}: {value}")]

    note = None
    if tx.request_body:
        try:
            body = tx.request_body.decode("utf-8")
        except UnicodeDecodeError:
            note = f"# request body omitted: {len(tx.request_body)} bytes of binary data"
        else:
            parts += ["--data-raw", shlex.quote(body)]
            if tx.request_truncated:
                note = "# request body truncated"

    command = " ".join(parts)
    return f"{command}  {note}" if note else command


def timing_breakdown(tx: Transaction) -> Tuple[Tuple[str, Optional[float]], ...]:
    """Waiting, receiving and total time in seconds; None where unknown."""
    waiting = None
    receiving = None
    if tx.response_started_at is not None:
        waiting = max(0.0, tx.response_started_at - tx.started_at)
        if tx.completed_at is not None:
            receiving = max(0.0, tx.completed_at - tx.response_started_at)
    return (
        ("Waiting", waiting),
        ("Receiving", receiving),
        ("Total", tx.duration),
    )


def _format_time(ts: Optional[float]) -> str:
    if ts is None:
        return "-"
    try:
        return datetime.fromtimestamp(ts).strftime("%H:%M:%S.%f")[:-3]
    except (OverflowError, OSError, ValueError):
        return "-"


def build_detail(tx: Optional[Transaction]) -> DetailContent:
    """
    Build the detail layout for a transaction.

    Args:
        tx: Selected transaction, or None if it is no longer stored

    Returns:
        DetailContent; the placeholder when tx is None
    """
    if tx is None:
        return PLACEHOLDER

    summary: List[Tuple[str, str]] = [
        ("Method", tx.method),
        ("URL", tx.url or "-"),
        ("Status", str(tx.status) if tx.status is not None else "-"),
        ("State", tx.state.value),
        ("Source", tx.source),
    ]
    if tx.service:
        summary.append(("Service", tx.service))
    if tx.http_version:
        summary.append(("HTTP", tx.http_version))
    summary.append(("Started", _format_time(tx.started_at)))
    summary.append(("Closed", _format_time(tx.completed_at)))

    notes = []
    if tx.orphaned:
        notes.append("Orphaned: events arrived before the transaction start was seen")
    if tx.request_truncated:
        notes.append(f"Request body truncated at {len(tx.request_body)} bytes")
    if tx.response_truncated:
        notes.append(f"Response body truncated at {len(tx.response_body)} bytes")

    return DetailContent(
        available=True,
        title=f"{tx.method} {tx.url}",
        summary=tuple(summary),
        request_headers=tx.request_headers,
        response_headers=tx.response_headers,
        query_params=tuple(tx.query_params),
        request_body=format_body(tx.request_body),
        response_body=format_body(tx.response_body),
        request_truncated=tx.request_truncated,
        response_truncated=tx.response_truncated,
        timing=timing_breakdown(tx),
        error=tx.error,
        orphaned=tx.orphaned,
        graphql_operation=graphql_operation(tx.request_body),
        curl_command=generate_curl_command(tx),
        notes=tuple(notes),
    )
