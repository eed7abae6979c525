"""
Detail pane for the selected transaction.
"""

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..detail import DetailContent
from .transaction_log import format_duration


class DetailPanel:
    """Draws a DetailContent built by detail.build_detail()."""

    def render(self, content: DetailContent) -> Panel:
        if not content.available:
            return Panel(
                Text(content.title, style="dim italic", justify="center"),
                title="Details",
                title_align="left",
                border_style="red",
            )

        parts = [self._summary(content)]

        if content.notes or content.error:
            notes = Text()
            if content.error:
                notes.append(f"Error: {content.error}\n", style="bold red")
            for note in content.notes:
                notes.append(f"{note}\n", style="yellow")
            parts.append(notes)

        parts.append(self._pairs("Timing", [
            (name, format_duration(value)) for name, value in content.timing
        ]))
        if content.query_params:
            parts.append(self._pairs("Query Parameters", content.query_params))
        parts.append(self._pairs("Request Headers", content.request_headers))
        parts.append(self._body("Request Body", content.request_body, content.request_truncated))
        parts.append(self._pairs("Response Headers", content.response_headers))
        parts.append(self._body("Response Body", content.response_body, content.response_truncated))
        if content.curl_command:
            heading = Text("\ncURL", style="bold underline")
            parts.append(Group(heading, Text(content.curl_command, style="green")))

        return Panel(
            Group(*parts),
            title=Text(content.title, style="bold white"),
            title_align="left",
            subtitle="y copy as cURL  d delete  Esc to close",
            subtitle_align="right",
            border_style="bright_blue",
        )

    @staticmethod
    def _summary(content: DetailContent) -> Table:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Field", style="bold", no_wrap=True)
        table.add_column("Value")
        for name, value in content.summary:
            table.add_row(f"{name}:", value)
        if content.graphql_operation:
            table.add_row("GraphQL:", Text(content.graphql_operation, style="magenta"))
        return table

    @staticmethod
    def _pairs(title: str, pairs) -> Group:
        heading = Text(f"\n{title}", style="bold underline")
        if not pairs:
            return Group(heading, Text("  (none)", style="dim"))
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Value")
        for name, value in pairs:
            table.add_row(name, value)
        return Group(heading, table)

    @staticmethod
    def _body(title: str, body: str, truncated: bool) -> Group:
        heading = Text(f"\n{title}", style="bold underline")
        if truncated:
            heading.append("  [truncated]", style="bold yellow")
        if not body:
            return Group(heading, Text("  (empty)", style="dim"))
        return Group(heading, Text(body))
