"""Viewer transport writing session output to the terminal running the CLI."""

from typing import Any

import click

from ..terminal.transport import EVENT_DATA, EVENT_EXIT, ViewerTransport

CONSOLE_VIEWER = "console"


class ConsoleTransport(ViewerTransport):
    """Streams session output of the console viewer to stdout."""

    def __init__(self, viewer_id: str = CONSOLE_VIEWER) -> None:
        self.viewer_id = viewer_id
        self.exit_codes: dict[str, int] = {}

    def is_connected(self, viewer_id: str) -> bool:
        return viewer_id == self.viewer_id

    def emit(self, viewer_id: str, event: str, *args: Any) -> None:
        if viewer_id != self.viewer_id:
            return
        if event == EVENT_DATA:
            _, chunk = args
            click.echo(chunk, nl=False)
        elif event == EVENT_EXIT:
            session_name, exit_code = args
            self.exit_codes[session_name] = exit_code
