"""Viewer transport contract used by terminal sessions to reach their viewers."""

from abc import ABC, abstractmethod
from typing import Any

# Events emitted to viewers
EVENT_DATA = "data"
EVENT_EXIT = "exit"


class ViewerTransport(ABC):
    """Delivers session events to viewers and reports their liveness.

    Viewers are opaque identifiers owned by the transport. Sessions only ever
    add, remove and broadcast by identifier; ``emit`` must not block.
    """

    @abstractmethod
    def is_connected(self, viewer_id: str) -> bool:
        """Return whether the viewer's connection is still alive."""

    @abstractmethod
    def emit(self, viewer_id: str, event: str, *args: Any) -> None:
        """Queue an event for delivery to one viewer."""


class NullTransport(ViewerTransport):
    """Transport with no reachable viewers."""

    def is_connected(self, viewer_id: str) -> bool:
        return False

    def emit(self, viewer_id: str, event: str, *args: Any) -> None:
        return None
