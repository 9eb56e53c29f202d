"""
Terminal session management.

This package provides:
- Sessions owning one pseudo-terminal process, an output buffer and viewers
- The session registry enforcing one live session per name
- Deterministic session naming
- The transport contract used to reach viewers
"""

from .registry import SessionRegistry, SessionSettings
from .session import Session, SessionInfo, SessionKind, SessionState
from .transport import EVENT_DATA, EVENT_EXIT, NullTransport, ViewerTransport

__all__ = [
    "EVENT_DATA",
    "EVENT_EXIT",
    "NullTransport",
    "Session",
    "SessionInfo",
    "SessionKind",
    "SessionRegistry",
    "SessionSettings",
    "SessionState",
    "ViewerTransport",
]
