"""WebSocket module for terminal streaming."""

from .handlers import RequestDispatcher
from .manager import ConnectionManager, WebSocketConfig
from .router import router

__all__ = ["ConnectionManager", "RequestDispatcher", "WebSocketConfig", "router"]
