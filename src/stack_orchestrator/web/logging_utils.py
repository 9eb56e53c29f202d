"""
Logging utilities for web interface components.

This module provides specialized logging for:
- REST API requests
- WebSocket connection management
- Terminal requests arriving over WebSocket
"""

from ..utils.logging import LogContext, get_logger

api_logger = get_logger(__name__ + ".api", LogContext.WEB)
websocket_logger = get_logger(__name__ + ".websocket", LogContext.WEB)


def log_websocket_connection(
    client_ip: str,
    action: str,  # connect, disconnect
    connection_id: str,
    reason: str | None = None,
) -> None:
    """Log WebSocket connection events."""
    websocket_logger.info(
        f"WebSocket {action}",
        action=action,
        client_ip=client_ip,
        connection_id=connection_id,
        reason=reason,
    )


def log_websocket_message(
    connection_id: str,
    message_type: str,
    direction: str,  # inbound, outbound
    message_size: int,
) -> None:
    """Log WebSocket message traffic."""
    websocket_logger.debug(
        f"WebSocket message {direction}",
        connection_id=connection_id,
        message_type=message_type,
        direction=direction,
        message_size=message_size,
    )


def log_request_failure(
    connection_id: str, message_type: str, error: Exception
) -> None:
    """Log a WebSocket request that was answered with an error."""
    websocket_logger.warning(
        "WebSocket request failed",
        connection_id=connection_id,
        message_type=message_type,
        error_type=type(error).__name__,
        error=str(error),
    )
