"""Logging utilities for terminal session operations."""

from ..utils.logging import LogContext, get_logger

session_logger = get_logger("stack_orchestrator.terminal", LogContext.SESSION)
registry_logger = get_logger("stack_orchestrator.terminal.registry", LogContext.REGISTRY)


def log_session_operation(
    operation: str, session_name: str, status: str, **details
) -> None:
    """Log a session lifecycle operation."""
    message = f"Session {operation} {status} - {session_name}"
    if status == "error":
        session_logger.error(message, session=session_name, **details)
    else:
        session_logger.info(message, session=session_name, **details)


def log_viewer_change(session_name: str, viewer_id: str, action: str) -> None:
    """Log a viewer joining or leaving a session."""
    session_logger.debug(
        f"Viewer {action} - {session_name}",
        session=session_name,
        viewer_id=viewer_id,
        action=action,
    )


def log_session_exit(session_name: str, exit_code: int) -> None:
    """Log a session exit."""
    session_logger.debug(
        f"Session {session_name} exited with code {exit_code}",
        session=session_name,
        exit_code=exit_code,
    )
