"""
Logging and error handling framework for Stack-Orchestrator.

This module provides:
- Structured logging configuration
- Custom exception classes
- Context-aware logging utilities
- Audit logging for stack operations
"""

import functools
import json
import logging
import sys
import time
import traceback
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    ORCHESTRATOR = "orchestrator"
    STACK = "stack"
    SESSION = "session"
    REGISTRY = "registry"
    WEB = "web"
    CLI = "cli"
    PROCESS = "process"


class StackOrchestratorException(Exception):
    """Base exception class for all Stack-Orchestrator errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.utcnow()


class SpawnError(StackOrchestratorException):
    """The executable is missing or the OS refused to launch it."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message, {"exit_code": exit_code})
        self.exit_code = exit_code


class BusyError(StackOrchestratorException):
    """An exclusive session was requested while a same-named one is active."""

    def __init__(self, session_name: str):
        super().__init__(
            "Another operation is already running, please try again later.",
            {"session_name": session_name},
        )
        self.session_name = session_name


class ValidationError(StackOrchestratorException):
    """Malformed stack name, compose syntax or environment file."""

    pass


class CommandFailedError(StackOrchestratorException):
    """An orchestrated command exited with a non-zero code."""

    def __init__(self, action: str, session_name: str, exit_code: int):
        super().__init__(
            f"Failed to {action}, please check the terminal output "
            f"of {session_name} for more information.",
            {"session_name": session_name, "exit_code": exit_code},
        )
        self.action = action
        self.session_name = session_name
        self.exit_code = exit_code


class SessionNotFoundError(StackOrchestratorException):
    """No live session is registered under the requested name."""

    def __init__(self, session_name: str):
        super().__init__(
            f"Session {session_name} not found", {"session_name": session_name}
        )
        self.session_name = session_name


class ConfigurationError(StackOrchestratorException):
    """Errors related to configuration and setup."""

    pass


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    STANDARD_FIELDS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "context",
        "session_name",
        "stack_name",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "context"):
            log_data["context"] = record.context

        if getattr(record, "session_name", None):
            log_data["session_name"] = record.session_name

        if getattr(record, "stack_name", None):
            log_data["stack_name"] = record.stack_name

        for key, value in record.__dict__.items():
            if key not in self.STANDARD_FIELDS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value
        self.session_name: str | None = None
        self.stack_name: str | None = None

    def set_session_name(self, session_name: str) -> None:
        """Set the session name for all subsequent log messages."""
        self.session_name = session_name

    def set_stack_name(self, stack_name: str) -> None:
        """Set the stack name for all subsequent log messages."""
        self.stack_name = stack_name

    def _extra(self, extra_context: dict[str, Any] | None) -> dict[str, Any]:
        extra: dict[str, Any] = {"context": self.context}

        if self.session_name:
            extra["session_name"] = self.session_name

        if self.stack_name:
            extra["stack_name"] = self.stack_name

        if extra_context:
            extra.update(extra_context)

        return extra

    def _log(
        self, level: int, message: str, extra_context: dict[str, Any] | None = None
    ) -> None:
        """Internal logging method with context injection."""
        self.logger.log(level, message, extra=self._extra(extra_context))

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exception: Exception | None = None, **kwargs) -> None:
        """Log error message with context and optional exception."""
        if exception:
            self.logger.error(message, exc_info=exception, extra=self._extra(kwargs))
        else:
            self._log(logging.ERROR, message, kwargs)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def setup_logging(
    log_level: str | LogLevel = LogLevel.INFO,
    log_file: Path | None = None,
    enable_structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Setup logging configuration.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    if isinstance(log_level, LogLevel):
        log_level = log_level.value

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    if enable_structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def audit_operation(
    action: str, log_context: LogContext = LogContext.ORCHESTRATOR
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Decorator for audit logging of asynchronous stack operations."""

    def decorator(
        func: Callable[..., Awaitable[Any]],
    ) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(f"{func.__module__}.audit", log_context)

            start_time = time.monotonic()
            logger.info(
                f"Audit: {action} started", action=action, function=func.__name__
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Audit: {action} failed",
                    action=action,
                    function=func.__name__,
                    status="error",
                    error=str(e),
                    execution_time=time.monotonic() - start_time,
                )
                raise

            logger.info(
                f"Audit: {action} completed successfully",
                action=action,
                function=func.__name__,
                status="success",
                execution_time=time.monotonic() - start_time,
            )
            return result

        return wrapper

    return decorator
