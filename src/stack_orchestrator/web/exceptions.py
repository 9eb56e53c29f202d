"""Mapping of orchestrator errors onto HTTP responses."""

from ..utils.logging import (
    BusyError,
    CommandFailedError,
    SessionNotFoundError,
    StackOrchestratorException,
    ValidationError,
)


class StackOrchestratorAPIException(Exception):
    """Base exception for the Stack-Orchestrator API."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class StackNotFoundError(StackOrchestratorAPIException):
    """Raised when a stack is neither on disk nor known to compose."""

    def __init__(self, stack_name: str):
        super().__init__(f"Stack {stack_name} not found", 404)
        self.stack_name = stack_name


def status_code_for(exc: StackOrchestratorException) -> int:
    """HTTP status code reported for a domain error."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, SessionNotFoundError):
        return 404
    if isinstance(exc, BusyError):
        return 409
    if isinstance(exc, CommandFailedError):
        return 502
    return 500
