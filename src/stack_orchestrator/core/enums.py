"""Shared enums for stack-orchestrator."""

from enum import IntEnum


class StackStatus(IntEnum):
    """Consolidated status of a compose stack."""

    UNKNOWN = 0
    CREATED_FILE = 1
    CREATED_STACK = 2
    RUNNING = 3
    EXITED = 4
