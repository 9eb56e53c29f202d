"""Core stack orchestration functionality."""

from .compose import ComposeCli
from .enums import StackStatus
from .orchestrator import StackOrchestrator
from .stack import Stack, get_stack, get_stack_list
from .terminal_service import TerminalService

__all__ = [
    "ComposeCli",
    "Stack",
    "StackOrchestrator",
    "StackStatus",
    "TerminalService",
    "get_stack",
    "get_stack_list",
]
