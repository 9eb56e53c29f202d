"""Stack-Orchestrator: compose stack manager with live terminal sessions."""

__version__ = "0.1.0"

from .core.orchestrator import StackOrchestrator
from .terminal.registry import SessionRegistry

__all__ = ["StackOrchestrator", "SessionRegistry", "__version__"]
