"""
Caller-facing terminal operations.

Transports (the WebSocket endpoint, the CLI) reach sessions only through this
service: starting a terminal of a given kind, writing input, resizing,
joining, leaving and reading the buffer by session name.
"""

import shutil
from pathlib import Path

from ..config import OrchestratorConfig
from ..terminal.names import console_session_name
from ..terminal.registry import SessionRegistry
from ..terminal.session import TERMINAL_ROWS, Session, SessionKind
from ..utils.logging import (
    LogContext,
    SessionNotFoundError,
    ValidationError,
    get_logger,
)
from .compose import ComposeCli
from .orchestrator import StackOrchestrator
from .stack import STACK_NAME_PATTERN, Stack

logger = get_logger(__name__, LogContext.SESSION)


class TerminalService:
    """Starts and drives terminal sessions on behalf of viewers."""

    def __init__(
        self,
        registry: SessionRegistry,
        config: OrchestratorConfig,
        compose: ComposeCli | None = None,
        endpoint: str = "",
    ) -> None:
        self.registry = registry
        self.config = config
        self.compose = compose or ComposeCli(config.compose_binary)
        self.endpoint = endpoint

    def orchestrator(self, stack_name: str, endpoint: str | None = None) -> StackOrchestrator:
        """Build an orchestrator for a stack below the configured stacks directory.

        Raises:
            ValidationError: If the stack name is malformed
        """
        if not STACK_NAME_PATTERN.match(stack_name):
            raise ValidationError("Stack name can only contain [a-z][0-9] _ - only")

        stack = Stack(self.config.stacks_path, stack_name)
        return StackOrchestrator(
            stack,
            self.registry,
            endpoint=self.endpoint if endpoint is None else endpoint,
            compose=self.compose,
        )

    async def request_start(
        self,
        kind: SessionKind,
        endpoint: str | None = None,
        stack_name: str | None = None,
        service_name: str | None = None,
        shell: str | None = None,
        viewer_id: str | None = None,
        index: int = 0,
    ) -> str:
        """Start (or join) a terminal and return its session name.

        Progress sessions are only started by stack operations.

        Raises:
            ValidationError: If the request does not describe a startable terminal
        """
        if kind is SessionKind.PROGRESS:
            raise ValidationError("Progress terminals are started by stack operations")

        viewer = viewer_id or ""

        if kind is SessionKind.INTERACTIVE and stack_name is None:
            session = await self._join_console(viewer, endpoint)
            return session.name

        if stack_name is None:
            raise ValidationError(f"A stack is required for {kind.value} terminals")

        orchestrator = self.orchestrator(stack_name, endpoint)

        if kind is SessionKind.LOGS:
            session = await orchestrator.join_combined_terminal(viewer)
        elif service_name is None:
            raise ValidationError(f"A service is required for {kind.value} terminals")
        elif kind is SessionKind.ATTACH:
            session = await orchestrator.join_attach_terminal(viewer, service_name)
        else:
            session = await orchestrator.join_container_terminal(
                viewer, service_name, shell or "sh", index
            )

        if viewer_id is None:
            session.leave(viewer)
        return session.name

    async def _join_console(self, viewer_id: str, endpoint: str | None) -> Session:
        if not self.config.enable_console:
            raise ValidationError("Console is not enabled.")

        name = console_session_name(self.endpoint if endpoint is None else endpoint)
        stacks_path = self.config.stacks_path
        session = self.registry.get_or_create(
            name,
            self.registry.new_session(
                name,
                SessionKind.INTERACTIVE,
                shutil.which("bash") or "sh",
                [],
                stacks_path if stacks_path.is_dir() else Path.cwd(),
                rows=TERMINAL_ROWS,
                keep_alive=True,
            ),
        )
        if viewer_id:
            session.join(viewer_id)
        await session.start()
        return session

    def _require(self, session_name: str) -> Session:
        session = self.registry.get(session_name)
        if session is None:
            raise SessionNotFoundError(session_name)
        return session

    def request_write(self, session_name: str, data: str) -> None:
        """Forward input to an interactive or attach session.

        Raises:
            SessionNotFoundError: If no writable session has this name
        """
        session = self._require(session_name)
        if not session.kind.writable:
            raise SessionNotFoundError(session_name)
        session.write(data)

    def request_resize(self, session_name: str, rows: int, cols: int) -> None:
        """Resize a session. Unknown names are ignored."""
        session = self.registry.get(session_name)
        if session is None:
            logger.debug("Resize for unknown session ignored", session=session_name)
            return
        session.resize(rows, cols)

    def request_join(self, session_name: str, viewer_id: str) -> str:
        """Join a live session and return its buffered output.

        Raises:
            SessionNotFoundError: If no session has this name
        """
        session = self._require(session_name)
        session.join(viewer_id)
        return session.get_buffer()

    def request_leave(self, session_name: str, viewer_id: str) -> None:
        session = self.registry.get(session_name)
        if session is not None:
            session.leave(viewer_id)

    def request_buffer(self, session_name: str) -> str:
        return self._require(session_name).get_buffer()

    def leave_all(self, viewer_id: str) -> None:
        """Detach a viewer from every session, e.g. when its connection closes."""
        for name in self.registry.names():
            self.request_leave(name, viewer_id)
