"""
Session registry.

The registry is the process-wide table of live terminal sessions, keyed by
session name. It is owned by the application context and handed to the
collaborators that need it. Every check-and-register step runs without an
intermediate ``await``, so on the single event loop it cannot interleave with
another request for the same name.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils.logging import BusyError
from .logging_utils import registry_logger
from .session import (
    PROGRESS_TERMINAL_ROWS,
    Session,
    SessionInfo,
    SessionKind,
    SessionState,
)
from .transport import NullTransport, ViewerTransport


@dataclass
class SessionSettings:
    """Settings shared by every session of a registry."""

    buffer_capacity: int = 100
    sweep_interval: float = 60.0
    close_timeout: float | None = None
    log_tail_lines: int = 100

    @classmethod
    def from_config(cls, config: Any) -> "SessionSettings":
        return cls(
            buffer_capacity=config.buffer_capacity,
            sweep_interval=config.sweep_interval,
            close_timeout=config.close_timeout,
            log_tail_lines=config.log_tail_lines,
        )


class SessionRegistry:
    """Table of live terminal sessions with at most one session per name."""

    def __init__(
        self,
        transport: ViewerTransport | None = None,
        settings: SessionSettings | None = None,
    ) -> None:
        self.transport = transport or NullTransport()
        self.settings = settings or SessionSettings()
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, name: object) -> bool:
        return name in self._sessions

    def names(self) -> list[str]:
        return list(self._sessions)

    def get(self, name: str) -> Session | None:
        """Get a live session by name."""
        return self._sessions.get(name)

    def get_or_create(self, name: str, factory: Callable[[], Session]) -> Session:
        """Return the live session named ``name``, creating it if needed."""
        session = self._sessions.get(name)
        if session is None:
            session = self._register(name, factory)
        return session

    def create_exclusive(self, name: str, factory: Callable[[], Session]) -> Session:
        """Create and register a session, refusing if the name is taken.

        Raises:
            BusyError: If a session with this name is live
        """
        if name in self._sessions:
            registry_logger.info("Rejected exclusive session request", session=name)
            raise BusyError(name)
        return self._register(name, factory)

    def _register(self, name: str, factory: Callable[[], Session]) -> Session:
        session = factory()
        if session.name != name:
            raise ValueError(
                f"Factory produced session {session.name!r} for name {name!r}"
            )
        self._sessions[name] = session
        registry_logger.debug(
            "Session registered", session=name, session_count=len(self._sessions)
        )
        return session

    def discard(self, session: Session) -> None:
        """Remove an exited session. Unknown or replaced sessions are ignored."""
        if self._sessions.get(session.name) is session:
            del self._sessions[session.name]
            registry_logger.debug(
                "Session removed",
                session=session.name,
                session_count=len(self._sessions),
            )

    def new_session(
        self,
        name: str,
        kind: SessionKind,
        program: str,
        args: list[str],
        cwd: Path,
        **options: Any,
    ) -> Callable[[], Session]:
        """Return a factory building a session bound to this registry."""

        def factory() -> Session:
            return Session(self, name, kind, program, args, cwd, **options)

        return factory

    async def exec(
        self,
        name: str,
        program: str,
        args: list[str],
        cwd: Path,
        viewer_id: str | None = None,
        rows: int = PROGRESS_TERMINAL_ROWS,
    ) -> int:
        """Run a one-shot exclusive progress session and wait for its exit code.

        Raises:
            BusyError: If a session with this name is already live
        """
        session = self.create_exclusive(
            name,
            self.new_session(name, SessionKind.PROGRESS, program, args, cwd, rows=rows),
        )

        if viewer_id is not None:
            session.join(viewer_id)

        await session.start()
        return await session.wait()

    def snapshot(self) -> dict[str, SessionInfo]:
        """Describe every live session."""
        return {name: session.info() for name, session in self._sessions.items()}

    async def close_all(self, timeout: float = 10.0) -> None:
        """Interrupt every live session, killing those still running after ``timeout``."""
        sessions = list(self._sessions.values())
        if not sessions:
            return

        registry_logger.info("Closing all sessions", session_count=len(sessions))
        for session in sessions:
            session.close()

        running = [s for s in sessions if s.state is SessionState.RUNNING]
        if not running:
            return

        waiters = [asyncio.create_task(s.wait()) for s in running]
        _, pending = await asyncio.wait(waiters, timeout=timeout)

        if pending:
            registry_logger.warning(
                "Sessions ignored interrupt, killing", session_count=len(pending)
            )
            for session in running:
                session.kill()
            await asyncio.gather(*pending, return_exceptions=True)
