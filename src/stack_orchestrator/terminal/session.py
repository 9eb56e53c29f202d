"""
Terminal sessions.

A session owns exactly one process running inside a pseudo terminal, a bounded
buffer of its output and the set of viewers that receive that output live.
Behaviour that only some sessions need (input, keep-alive, log replay) is
selected by the session kind.
"""

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ..utils.logging import SpawnError
from ..utils.process import ProcessInfo, PtyProcess, run_command
from .logging_utils import (
    log_session_exit,
    log_session_operation,
    log_viewer_change,
    session_logger,
)
from .transport import EVENT_DATA, EVENT_EXIT

if TYPE_CHECKING:
    from .registry import SessionRegistry

TERMINAL_COLS = 105
TERMINAL_ROWS = 10
PROGRESS_TERMINAL_ROWS = 8
COMBINED_TERMINAL_COLS = 58
COMBINED_TERMINAL_ROWS = 20


class SessionKind(Enum):
    """Kind of a terminal session."""

    PROGRESS = "progress"
    INTERACTIVE = "interactive"
    ATTACH = "attach"
    LOGS = "logs"

    @property
    def writable(self) -> bool:
        return self in (SessionKind.INTERACTIVE, SessionKind.ATTACH)


class SessionState(Enum):
    """Lifecycle state of a terminal session."""

    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class SessionInfo:
    """Information about a terminal session."""

    name: str
    kind: SessionKind
    state: SessionState
    rows: int
    cols: int
    keep_alive: bool
    viewers: int
    exit_code: int | None = None
    process: ProcessInfo | None = None


class Session:
    """One spawned process plus its output buffer, dimensions and viewers."""

    def __init__(
        self,
        registry: "SessionRegistry",
        name: str,
        kind: SessionKind,
        program: str,
        args: list[str],
        cwd: Path,
        *,
        rows: int = TERMINAL_ROWS,
        cols: int = TERMINAL_COLS,
        keep_alive: bool = False,
        service_name: str | None = None,
        environment: dict[str, str] | None = None,
    ) -> None:
        if kind is SessionKind.ATTACH and not service_name:
            raise ValueError("Attach sessions require a service name")

        self._registry = registry
        self._transport = registry.transport
        self._settings = registry.settings

        self.name = name
        self.kind = kind
        self.program = program
        self.args = list(args)
        self.cwd = Path(cwd)
        self.service_name = service_name
        self.environment = environment
        self.keep_alive = keep_alive

        self._rows = rows
        self._cols = cols
        self.buffer: deque[str] = deque(maxlen=self._settings.buffer_capacity)
        self._viewers: set[str] = set()

        self._state = SessionState.CREATED
        self._exit_code: int | None = None
        self._started = False
        self._close_requested = False
        self._hung_up = False
        self._process: PtyProcess | None = None
        self._wait_task: asyncio.Task[None] | None = None
        self._sweep_task: asyncio.Task[None] | None = None
        self._keep_alive_task: asyncio.Task[None] | None = None
        self._escalation: asyncio.TimerHandle | None = None
        self._exited = asyncio.Event()
        self._exit_callbacks: list[Callable[[int], None]] = []

    # ------------------------------------------------------------------
    # Properties

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def viewers(self) -> frozenset[str]:
        return frozenset(self._viewers)

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def process(self) -> PtyProcess | None:
        return self._process

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        """Spawn the process. A second call is a no-op.

        A spawn failure does not raise: the session moves straight to EXITED
        with an exit code parsed from the failure.
        """
        if self._started:
            return
        self._started = True

        try:
            process = await PtyProcess.spawn(
                self.program,
                self.args,
                self.cwd,
                rows=self._rows,
                cols=self._cols,
                environment=self.environment,
            )
        except SpawnError as e:
            log_session_operation("start", self.name, "error", error=e.message)
            self._finish(e.exit_code)
            return

        self._process = process
        self._state = SessionState.RUNNING
        log_session_operation(
            "start", self.name, "success", kind=self.kind.value, pid=process.pid
        )

        # Dimensions may have changed while spawning
        self._propagate_size()
        process.start_reading(self._on_output)
        self._wait_task = asyncio.create_task(self._wait_for_exit())
        self._start_timers()

        if self._close_requested:
            self.close()

    async def start_with_logs(self) -> None:
        """Replay recent container logs to current viewers, then start.

        The log fetch is best effort; its failure never prevents the start.
        """
        if self.kind is not SessionKind.ATTACH:
            raise ValueError(f"Session {self.name} is not an attach session")

        logs = await self._fetch_container_logs()
        if logs:
            self._broadcast(EVENT_DATA, self.name, logs)

        await self.start()

    async def _fetch_container_logs(self) -> str:
        args = [
            "compose",
            "logs",
            f"--tail={self._settings.log_tail_lines}",
            self.service_name or "",
        ]
        try:
            result = await run_command(self.program, args, self.cwd)
        except SpawnError as e:
            session_logger.warning(
                "Failed to fetch container logs", session=self.name, error=e.message
            )
            return ""

        if not result.ok:
            session_logger.warning(
                "Container log fetch exited with non-zero code",
                session=self.name,
                exit_code=result.return_code,
            )
            return ""

        return result.output

    async def wait(self) -> int:
        """Wait until the session has exited and return its exit code."""
        await self._exited.wait()
        if self._exit_code is None:
            raise RuntimeError(f"Session {self.name} exited without an exit code")
        return self._exit_code

    def on_exit(self, callback: Callable[[int], None]) -> None:
        """Register a callback invoked once with the exit code."""
        if self._exit_code is not None:
            callback(self._exit_code)
            return
        self._exit_callbacks.append(callback)

    def close(self) -> None:
        """Ask the process to stop with a soft interrupt.

        The session is only removed once the process actually exits.
        """
        if self._state is SessionState.EXITED:
            return

        if self._process is None:
            self._close_requested = True
            return

        session_logger.debug("Interrupting session", session=self.name)
        self._process.interrupt()

        close_timeout = self._settings.close_timeout
        if close_timeout is not None and self._escalation is None:
            self._escalation = asyncio.get_running_loop().call_later(
                close_timeout, self.kill
            )

    def kill(self) -> None:
        """Force the process to terminate."""
        if self._state is not SessionState.RUNNING or self._process is None:
            return
        session_logger.warning("Killing session", session=self.name)
        self._process.kill()

    async def _wait_for_exit(self) -> None:
        if self._process is None:
            return
        exit_code = await self._process.wait()
        self._finish(exit_code)

    def _finish(self, exit_code: int) -> None:
        if self._state is SessionState.EXITED:
            return
        self._state = SessionState.EXITED
        self._exit_code = exit_code

        self._broadcast(EVENT_EXIT, self.name, exit_code)
        self._viewers.clear()
        self._registry.discard(self)

        self._cancel_task(self._sweep_task)
        self._cancel_task(self._keep_alive_task)
        self._sweep_task = None
        self._keep_alive_task = None
        if self._escalation is not None:
            self._escalation.cancel()
            self._escalation = None

        log_session_exit(self.name, exit_code)
        self._exited.set()

        callbacks, self._exit_callbacks = self._exit_callbacks, []
        for callback in callbacks:
            callback(exit_code)

    # ------------------------------------------------------------------
    # Viewers and output

    def join(self, viewer_id: str) -> None:
        """Attach a viewer. Joining twice is a no-op."""
        if viewer_id in self._viewers:
            return
        self._viewers.add(viewer_id)
        log_viewer_change(self.name, viewer_id, "joined")

    def leave(self, viewer_id: str) -> None:
        """Detach a viewer. Leaving without joining is a no-op."""
        if viewer_id not in self._viewers:
            return
        self._viewers.discard(viewer_id)
        log_viewer_change(self.name, viewer_id, "left")

    def get_buffer(self) -> str:
        """Return buffered output in arrival order."""
        return "".join(self.buffer)

    def _on_output(self, chunk: str) -> None:
        self.buffer.append(chunk)
        self._broadcast(EVENT_DATA, self.name, chunk)

    def _broadcast(self, event: str, *payload) -> None:
        for viewer_id in list(self._viewers):
            try:
                self._transport.emit(viewer_id, event, *payload)
            except Exception as e:
                session_logger.debug(
                    "Failed to deliver event",
                    session=self.name,
                    viewer_id=viewer_id,
                    event=event,
                    error=str(e),
                )

    # ------------------------------------------------------------------
    # Interaction

    def write(self, data: str) -> None:
        """Forward input to the process. Ignored unless running."""
        if not self.kind.writable:
            session_logger.debug("Ignoring input for read-only session", session=self.name)
            return
        if self._state is not SessionState.RUNNING or self._process is None:
            return
        try:
            self._process.write(data)
        except OSError as e:
            session_logger.debug(
                "Failed to write to session", session=self.name, error=str(e)
            )

    def resize(self, rows: int, cols: int) -> None:
        """Store new dimensions and propagate them to a running process."""
        self._rows = rows
        self._cols = cols
        self._propagate_size()

    def _propagate_size(self) -> None:
        if self._state is not SessionState.RUNNING or self._process is None:
            return
        try:
            self._process.resize(self._rows, self._cols)
        except OSError as e:
            session_logger.debug(
                "Failed to resize terminal", session=self.name, error=str(e)
            )

    def info(self) -> SessionInfo:
        """Describe the session and its process."""
        return SessionInfo(
            name=self.name,
            kind=self.kind,
            state=self._state,
            rows=self._rows,
            cols=self._cols,
            keep_alive=self.keep_alive,
            viewers=len(self._viewers),
            exit_code=self._exit_code,
            process=self._process.snapshot() if self._process else None,
        )

    # ------------------------------------------------------------------
    # Background sweeps

    def _start_timers(self) -> None:
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        if self.keep_alive:
            session_logger.debug("Keep alive enabled", session=self.name)
            self._keep_alive_task = asyncio.create_task(self._keep_alive_loop())

    def kick_disconnected_viewers(self) -> None:
        """Remove every viewer whose connection is gone."""
        for viewer_id in list(self._viewers):
            if not self._transport.is_connected(viewer_id):
                session_logger.debug(
                    "Kicking disconnected viewer",
                    session=self.name,
                    viewer_id=viewer_id,
                )
                self.leave(viewer_id)

    def check_keep_alive(self) -> None:
        """Hang up the session when nobody is watching it.

        The process group gets SIGHUP, as it would from a closed terminal.
        A process still running at the following sweep is killed.
        """
        if self._viewers:
            self._hung_up = False
            session_logger.debug(
                "Session still watched", session=self.name, viewers=len(self._viewers)
            )
            return

        if self._state is not SessionState.RUNNING or self._process is None:
            return

        if self._hung_up:
            self.kill()
            return

        session_logger.debug("Session has no viewers, hanging up", session=self.name)
        self._hung_up = True
        self._process.hangup()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.sweep_interval)
            self.kick_disconnected_viewers()

    async def _keep_alive_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.sweep_interval)
            self.check_keep_alive()

    @staticmethod
    def _cancel_task(task: asyncio.Task[None] | None) -> None:
        if task is not None and not task.done():
            task.cancel()
