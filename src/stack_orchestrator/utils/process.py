"""Process management utilities for terminal sessions and helper commands."""

import asyncio
import codecs
import contextlib
import fcntl
import os
import pty
import signal
import struct
import termios
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import psutil

from .logging import LogContext, SpawnError, get_logger

logger = get_logger(__name__, LogContext.PROCESS)

# Grace period for draining the PTY once the child has exited
EOF_DRAIN_TIMEOUT = 1.0
READ_CHUNK_SIZE = 4096


class ProcessStatus(Enum):
    """Status of a managed process."""

    RUNNING = "running"
    STOPPED = "stopped"
    CRASHED = "crashed"


@dataclass
class ProcessInfo:
    """Information about a managed process."""

    pid: int
    status: ProcessStatus
    command: list[str]
    working_directory: Path
    cpu_percent: float = 0.0
    memory_mb: float = 0.0
    return_code: int | None = None


@dataclass
class CommandResult:
    """Captured result of a short-lived helper command."""

    command: list[str]
    return_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, in that order."""
        return self.stdout + self.stderr


def parse_exit_code(message: str, error_number: int | None = None) -> int:
    """Best-effort exit code for a process that could not be spawned.

    The last whitespace-separated token of the failure message is used when it
    is an integer, then the OS errno, then 1.
    """
    tokens = message.strip().split()
    if tokens:
        try:
            return int(tokens[-1])
        except ValueError:
            pass
    if error_number:
        return error_number
    return 1


def set_window_size(fd: int, rows: int, cols: int) -> None:
    """Set the window size of a terminal file descriptor."""
    winsize = struct.pack("HHHH", max(1, rows), max(1, cols), 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the PTY slave
    with contextlib.suppress(OSError):
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)


def _child_environment(environment: dict[str, str] | None) -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("TERM", "xterm-256color")
    if environment:
        env.update(environment)
    return env


class PtyProcess:
    """A child process whose stdio is attached to a pseudo terminal."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        master_fd: int,
        command: list[str],
        working_directory: Path,
    ) -> None:
        self._process = process
        self._master_fd: int | None = master_fd
        self._command = command
        self._working_directory = working_directory
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._on_data: Callable[[str], None] | None = None
        self._reading = False
        self._eof = asyncio.Event()

    @classmethod
    async def spawn(
        cls,
        program: str,
        args: list[str],
        working_directory: Path,
        rows: int,
        cols: int,
        environment: dict[str, str] | None = None,
    ) -> "PtyProcess":
        """Spawn ``program`` inside a new pseudo terminal.

        Args:
            program: Executable name or path
            args: Argument vector, excluding the program
            working_directory: Directory to run the program in
            rows: Initial terminal rows
            cols: Initial terminal columns
            environment: Extra environment variables

        Returns:
            PtyProcess for the running child

        Raises:
            SpawnError: If the executable is missing or the OS refused to launch it
        """
        command = [program, *args]
        master_fd, slave_fd = pty.openpty()

        try:
            set_window_size(slave_fd, rows, cols)
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=working_directory,
                env=_child_environment(environment),
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except OSError as e:
            os.close(master_fd)
            logger.debug("PTY spawn failed", command=command, error=str(e))
            raise SpawnError(
                f"Failed to spawn {program}: {e}",
                exit_code=parse_exit_code(str(e), e.errno),
            ) from e
        finally:
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        logger.debug(
            "PTY process spawned",
            command=command,
            pid=process.pid,
            working_directory=str(working_directory),
        )
        return cls(process, master_fd, command, working_directory)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def return_code(self) -> int | None:
        return self._process.returncode

    def start_reading(self, on_data: Callable[[str], None]) -> None:
        """Deliver decoded output to ``on_data`` from the event loop."""
        if self._reading or self._master_fd is None:
            return
        self._on_data = on_data
        self._reading = True
        asyncio.get_running_loop().add_reader(self._master_fd, self._on_readable)

    def _on_readable(self) -> None:
        if self._master_fd is None:
            return
        try:
            data = os.read(self._master_fd, READ_CHUNK_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once every slave descriptor is closed
            data = b""

        if not data:
            self._stop_reading()
            tail = self._decoder.decode(b"", final=True)
            if tail and self._on_data:
                self._on_data(tail)
            self._eof.set()
            return

        text = self._decoder.decode(data)
        if text and self._on_data:
            self._on_data(text)

    def _stop_reading(self) -> None:
        if self._reading and self._master_fd is not None:
            asyncio.get_running_loop().remove_reader(self._master_fd)
        self._reading = False

    def write(self, data: str) -> None:
        """Write input to the terminal."""
        if self._master_fd is None:
            return
        os.write(self._master_fd, data.encode("utf-8"))

    def resize(self, rows: int, cols: int) -> None:
        """Propagate new dimensions to the terminal."""
        if self._master_fd is None:
            raise OSError("terminal is closed")
        set_window_size(self._master_fd, rows, cols)

    def interrupt(self) -> None:
        """Send SIGINT to the process group of the child."""
        self._signal(signal.SIGINT)

    def hangup(self) -> None:
        """Send SIGHUP to the process group of the child."""
        self._signal(signal.SIGHUP)

    def kill(self) -> None:
        """Send SIGKILL to the process group of the child."""
        self._signal(signal.SIGKILL)

    def _signal(self, signum: int) -> None:
        if self._process.returncode is not None:
            return
        try:
            os.killpg(self._process.pid, signum)
        except ProcessLookupError:
            pass
        except PermissionError:
            self._process.send_signal(signum)

    async def wait(self) -> int:
        """Wait for the child to exit and its output to be drained.

        Returns:
            The exit code; negative values are terminating signal numbers
        """
        return_code = await self._process.wait()

        if self._reading:
            try:
                await asyncio.wait_for(self._eof.wait(), timeout=EOF_DRAIN_TIMEOUT)
            except TimeoutError:
                logger.debug(
                    "PTY output not drained before timeout", pid=self._process.pid
                )

        self.close()
        return return_code

    def close(self) -> None:
        """Release the terminal file descriptor."""
        self._stop_reading()
        if self._master_fd is not None:
            with contextlib.suppress(OSError):
                os.close(self._master_fd)
            self._master_fd = None

    def snapshot(self) -> ProcessInfo:
        """Collect status and resource usage of the child."""
        return_code = self._process.returncode
        if return_code is None:
            status = ProcessStatus.RUNNING
        elif return_code == 0:
            status = ProcessStatus.STOPPED
        else:
            status = ProcessStatus.CRASHED

        info = ProcessInfo(
            pid=self._process.pid,
            status=status,
            command=list(self._command),
            working_directory=self._working_directory,
            return_code=return_code,
        )

        if status is ProcessStatus.RUNNING:
            try:
                process = psutil.Process(self._process.pid)
                info.cpu_percent = process.cpu_percent()
                info.memory_mb = process.memory_info().rss / 1024 / 1024
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                # Process no longer accessible
                pass

        return info


async def run_command(
    program: str,
    args: list[str],
    working_directory: Path | None = None,
    environment: dict[str, str] | None = None,
) -> CommandResult:
    """Run a short-lived helper command and capture its output.

    Raises:
        SpawnError: If the executable is missing or the OS refused to launch it
    """
    command = [program, *args]
    logger.debug(
        "Running helper command",
        command=command,
        working_directory=str(working_directory) if working_directory else None,
    )

    env = os.environ.copy()
    if environment:
        env.update(environment)

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=working_directory,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SpawnError(
            f"Failed to run {program}: {e}",
            exit_code=parse_exit_code(str(e), e.errno),
        ) from e

    stdout, stderr = await process.communicate()
    return CommandResult(
        command=command,
        return_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

