"""
Per-stack orchestration of compose lifecycle operations.

Every lifecycle operation runs the compose tool inside an exclusive progress
session named after the endpoint and the stack, so at most one operation per
stack runs at any time. Viewers that requested the operation are joined to the
progress session and see its output live. A non-zero exit surfaces as
CommandFailedError naming the session; nothing is retried, and a multi-step
operation that fails partway leaves the earlier steps' effects in place.
"""

from typing import Any

from ..terminal.names import (
    combined_session_name,
    compose_session_name,
    container_attach_session_name,
    container_exec_session_name,
)
from ..terminal.registry import SessionRegistry
from ..terminal.session import (
    COMBINED_TERMINAL_COLS,
    COMBINED_TERMINAL_ROWS,
    TERMINAL_ROWS,
    Session,
    SessionKind,
)
from ..utils.logging import CommandFailedError, LogContext, audit_operation, get_logger
from .compose import ComposeCli
from .enums import StackStatus
from .stack import Stack

logger = get_logger(__name__, LogContext.ORCHESTRATOR)


class StackOrchestrator:
    """Lifecycle façade for one stack on one endpoint."""

    def __init__(
        self,
        stack: Stack,
        registry: SessionRegistry,
        endpoint: str = "",
        compose: ComposeCli | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            stack: Stack to operate on
            registry: Registry owning every terminal session
            endpoint: Identifier of the endpoint the stack belongs to
            compose: Compose query helper; its binary also runs the operations
        """
        self.stack = stack
        self.registry = registry
        self.endpoint = endpoint
        self.compose = compose or ComposeCli()

    @property
    def session_name(self) -> str:
        """Name of the progress session used by lifecycle operations."""
        return compose_session_name(self.endpoint, self.stack.name)

    # ------------------------------------------------------------------
    # Command execution

    async def _run_exec(
        self, args: list[str], action: str, viewer_id: str | None
    ) -> int:
        session_name = self.session_name
        logger.info(
            f"Running {action}", stack=self.stack.name, session=session_name, argv=args
        )

        exit_code = await self.registry.exec(
            session_name,
            self.compose.binary,
            args,
            self.stack.path,
            viewer_id=viewer_id,
        )

        if exit_code != 0:
            raise CommandFailedError(action, session_name, exit_code)
        return exit_code

    async def _run_compose(
        self,
        command: str,
        extra_options: list[str],
        action: str,
        viewer_id: str | None,
    ) -> int:
        args = self.stack.compose_options(command, *extra_options)
        return await self._run_exec(args, action, viewer_id)

    # ------------------------------------------------------------------
    # Stack lifecycle

    @audit_operation("stack_deploy")
    async def deploy(self, viewer_id: str | None = None) -> int:
        """Validate the stack files and bring the stack up."""
        self.stack.validate()
        return await self._run_compose(
            "up", ["-d", "--remove-orphans"], "deploy", viewer_id
        )

    @audit_operation("stack_start")
    async def start(self, viewer_id: str | None = None) -> int:
        return await self._run_compose(
            "up", ["-d", "--remove-orphans"], "start", viewer_id
        )

    @audit_operation("stack_stop")
    async def stop(self, viewer_id: str | None = None) -> int:
        return await self._run_compose("stop", [], "stop", viewer_id)

    @audit_operation("stack_restart")
    async def restart(self, viewer_id: str | None = None) -> int:
        return await self._run_compose("restart", [], "restart", viewer_id)

    @audit_operation("stack_down")
    async def down(self, viewer_id: str | None = None) -> int:
        return await self._run_compose("down", [], "down", viewer_id)

    @audit_operation("stack_delete")
    async def delete(
        self, viewer_id: str | None = None, delete_files: bool = True
    ) -> int:
        """Take the stack down and remove its directory.

        Args:
            viewer_id: Viewer following the operation output
            delete_files: Remove the stack directory once the stack is down
        """
        exit_code = await self._run_compose(
            "down", ["--remove-orphans"], f"delete {self.stack.name}", viewer_id
        )

        if delete_files:
            self.stack.remove_files()

        return exit_code

    @audit_operation("stack_force_delete")
    async def force_delete(self, viewer_id: str | None = None) -> int:
        """Take the stack down including its named volumes and remove its directory."""
        exit_code = await self._run_compose(
            "down", ["-v", "--remove-orphans"], f"force delete {self.stack.name}", viewer_id
        )

        self.stack.remove_files()
        return exit_code

    @audit_operation("stack_update")
    async def update(self, viewer_id: str | None = None) -> int:
        """Pull images, then recreate and prune if the stack was running.

        Each step is its own progress session. A failing step raises
        CommandFailedError carrying that step's exit code.
        """
        exit_code = await self._run_compose("pull", [], "pull", viewer_id)

        await self.update_status()

        if self.stack.status is StackStatus.RUNNING:
            exit_code = await self._run_compose(
                "up", ["-d", "--remove-orphans"], "restart", viewer_id
            )
            exit_code = await self._run_exec(
                ["image", "prune", "--all", "--force"], "prune images", viewer_id
            )

        return exit_code

    # ------------------------------------------------------------------
    # Service lifecycle

    @audit_operation("service_start")
    async def start_service(self, service_name: str, viewer_id: str | None = None) -> int:
        return await self._run_compose(
            "up", ["-d", service_name], f"start service {service_name}", viewer_id
        )

    @audit_operation("service_stop")
    async def stop_service(self, service_name: str, viewer_id: str | None = None) -> int:
        return await self._run_compose(
            "stop", [service_name], f"stop service {service_name}", viewer_id
        )

    @audit_operation("service_restart")
    async def restart_service(
        self, service_name: str, viewer_id: str | None = None
    ) -> int:
        return await self._run_compose(
            "restart", [service_name], f"restart service {service_name}", viewer_id
        )

    # ------------------------------------------------------------------
    # Status

    async def update_status(self) -> StackStatus:
        """Refresh the stack status from the compose engine."""
        status_list = await self.compose.get_status_list()
        self.stack.status = status_list.get(self.stack.name, StackStatus.UNKNOWN)
        return self.stack.status

    async def get_service_status_list(self) -> dict[str, list[dict[str, Any]]]:
        """Group the stack's containers by service with their health or state."""
        containers = await self.compose.ps(
            self.stack.compose_options("ps", "--format", "json"), self.stack.path
        )

        status_list: dict[str, list[dict[str, Any]]] = {}
        for container in containers:
            status_list.setdefault(container.service, []).append(
                {
                    "status": container.health or container.state,
                    "name": container.display_name,
                }
            )
        return status_list

    # ------------------------------------------------------------------
    # Terminals

    async def join_combined_terminal(self, viewer_id: str) -> Session:
        """Follow the combined logs of every service of the stack."""
        name = combined_session_name(self.endpoint, self.stack.name)
        session = self.registry.get_or_create(
            name,
            self.registry.new_session(
                name,
                SessionKind.LOGS,
                self.compose.binary,
                self.stack.compose_options("logs", "-f", "--tail", "100"),
                self.stack.path,
                rows=COMBINED_TERMINAL_ROWS,
                cols=COMBINED_TERMINAL_COLS,
                keep_alive=True,
            ),
        )
        session.join(viewer_id)
        await session.start()
        return session

    def leave_combined_terminal(self, viewer_id: str) -> None:
        session = self.registry.get(combined_session_name(self.endpoint, self.stack.name))
        if session is not None:
            session.leave(viewer_id)

    async def join_container_terminal(
        self,
        viewer_id: str,
        service_name: str,
        shell: str = "sh",
        index: int = 0,
    ) -> Session:
        """Open (or join) an interactive shell inside a service container."""
        name = container_exec_session_name(
            self.endpoint, self.stack.name, service_name, index
        )
        session = self.registry.get_or_create(
            name,
            self.registry.new_session(
                name,
                SessionKind.INTERACTIVE,
                self.compose.binary,
                self.stack.compose_options("exec", service_name, shell),
                self.stack.path,
                rows=TERMINAL_ROWS,
            ),
        )
        session.join(viewer_id)
        await session.start()
        return session

    async def join_attach_terminal(self, viewer_id: str, service_name: str) -> Session:
        """Attach to a service's main process after replaying its recent logs."""
        name = container_attach_session_name(self.endpoint, self.stack.name, service_name)
        session = self.registry.get_or_create(
            name,
            self.registry.new_session(
                name,
                SessionKind.ATTACH,
                self.compose.binary,
                ["compose", "attach", "--sig-proxy=false", service_name],
                self.stack.path,
                service_name=service_name,
            ),
        )
        session.join(viewer_id)
        await session.start_with_logs()
        return session
