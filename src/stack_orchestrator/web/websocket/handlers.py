"""
Request handlers for the terminal WebSocket.

Each inbound message type maps to one handler. Handlers validate the message
body with the request schemas, call the terminal service or a stack
orchestrator on behalf of the connection, and return the reply body.
"""

from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from ...core.stack import Stack
from ...core.terminal_service import TerminalService
from ..schemas import (
    ServiceRequest,
    SessionRequest,
    StackDeleteRequest,
    StackDeployRequest,
    StackRequest,
    StackSaveRequest,
    TerminalInputRequest,
    TerminalResizeRequest,
    TerminalStartRequest,
)

Handler = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

STACK_OPERATIONS = {
    "stack_start": ("start", "Started"),
    "stack_stop": ("stop", "Stopped"),
    "stack_restart": ("restart", "Restarted"),
    "stack_down": ("down", "Downed"),
    "stack_update": ("update", "Updated"),
    "stack_force_delete": ("force_delete", "Deleted"),
}

SERVICE_OPERATIONS = {
    "service_start": ("start_service", "Service started"),
    "service_stop": ("stop_service", "Service stopped"),
    "service_restart": ("restart_service", "Service restarted"),
}


class RequestDispatcher:
    """Routes WebSocket requests to terminal and stack operations."""

    def __init__(self, terminal_service: TerminalService) -> None:
        self.terminal_service = terminal_service
        self._routes: dict[str, Handler] = {
            "terminal_start": self.terminal_start,
            "terminal_input": self.terminal_input,
            "terminal_resize": self.terminal_resize,
            "terminal_join": self.terminal_join,
            "terminal_leave": self.terminal_leave,
            "stack_save": self.stack_save,
            "stack_deploy": self.stack_deploy,
            "stack_delete": self.stack_delete,
            "stack_services": self.stack_services,
        }
        for message_type, (operation, message) in STACK_OPERATIONS.items():
            self._routes[message_type] = partial(
                self._stack_operation, operation=operation, message=message
            )
        for message_type, (operation, message) in SERVICE_OPERATIONS.items():
            self._routes[message_type] = partial(
                self._service_operation, operation=operation, message=message
            )

    async def __call__(
        self, connection_id: str, message_type: str, data: dict[str, Any]
    ) -> dict[str, Any] | None:
        handler = self._routes.get(message_type)
        if handler is None:
            return None
        return await handler(connection_id, data)

    # ------------------------------------------------------------------
    # Terminals

    async def terminal_start(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = TerminalStartRequest.model_validate(data)
        session_name = await self.terminal_service.request_start(
            request.kind,
            endpoint=request.endpoint,
            stack_name=request.stack_name,
            service_name=request.service_name,
            shell=request.shell,
            viewer_id=connection_id,
            index=request.index,
        )
        return {
            "ok": True,
            "session_name": session_name,
            "buffer": self.terminal_service.request_buffer(session_name)
            if session_name in self.terminal_service.registry
            else "",
        }

    async def terminal_input(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = TerminalInputRequest.model_validate(data)
        self.terminal_service.request_write(request.session_name, request.data)
        return {"ok": True}

    async def terminal_resize(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = TerminalResizeRequest.model_validate(data)
        self.terminal_service.request_resize(request.session_name, request.rows, request.cols)
        return {"ok": True}

    async def terminal_join(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = SessionRequest.model_validate(data)
        buffer = self.terminal_service.request_join(request.session_name, connection_id)
        return {"ok": True, "buffer": buffer}

    async def terminal_leave(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = SessionRequest.model_validate(data)
        self.terminal_service.request_leave(request.session_name, connection_id)
        return {"ok": True}

    # ------------------------------------------------------------------
    # Stacks

    def _save(
        self, request: StackSaveRequest | StackDeployRequest, compose_yaml: str
    ) -> Stack:
        stack = Stack(
            self.terminal_service.config.stacks_path,
            request.stack_name,
            compose_yaml=compose_yaml,
            compose_env=request.compose_env,
            compose_override_yaml=request.compose_override_yaml,
        )
        stack.save(request.is_add)
        return stack

    async def stack_save(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = StackSaveRequest.model_validate(data)
        self._save(request, request.compose_yaml)
        return {"ok": True, "msg": "Saved"}

    async def stack_deploy(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = StackDeployRequest.model_validate(data)
        orchestrator = self.terminal_service.orchestrator(
            request.stack_name, request.endpoint
        )
        if request.compose_yaml is not None:
            self._save(request, request.compose_yaml)

        await orchestrator.deploy(viewer_id=connection_id)
        return {"ok": True, "msg": "Deployed", "session_name": orchestrator.session_name}

    async def stack_delete(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = StackDeleteRequest.model_validate(data)
        orchestrator = self.terminal_service.orchestrator(
            request.stack_name, request.endpoint
        )
        await orchestrator.delete(viewer_id=connection_id, delete_files=request.delete_files)
        return {"ok": True, "msg": "Deleted", "session_name": orchestrator.session_name}

    async def stack_services(self, connection_id: str, data: dict[str, Any]) -> dict[str, Any]:
        request = StackRequest.model_validate(data)
        orchestrator = self.terminal_service.orchestrator(
            request.stack_name, request.endpoint
        )
        return {"ok": True, "services": await orchestrator.get_service_status_list()}

    async def _stack_operation(
        self,
        connection_id: str,
        data: dict[str, Any],
        operation: str,
        message: str,
    ) -> dict[str, Any]:
        request = StackRequest.model_validate(data)
        orchestrator = self.terminal_service.orchestrator(
            request.stack_name, request.endpoint
        )
        await getattr(orchestrator, operation)(viewer_id=connection_id)
        return {"ok": True, "msg": message, "session_name": orchestrator.session_name}

    async def _service_operation(
        self,
        connection_id: str,
        data: dict[str, Any],
        operation: str,
        message: str,
    ) -> dict[str, Any]:
        request = ServiceRequest.model_validate(data)
        orchestrator = self.terminal_service.orchestrator(
            request.stack_name, request.endpoint
        )
        await getattr(orchestrator, operation)(
            request.service_name, viewer_id=connection_id
        )
        return {"ok": True, "msg": message, "session_name": orchestrator.session_name}
