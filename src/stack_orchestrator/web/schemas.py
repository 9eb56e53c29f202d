"""Pydantic schemas for REST responses and WebSocket requests."""

from typing import Any

from pydantic import BaseModel, Field

from ..terminal.session import SessionKind


class APIResponse(BaseModel):
    """Generic API response wrapper."""

    success: bool = True
    message: str = ""
    data: Any = None


class ProcessResponse(BaseModel):
    pid: int
    status: str
    cpu_percent: float
    memory_mb: float


class SessionResponse(BaseModel):
    """Description of a live terminal session."""

    name: str
    kind: str
    state: str
    rows: int
    cols: int
    keep_alive: bool
    viewers: int
    exit_code: int | None = None
    process: ProcessResponse | None = None


# WebSocket requests


class TerminalStartRequest(BaseModel):
    kind: SessionKind
    endpoint: str | None = None
    stack_name: str | None = None
    service_name: str | None = None
    shell: str | None = None
    index: int = Field(default=0, ge=0)


class TerminalInputRequest(BaseModel):
    session_name: str
    data: str


class TerminalResizeRequest(BaseModel):
    session_name: str
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)


class SessionRequest(BaseModel):
    session_name: str


class StackRequest(BaseModel):
    stack_name: str
    endpoint: str | None = None


class StackDeleteRequest(StackRequest):
    delete_files: bool = True


class ServiceRequest(StackRequest):
    service_name: str


class StackSaveRequest(StackRequest):
    compose_yaml: str
    compose_env: str = ""
    compose_override_yaml: str = ""
    is_add: bool = False


class StackDeployRequest(StackRequest):
    """Deploy a stack, saving its files first when they are provided."""

    compose_yaml: str | None = None
    compose_env: str = ""
    compose_override_yaml: str = ""
    is_add: bool = False
