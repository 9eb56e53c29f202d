"""
FastAPI dependencies for shared application state.

The session registry, the terminal service and the configuration are created
once per application in its lifespan and stored on ``app.state``.
"""

from typing import cast

from fastapi import HTTPException, Request, status

from ..config import OrchestratorConfig
from ..core.compose import ComposeCli
from ..core.terminal_service import TerminalService
from ..terminal.registry import SessionRegistry
from .logging_utils import api_logger


def _state(request: Request, attribute: str) -> object:
    if not hasattr(request.app.state, attribute):
        api_logger.error("Application state not initialized", attribute=attribute)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready",
        )
    return getattr(request.app.state, attribute)


async def get_config(request: Request) -> OrchestratorConfig:
    return cast(OrchestratorConfig, _state(request, "config"))


async def get_registry(request: Request) -> SessionRegistry:
    return cast(SessionRegistry, _state(request, "registry"))


async def get_compose(request: Request) -> ComposeCli:
    return cast(TerminalService, _state(request, "terminal_service")).compose
