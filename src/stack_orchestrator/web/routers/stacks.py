"""
Stack API endpoints.

Read-only views of the stacks directory merged with the projects the compose
engine knows. Lifecycle operations stream terminal output and are therefore
requested over the terminal WebSocket.
"""

from typing import Any

from fastapi import APIRouter, Depends

from ...config import OrchestratorConfig
from ...core.compose import ComposeCli
from ...core.orchestrator import StackOrchestrator
from ...core.stack import STACK_NAME_PATTERN, Stack, get_stack, get_stack_list
from ...terminal.registry import SessionRegistry
from ...utils.logging import ValidationError
from ..dependencies import get_compose, get_config, get_registry
from ..exceptions import StackNotFoundError
from ..schemas import APIResponse

router = APIRouter()


async def _load_stack(
    stack_name: str, config: OrchestratorConfig, compose: ComposeCli
) -> Stack:
    if not STACK_NAME_PATTERN.match(stack_name):
        raise ValidationError("Stack name can only contain [a-z][0-9] _ - only")
    try:
        return await get_stack(config.stacks_path, stack_name, compose)
    except ValidationError as e:
        raise StackNotFoundError(stack_name) from e


@router.get("/", response_model=APIResponse)
async def list_stacks(
    config: OrchestratorConfig = Depends(get_config),
    compose: ComposeCli = Depends(get_compose),
) -> dict[str, Any]:
    """List every stack with its status."""
    stack_list = await get_stack_list(config.stacks_path, compose)
    return {
        "success": True,
        "message": f"{len(stack_list)} stacks",
        "data": [stack.to_simple_dict("") for stack in stack_list.values()],
    }


@router.get("/{stack_name}", response_model=APIResponse)
async def get_stack_detail(
    stack_name: str,
    config: OrchestratorConfig = Depends(get_config),
    compose: ComposeCli = Depends(get_compose),
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """Get a stack with the content of its files and its current status."""
    stack = await _load_stack(stack_name, config, compose)
    await StackOrchestrator(stack, registry, compose=compose).update_status()
    return {"success": True, "data": stack.to_dict("")}


@router.get("/{stack_name}/services", response_model=APIResponse)
async def get_stack_services(
    stack_name: str,
    config: OrchestratorConfig = Depends(get_config),
    compose: ComposeCli = Depends(get_compose),
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """Get the containers of each service of a stack."""
    stack = await _load_stack(stack_name, config, compose)
    orchestrator = StackOrchestrator(stack, registry, compose=compose)
    return {"success": True, "data": await orchestrator.get_service_status_list()}
