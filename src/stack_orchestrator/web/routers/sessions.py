"""Terminal session API endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from ...terminal.registry import SessionRegistry
from ...terminal.session import SessionInfo
from ...utils.logging import SessionNotFoundError
from ..dependencies import get_registry
from ..schemas import APIResponse, SessionResponse

router = APIRouter()


def session_response(info: SessionInfo) -> SessionResponse:
    return SessionResponse(
        name=info.name,
        kind=info.kind.value,
        state=info.state.value,
        rows=info.rows,
        cols=info.cols,
        keep_alive=info.keep_alive,
        viewers=info.viewers,
        exit_code=info.exit_code,
        process=(
            {
                "pid": info.process.pid,
                "status": info.process.status.value,
                "cpu_percent": info.process.cpu_percent,
                "memory_mb": info.process.memory_mb,
            }
            if info.process
            else None
        ),
    )


@router.get("/", response_model=APIResponse)
async def list_sessions(
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """List live terminal sessions."""
    return {
        "success": True,
        "data": [session_response(info) for info in registry.snapshot().values()],
    }


@router.get("/{session_name}", response_model=APIResponse)
async def get_session(
    session_name: str,
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """Describe one live session."""
    session = registry.get(session_name)
    if session is None:
        raise SessionNotFoundError(session_name)
    return {"success": True, "data": session_response(session.info())}
