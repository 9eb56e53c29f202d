"""Health check endpoint."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Request

from ... import __version__
from ..schemas import APIResponse

router = APIRouter()


@router.get("/", response_model=APIResponse)
async def health_check(request: Request) -> dict[str, Any]:
    """
    API health check endpoint.

    Reports the number of live sessions and WebSocket connections.
    """
    state = request.app.state
    connection_stats = await state.connection_manager.get_connection_stats()
    return {
        "success": True,
        "message": "Health check completed successfully",
        "data": {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "sessions": len(state.registry),
            "connections": connection_stats["active_connections"],
        },
    }
