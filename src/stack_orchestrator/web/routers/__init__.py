"""Version 1 API routers."""

from fastapi import APIRouter

from . import health, sessions, stacks

api_router_v1 = APIRouter()

api_router_v1.include_router(stacks.router, prefix="/stacks", tags=["v1-stacks"])
api_router_v1.include_router(sessions.router, prefix="/sessions", tags=["v1-sessions"])
api_router_v1.include_router(health.router, prefix="/health", tags=["v1-health"])

__all__ = ["api_router_v1"]
