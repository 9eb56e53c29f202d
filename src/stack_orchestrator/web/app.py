"""FastAPI web application for Stack-Orchestrator."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import OrchestratorConfig, load_config
from ..core.compose import ComposeCli
from ..core.terminal_service import TerminalService
from ..terminal.registry import SessionRegistry, SessionSettings
from ..utils.logging import StackOrchestratorException
from .exceptions import StackOrchestratorAPIException, status_code_for
from .logging_utils import api_logger
from .routers import api_router_v1
from .websocket.handlers import RequestDispatcher
from .websocket.manager import ConnectionManager, WebSocketConfig
from .websocket.router import router as websocket_router


def create_app(
    config: OrchestratorConfig | None = None,
    websocket_config: WebSocketConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The session registry, the connection manager and the terminal service live
    for the lifetime of the application and are stored on ``app.state``.
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        api_logger.info("Starting Stack-Orchestrator API server")

        connection_manager = ConnectionManager(websocket_config)
        registry = SessionRegistry(
            transport=connection_manager,
            settings=SessionSettings.from_config(config),
        )
        terminal_service = TerminalService(
            registry, config, compose=ComposeCli(config.compose_binary)
        )

        connection_manager.set_request_handler(RequestDispatcher(terminal_service))
        connection_manager.on_disconnect(terminal_service.leave_all)
        await connection_manager.initialize()

        app.state.config = config
        app.state.registry = registry
        app.state.connection_manager = connection_manager
        app.state.terminal_service = terminal_service

        api_logger.info(
            "Stack-Orchestrator API server started successfully",
            stacks_dir=str(config.stacks_path),
        )

        yield

        api_logger.info("Shutting down Stack-Orchestrator API server")

        await registry.close_all()
        await connection_manager.cleanup()

        api_logger.info("Stack-Orchestrator API server shutdown complete")

    app = FastAPI(
        title="Stack-Orchestrator API",
        description="Compose stack manager with live terminal sessions",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[f"http://{config.web_host}:{config.web_port}"],
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    @app.exception_handler(StackOrchestratorAPIException)
    async def api_exception_handler(
        request: Request, exc: StackOrchestratorAPIException
    ) -> JSONResponse:
        """Handle custom API exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(StackOrchestratorException)
    async def domain_exception_handler(
        request: Request, exc: StackOrchestratorException
    ) -> JSONResponse:
        """Handle orchestrator errors raised by endpoints."""
        status_code = status_code_for(exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "status_code": status_code,
            },
        )

    app.include_router(api_router_v1, prefix="/api/v1")
    app.include_router(websocket_router, prefix="/ws")

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        """Ping endpoint for simple health check."""
        return {"status": "ok"}

    return app
