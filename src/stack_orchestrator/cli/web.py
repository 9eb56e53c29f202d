"""Web interface commands."""

import sys
from pathlib import Path

import click
import uvicorn

from ..utils.logging import setup_logging
from ..web.app import create_app
from .utils import error_handler, load_cli_config


@click.command()
@click.option("--port", "-p", type=int, help="Port to run on")
@click.option("--host", "-h", help="Host to bind to")
@click.pass_context
@error_handler
def serve(ctx: click.Context, port: int | None, host: str | None) -> None:
    """Start the web interface and terminal WebSocket."""
    config = load_cli_config(ctx)
    host = host or config.web_host
    port = port or config.web_port

    setup_logging(
        config.log_level,
        log_file=Path(config.log_file) if config.log_file else None,
    )
    click.echo(f"Starting Stack-Orchestrator web interface on {host}:{port}")

    try:
        uvicorn.run(create_app(config), host=host, port=port, log_level="info")
    except KeyboardInterrupt:
        click.echo("\nShutting down web interface...")
    except OSError as e:
        click.echo(f"Failed to start web interface: {e}")
        sys.exit(1)
