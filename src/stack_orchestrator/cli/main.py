"""Main CLI entry point for Stack-Orchestrator."""

import click

from .. import __version__
from ..utils.logging import setup_logging
from .config import config
from .stacks import stacks
from .web import serve


@click.group()
@click.version_option(version=__version__, prog_name="stack-orchestrator")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--json", is_flag=True, help="Output in JSON format")
# Configuration override flags
@click.option("--stacks-dir", help="Override stacks_dir setting")
@click.option("--compose-binary", help="Override compose_binary setting")
@click.option("--web-port", type=int, help="Override web_port setting")
@click.option("--web-host", help="Override web_host setting")
@click.option("--log-level", help="Override log_level setting")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    verbose: bool,
    json: bool,
    stacks_dir: str | None,
    compose_binary: str | None,
    web_port: int | None,
    web_host: str | None,
    log_level: str | None,
) -> None:
    """Stack Orchestrator - Manage compose stacks with live terminal output.

    Use command groups to organize functionality:
    - stacks: List stacks and run lifecycle operations
    - config: Manage configuration settings
    - serve: Run the web interface
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = json

    # Store CLI overrides for configuration
    ctx.obj["cli_overrides"] = {
        "stacks_dir": stacks_dir,
        "compose_binary": compose_binary,
        "web_port": web_port,
        "web_host": web_host,
        "log_level": log_level,
    }
    # Remove None values
    ctx.obj["cli_overrides"] = {
        k: v for k, v in ctx.obj["cli_overrides"].items() if v is not None
    }

    # Command output goes to stdout, logs to stderr
    setup_logging("DEBUG" if verbose else "WARNING")


main.add_command(stacks)
main.add_command(config)
main.add_command(serve)


if __name__ == "__main__":
    main()
