"""Configuration management commands."""

import click

from ..config import find_config_file
from ..utils.logging import ConfigurationError
from .utils import error_handler, format_output, load_cli_config


@click.group()
def config() -> None:
    """Manage configuration settings."""
    pass


@config.command()
@click.pass_context
@error_handler
def show(ctx: click.Context) -> None:
    """Show current configuration."""
    config_obj = load_cli_config(ctx)
    format_output(ctx, {"configuration": config_obj.model_dump()})


@config.command()
@click.pass_context
@error_handler
def path(ctx: click.Context) -> None:
    """Show which configuration file is in use."""
    custom_path = ctx.obj.get("config") if ctx.obj else None
    try:
        config_file = find_config_file(custom_path)
    except FileNotFoundError as e:
        raise ConfigurationError(str(e)) from e

    click.echo(str(config_file) if config_file else "No configuration file found")
